import datetime as dt
import logging
from enum import Enum
from typing import Any, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import settings
from .errors import MalformedRecord
from .utils import to_local_naive, zero

logger = logging.getLogger(__name__)


class PaymentMode(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    OTHER = "OTHER"


class ReportStatus(str, Enum):
    OK = "ok"
    LOADING = "loading"
    ERROR = "error"
    EMPTY = "empty"


class Segment(str, Enum):
    CHAMPION = "Champion"
    LOYAL = "Loyal"
    NEW_OCCASIONAL = "New/Occasional"
    AT_RISK = "At Risk"
    LOST = "Lost"


def _as_local_date(value: Any) -> Any:
    # Stores hand back either '2024-01-05' or a full timestamp for date columns.
    if isinstance(value, str) and len(value.strip()) > 10:
        value = dt.datetime.fromisoformat(value.strip())
    if isinstance(value, dt.datetime):
        return to_local_naive(value).date()
    return value


# --- Source Records (read from the store) ---


class StoreRecord(BaseModel):
    """
    Base for rows read from the record store. Field aliases are the store's
    column names; both the alias and the attribute name are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TransactionRecord(StoreRecord):
    """One completed bill from the `sales` table. Optional numerics fold to 0."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    id: int | str
    bill_no: str
    bill_date: dt.datetime
    amount: Optional[float] = None
    gross_amount: Optional[float] = None
    discount_amount: Optional[float] = None
    discount_percent: Optional[float] = None
    items_count: Optional[float] = None
    payment_mode: PaymentMode = Field(default=None, validate_default=True)
    customer_name: Optional[str] = None
    profit: Optional[float] = None
    tax_amount: Optional[float] = Field(default=None, alias="taxamount")
    ct_amount: Optional[float] = Field(default=None, alias="ctamount")
    st_amount: Optional[float] = Field(default=None, alias="stamount")
    igst_bill: bool = Field(default=False, alias="igstbill")

    @field_validator("bill_no", mode="before")
    @classmethod
    def _bill_no_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("bill_date")
    @classmethod
    def _bill_date_local(cls, value: dt.datetime) -> dt.datetime:
        return to_local_naive(value)

    @field_validator("payment_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, PaymentMode):
            return value.value
        if value is None or str(value).strip() == "":
            return settings.DEFAULT_PAYMENT_MODE
        mode = str(value).strip().upper()
        return mode if mode in PaymentMode.__members__ else PaymentMode.OTHER.value

    @field_validator("igst_bill", mode="before")
    @classmethod
    def _flag_default(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def effective_gross(self) -> float:
        """Gross amount, falling back to the net amount when gross was never synced."""
        if self.gross_amount is not None:
            return zero(self.gross_amount)
        return zero(self.amount)


class TransactionLineItem(StoreRecord):
    """One product line from `sale_details`. `landing_cost` is the per-unit rate."""

    bill_no: str
    bill_date: dt.datetime
    product_name: str = settings.UNKNOWN_PRODUCT
    category_name: Optional[str] = None
    quantity: Optional[float] = None
    sale_rate: Optional[float] = None
    net_sale_amount: Optional[float] = None
    landing_cost: Optional[float] = None
    profit_amount: Optional[float] = None

    @field_validator("bill_no", mode="before")
    @classmethod
    def _bill_no_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("bill_date")
    @classmethod
    def _bill_date_local(cls, value: dt.datetime) -> dt.datetime:
        return to_local_naive(value)

    @field_validator("product_name", mode="before")
    @classmethod
    def _product_default(cls, value: Any) -> Any:
        if value is None or str(value).strip() == "":
            return settings.UNKNOWN_PRODUCT
        return value


class StockSnapshot(StoreRecord):
    product_name: str
    category_name: Optional[str] = None
    current_stock: Optional[float] = None
    stock_value: Optional[float] = None
    reorder_min: Optional[float] = None
    days_since_sale: Optional[int] = None
    last_sale_date: Optional[dt.date] = None

    @field_validator("last_sale_date", mode="before")
    @classmethod
    def _last_sale_date(cls, value: Any) -> Any:
        return _as_local_date(value)


class CustomerAggregate(StoreRecord):
    customer_name: str
    phone: Optional[str] = None
    total_visits: Optional[float] = None
    total_spent: Optional[float] = None
    avg_transaction_value: Optional[float] = None
    recency_days: Optional[float] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


# --- Derived Aggregates (computed on demand, never persisted) ---


class DailySalesBucket(BaseModel):
    date: dt.date
    bills_count: int
    gross_sales: float
    discount_amount: float
    net_sales: float
    items_sold: float
    avg_bill_value: float


class ItemProfitBucket(BaseModel):
    product_name: str
    total_quantity: float
    total_landing_cost: float
    total_sales: float
    total_profit: float
    profit_percent: float


class CategoryProfitBucket(BaseModel):
    category: str
    items_sold: float
    landing_cost: float
    sales: float
    profit: float
    margin: float


class PaymentModeBucket(BaseModel):
    mode: str
    count: int
    amount: float
    percentage: float


class GSTBucket(BaseModel):
    bill_no: str
    bill_date: dt.datetime
    customer_name: str
    amount: float
    tax_amount: float
    taxable_value: float
    cgst: float
    sgst: float
    igst: float
    interstate: bool


class DeadStockRow(BaseModel):
    product_name: str
    category_name: str
    current_stock: float
    stock_value: float
    reorder_min: float
    days_since_sale: Optional[int]
    last_sale_date: Optional[dt.date]
    low_stock: bool


class CustomerSegmentRow(BaseModel):
    customer_name: str
    phone: Optional[str]
    total_visits: float
    total_spent: float
    avg_transaction_value: float
    recency_days: float
    rfm_segment: Segment


class LiveMetricsSnapshot(BaseModel):
    """
    Current value of the live dashboard. The camelCase aliases are the names
    the dashboard reads.
    """

    model_config = ConfigDict(populate_by_name=True)

    state: str
    as_of: dt.date
    today_net: float = Field(alias="todayNet")
    today_gross: float = Field(alias="todayGross")
    today_discount: float = Field(alias="todayDiscount")
    today_profit: float = Field(alias="todayProfit")
    today_items: float = Field(alias="todayItems")
    today_bills: int = Field(alias="todayBills")
    ordered_transactions: list[TransactionRecord] = Field(alias="orderedTransactionList")
    skipped_events: int = 0
    duplicate_events: int = 0


RowT = TypeVar("RowT", bound=BaseModel)


class ReportResult(BaseModel, Generic[RowT]):
    """What every report hands to its caller: ordered rows plus a status."""

    report: str
    status: ReportStatus
    rows: list[RowT] = Field(default_factory=list)
    skipped: int = 0
    summary: dict[str, float] = Field(default_factory=dict)
    error: Optional[str] = None


# --- Validation Helpers ---

ModelT = TypeVar("ModelT", bound=StoreRecord)


def parse_row(row: Any, model: type[ModelT], table: str) -> ModelT:
    """Validates one raw store row, raising MalformedRecord if it cannot be used."""
    if isinstance(row, model):
        return row
    try:
        return model.model_validate(row)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "<row>"
        raise MalformedRecord(table, f"{field}: {first.get('msg')}") from e


def validate_rows(
    rows: Iterable[Any], model: type[ModelT], table: str
) -> tuple[list[ModelT], int]:
    """
    Validates a batch of rows. Malformed rows are skipped and counted; one bad
    row never aborts the batch.
    """
    valid: list[ModelT] = []
    skipped = 0
    for row in rows:
        try:
            valid.append(parse_row(row, model, table))
        except MalformedRecord as e:
            skipped += 1
            logger.warning(f"  > ⚠️  Skipping row: {e}")
    if skipped:
        logger.warning(f"  > ⚠️  {skipped} malformed '{table}' row(s) skipped.")
    return valid, skipped

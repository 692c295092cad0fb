import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import pandas as pd

from sales_analytics import settings
from sales_analytics.errors import InvalidReportRequest
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import numeric, records_frame
from sales_analytics.schemas import DeadStockRow, ReportResult, StockSnapshot, validate_rows
from sales_analytics.store import Filter, OrderBy

logger = logging.getLogger(__name__)


def check_threshold(threshold_days: Optional[int]) -> int:
    if threshold_days is None:
        return settings.DEAD_STOCK_DEFAULT_DAYS
    if not settings.DEAD_STOCK_MIN_DAYS <= threshold_days <= settings.DEAD_STOCK_MAX_DAYS:
        raise InvalidReportRequest(
            f"Dead stock threshold must be between {settings.DEAD_STOCK_MIN_DAYS} "
            f"and {settings.DEAD_STOCK_MAX_DAYS} days, got {threshold_days}."
        )
    return int(threshold_days)


def _stock_frame(rows: Iterable[Any]) -> tuple[pd.DataFrame, int]:
    records, skipped = validate_rows(rows, StockSnapshot, settings.STOCK_TABLE)
    frame = records_frame(records, StockSnapshot)
    for column in ("current_stock", "stock_value", "reorder_min"):
        frame[column] = numeric(frame[column])
    # Null means never sold: kept as NaN so it is never older than a threshold.
    frame["days_since_sale"] = pd.to_numeric(frame["days_since_sale"], errors="coerce")
    frame["low_stock"] = frame["current_stock"] < frame["reorder_min"]
    return frame, skipped


def _to_rows(frame: pd.DataFrame) -> list[DeadStockRow]:
    rows = []
    for row in frame.to_dict("records"):
        category = row["category_name"]
        last_sale = row["last_sale_date"]
        days = row["days_since_sale"]
        rows.append(
            DeadStockRow(
                product_name=row["product_name"],
                category_name=category if isinstance(category, str) and category else settings.DEFAULT_CATEGORY,
                current_stock=row["current_stock"],
                stock_value=row["stock_value"],
                reorder_min=row["reorder_min"],
                days_since_sale=None if pd.isna(days) else int(days),
                last_sale_date=None if last_sale is None or pd.isna(last_sale) else last_sale,
                low_stock=bool(row["low_stock"]),
            )
        )
    return rows


def build_dead_stock(rows: Iterable[Any], threshold_days: Optional[int] = None) -> ReportResult:
    """
    Products still on hand with no sale for more than `threshold_days`, the
    longest-idle first. `capital_blocked` is the stock value tied up in them.
    """
    threshold = check_threshold(threshold_days)
    frame, skipped = _stock_frame(rows)

    dead = frame.loc[(frame["current_stock"] > 0) & (frame["days_since_sale"] > threshold)]
    dead = dead.sort_values("days_since_sale", ascending=False, kind="stable")

    result_rows = _to_rows(dead)
    summary = {
        "threshold_days": float(threshold),
        "capital_blocked": sum(r.stock_value for r in result_rows),
    }
    return make_result("dead_stock", DeadStockRow, result_rows, skipped, summary)


def build_low_stock(rows: Iterable[Any]) -> ReportResult:
    """Products below their reorder minimum, whatever their sale age. Lowest stock first."""
    frame, skipped = _stock_frame(rows)

    low = frame.loc[frame["low_stock"]].sort_values("current_stock", kind="stable")

    result_rows = _to_rows(low)
    summary = {
        "low_stock_count": float(len(result_rows)),
        "capital_blocked": sum(r.stock_value for r in result_rows),
    }
    return make_result("low_stock", DeadStockRow, result_rows, skipped, summary)


def build_stock_summary(rows: Iterable[Any], search: str = "", low_stock_only: bool = False) -> ReportResult:
    """
    Full stock position, lowest stock first, optionally narrowed by product
    name and to low-stock rows. Totals are over the whole snapshot.
    """
    frame, skipped = _stock_frame(rows)

    view = frame
    if search:
        view = view.loc[view["product_name"].str.lower().str.contains(search.lower(), regex=False)]
    if low_stock_only:
        view = view.loc[view["low_stock"]]
    view = view.sort_values("current_stock", kind="stable")

    summary = {
        "total_value": float(frame["stock_value"].sum()),
        "low_stock_count": float(frame["low_stock"].sum()),
    }
    return make_result("stock_summary", DeadStockRow, _to_rows(view), skipped, summary)


class DeadStockPipeline(ReportPipeline):
    report_type = "dead_stock"
    row_model = DeadStockRow

    def prepare(self, request: Optional[int]) -> int:
        return check_threshold(request)

    def extract(self, request: int) -> list[dict[str, Any]]:
        logger.info(f"--- Dead stock, idle for more than {request} days ---")
        return self.store.query(
            settings.STOCK_TABLE,
            [Filter("days_since_sale", "gt", request), Filter("current_stock", "gt", 0)],
            OrderBy("days_since_sale", descending=True),
        )

    def transform(self, raw_rows: list[dict[str, Any]], request: int) -> ReportResult:
        return build_dead_stock(raw_rows, request)


class LowStockPipeline(ReportPipeline):
    report_type = "low_stock"
    row_model = DeadStockRow

    def extract(self, request: Any) -> list[dict[str, Any]]:
        return self.store.query(settings.STOCK_TABLE, order_by=OrderBy("current_stock"))

    def transform(self, raw_rows: list[dict[str, Any]], request: Any) -> ReportResult:
        return build_low_stock(raw_rows)


@dataclass(frozen=True)
class StockQuery:
    search: str = ""
    low_stock_only: bool = False


class StockSummaryPipeline(ReportPipeline):
    report_type = "stock_summary"
    row_model = DeadStockRow

    def prepare(self, request: Optional[StockQuery]) -> StockQuery:
        return request or StockQuery()

    def extract(self, request: StockQuery) -> list[dict[str, Any]]:
        return self.store.query(settings.STOCK_TABLE, order_by=OrderBy("current_stock"))

    def transform(self, raw_rows: list[dict[str, Any]], request: StockQuery) -> ReportResult:
        return build_stock_summary(raw_rows, request.search, request.low_stock_only)

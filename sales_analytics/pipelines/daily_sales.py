import logging
from typing import Any, Iterable, Optional

import pandas as pd

from sales_analytics import settings
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import Accumulator, DateWindow, records_frame, reduce_period, safe_ratio
from sales_analytics.schemas import DailySalesBucket, ReportResult, TransactionRecord, validate_rows
from sales_analytics.store import OrderBy
from sales_analytics.utils import lookback

logger = logging.getLogger(__name__)

DAILY_ACCUMULATORS = [
    Accumulator("bills_count", "id", op="count"),
    Accumulator("gross_sales", "effective_gross"),
    Accumulator("discount_amount", "discount_amount"),
    Accumulator("net_sales", "amount"),
    Accumulator("items_sold", "items_count"),
]


def _calendar_day(frame: pd.DataFrame) -> pd.Series:
    # Truncate the (already local) timestamp; never slice the raw string.
    return pd.to_datetime(frame["bill_date"]).dt.date


def build_daily_sales(rows: Iterable[Any], window: DateWindow) -> ReportResult:
    """One bucket per local calendar day in `window`, oldest day first."""
    records, skipped = validate_rows(rows, TransactionRecord, settings.SALES_TABLE)

    frame = records_frame(records, TransactionRecord)
    frame["effective_gross"] = [record.effective_gross for record in records]

    grouped = reduce_period(
        frame,
        window,
        key=_calendar_day,
        key_name="date",
        accumulators=DAILY_ACCUMULATORS,
        sort_by="date",
        ascending=True,
    )
    grouped["avg_bill_value"] = safe_ratio(grouped["net_sales"], grouped["bills_count"])

    buckets = [DailySalesBucket(**row) for row in grouped.to_dict("records")]
    summary = {
        "bills": float(sum(b.bills_count for b in buckets)),
        "gross": sum(b.gross_sales for b in buckets),
        "discount": sum(b.discount_amount for b in buckets),
        "net": sum(b.net_sales for b in buckets),
        "items": sum(b.items_sold for b in buckets),
    }
    return make_result("daily_sales", DailySalesBucket, buckets, skipped, summary)


class DailySalesPipeline(ReportPipeline):
    report_type = "daily_sales"
    row_model = DailySalesBucket

    def prepare(self, request: Optional[DateWindow]) -> DateWindow:
        return request or DateWindow.between(*lookback(settings.DAILY_SALES_LOOKBACK_DAYS))

    def extract(self, request: DateWindow) -> list[dict[str, Any]]:
        logger.info(f"--- Daily sales {request.from_date} -> {request.to_date} ---")
        return self.store.query(
            settings.SALES_TABLE, request.store_filters("bill_date"), OrderBy("bill_date")
        )

    def transform(self, raw_rows: list[dict[str, Any]], request: DateWindow) -> ReportResult:
        return build_daily_sales(raw_rows, request)

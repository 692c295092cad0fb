import logging
from typing import Any, Iterable, Optional

from sales_analytics import settings
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import Accumulator, DateWindow, records_frame, reduce_period
from sales_analytics.schemas import PaymentModeBucket, ReportResult, TransactionRecord, validate_rows
from sales_analytics.utils import lookback

logger = logging.getLogger(__name__)

TOTAL_MODE = "TOTAL"

PAYMENT_ACCUMULATORS = [
    Accumulator("count", "id", op="count"),
    Accumulator("amount", "amount"),
]


def build_payment_modes(rows: Iterable[Any], window: DateWindow) -> ReportResult:
    """
    Bills and net amount per payment mode, in first-seen order, followed by a
    TOTAL row. The mode amounts add up to the TOTAL amount.
    """
    records, skipped = validate_rows(rows, TransactionRecord, settings.SALES_TABLE)
    frame = records_frame(records, TransactionRecord)

    grouped = reduce_period(
        frame, window, key="payment_mode", key_name="mode", accumulators=PAYMENT_ACCUMULATORS
    )
    if grouped.empty:
        return make_result("payment_modes", PaymentModeBucket, [], skipped, {"grand_total": 0.0})

    modes = grouped.to_dict("records")
    grand_total = sum(float(row["amount"]) for row in modes)

    buckets = [
        PaymentModeBucket(
            mode=str(row["mode"]),
            count=int(row["count"]),
            amount=float(row["amount"]),
            percentage=float(row["amount"]) / grand_total * 100 if grand_total else 0.0,
        )
        for row in modes
    ]
    buckets.append(
        PaymentModeBucket(
            mode=TOTAL_MODE,
            count=sum(b.count for b in buckets),
            amount=grand_total,
            percentage=100.0 if grand_total else 0.0,
        )
    )
    return make_result(
        "payment_modes", PaymentModeBucket, buckets, skipped, {"grand_total": grand_total}
    )


class PaymentModesPipeline(ReportPipeline):
    report_type = "payment_modes"
    row_model = PaymentModeBucket

    def prepare(self, request: Optional[DateWindow]) -> DateWindow:
        return request or DateWindow.between(*lookback(settings.PAYMENT_LOOKBACK_DAYS))

    def extract(self, request: DateWindow) -> list[dict[str, Any]]:
        logger.info(f"--- Payment modes {request.from_date} -> {request.to_date} ---")
        return self.store.query(settings.SALES_TABLE, request.store_filters("bill_date"))

    def transform(self, raw_rows: list[dict[str, Any]], request: DateWindow) -> ReportResult:
        return build_payment_modes(raw_rows, request)

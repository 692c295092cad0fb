import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from sales_analytics import settings
from sales_analytics.errors import InvalidReportRequest
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import DateWindow
from sales_analytics.schemas import (
    ReportResult,
    TransactionLineItem,
    TransactionRecord,
    parse_row,
    validate_rows,
)
from sales_analytics.store import Filter
from sales_analytics.utils import parse_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillQuery:
    bill_no: str
    day: date


def build_bill_lines(rows: Iterable[Any], bill: BillQuery) -> ReportResult:
    """
    The product lines of one bill. Bill numbers repeat across periods, so
    lines are matched on bill number AND the bill's calendar day.
    """
    lines, skipped = validate_rows(rows, TransactionLineItem, settings.SALE_DETAILS_TABLE)
    day = DateWindow.between(bill.day, bill.day)

    matched = [line for line in lines if line.bill_no == bill.bill_no and day.contains(line.bill_date)]
    summary = {
        "lines": float(len(matched)),
        "net_total": sum(line.net_sale_amount or 0.0 for line in matched),
    }
    return make_result("bill_details", TransactionLineItem, matched, skipped, summary)


class BillDetailsPipeline(ReportPipeline):
    report_type = "bill_details"
    row_model = TransactionLineItem

    def prepare(self, request: Any) -> BillQuery:
        """Accepts a BillQuery or a `sales` row (the bill picked on the dashboard)."""
        if isinstance(request, BillQuery):
            if not str(request.bill_no).strip():
                raise InvalidReportRequest("A bill number is required.")
            return BillQuery(str(request.bill_no).strip(), parse_date(request.day))
        if request is None:
            raise InvalidReportRequest("A bill number is required.")
        bill = parse_row(request, TransactionRecord, settings.SALES_TABLE)
        return BillQuery(bill.bill_no, bill.bill_date.date())

    def extract(self, request: BillQuery) -> list[dict[str, Any]]:
        logger.info(f"--- Bill #{request.bill_no} of {request.day} ---")
        day = DateWindow.between(request.day, request.day)
        return self.store.query(
            settings.SALE_DETAILS_TABLE,
            [Filter("bill_no", "eq", request.bill_no), *day.store_filters("bill_date")],
        )

    def transform(self, raw_rows: list[dict[str, Any]], request: BillQuery) -> ReportResult:
        return build_bill_lines(raw_rows, request)

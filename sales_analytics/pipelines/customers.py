import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sales_analytics import settings
from sales_analytics.errors import InvalidReportRequest
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.rfm import SegmentPolicy, classify_customer
from sales_analytics.schemas import (
    CustomerAggregate,
    CustomerSegmentRow,
    ReportResult,
    Segment,
    validate_rows,
)
from sales_analytics.store import OrderBy
from sales_analytics.utils import zero

logger = logging.getLogger(__name__)

ALL_SEGMENTS = "All"


def check_segment(segment: Optional[str]) -> str:
    segment = segment or ALL_SEGMENTS
    if segment != ALL_SEGMENTS and segment not in {s.value for s in Segment}:
        raise InvalidReportRequest(f"Unknown customer segment '{segment}'.")
    return segment


def build_customer_segments(
    rows: Iterable[Any],
    search: str = "",
    segment: str = ALL_SEGMENTS,
    policy: Optional[SegmentPolicy] = None,
) -> ReportResult:
    """
    Classifies every customer, then narrows by name/phone search and segment.
    Rows are ordered by total spend, biggest spender first. The summary
    counts every segment over the whole customer base.
    """
    segment = check_segment(segment)
    customers, skipped = validate_rows(rows, CustomerAggregate, settings.CUSTOMER_TABLE)

    classified = [
        CustomerSegmentRow(
            customer_name=c.customer_name,
            phone=c.phone,
            total_visits=zero(c.total_visits),
            total_spent=zero(c.total_spent),
            avg_transaction_value=zero(c.avg_transaction_value),
            recency_days=zero(c.recency_days),
            rfm_segment=classify_customer(c.recency_days, c.total_visits, c.total_spent, policy),
        )
        for c in customers
    ]
    classified.sort(key=lambda row: row.total_spent, reverse=True)

    needle = search.strip().lower()
    selected = [
        row
        for row in classified
        if (not needle or needle in row.customer_name.lower() or (row.phone and needle in row.phone))
        and (segment == ALL_SEGMENTS or row.rfm_segment.value == segment)
    ]

    counts = Counter(row.rfm_segment.value for row in classified)
    summary = {s.value: float(counts.get(s.value, 0)) for s in Segment}
    summary["customers"] = float(len(classified))
    return make_result("customer_segments", CustomerSegmentRow, selected, skipped, summary)


@dataclass(frozen=True)
class CustomerQuery:
    search: str = ""
    segment: str = ALL_SEGMENTS


class CustomerSegmentsPipeline(ReportPipeline):
    report_type = "customer_segments"
    row_model = CustomerSegmentRow

    def __init__(self, store, policy: Optional[SegmentPolicy] = None):
        super().__init__(store)
        self.policy = policy

    def prepare(self, request: Optional[CustomerQuery]) -> CustomerQuery:
        request = request or CustomerQuery()
        check_segment(request.segment)
        return request

    def extract(self, request: CustomerQuery) -> list[dict[str, Any]]:
        return self.store.query(
            settings.CUSTOMER_TABLE, order_by=OrderBy("total_spent", descending=True)
        )

    def transform(self, raw_rows: list[dict[str, Any]], request: CustomerQuery) -> ReportResult:
        return build_customer_segments(raw_rows, request.search, request.segment, self.policy)

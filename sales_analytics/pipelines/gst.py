"""
GST tax register: one row per bill in a calendar month.

The tax split depends on the bill's interstate flag (`igstbill`):

- flag set:   the whole combined tax (ctamount + stamount) is IGST; CGST = SGST = 0
- flag unset: the combined tax is split into two equal CGST / SGST legs; IGST = 0
"""

import logging
from typing import Any, Iterable, Optional

import pandas as pd

from sales_analytics import settings
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import DateWindow, numeric, records_frame, within_window
from sales_analytics.schemas import GSTBucket, ReportResult, TransactionRecord, validate_rows
from sales_analytics.store import OrderBy
from sales_analytics.utils import local_today

logger = logging.getLogger(__name__)


def split_tax(combined: pd.Series, interstate: pd.Series) -> tuple[pd.Series, pd.Series, pd.Series]:
    """Returns (cgst, sgst, igst) for each bill."""
    igst = combined.where(interstate, 0.0)
    leg = (combined / 2).where(~interstate, 0.0)
    return leg, leg.copy(), igst


def build_gst_register(rows: Iterable[Any], month: str) -> ReportResult:
    window = DateWindow.month(month)
    records, skipped = validate_rows(rows, TransactionRecord, settings.SALES_TABLE)

    frame = within_window(records_frame(records, TransactionRecord), window)
    if frame.empty:
        return make_result("gst_register", GSTBucket, [], skipped, gst_totals([]))
    frame = frame.sort_values("bill_date", kind="stable")

    amount = numeric(frame["amount"])
    tax_amount = numeric(frame["tax_amount"])
    interstate = frame["igst_bill"].fillna(False).astype(bool)
    combined = numeric(frame["ct_amount"]) + numeric(frame["st_amount"])
    cgst, sgst, igst = split_tax(combined, interstate)

    register = pd.DataFrame(
        {
            "bill_no": frame["bill_no"].astype(str),
            "bill_date": pd.to_datetime(frame["bill_date"]),
            "customer_name": frame["customer_name"].where(
                frame["customer_name"].fillna("").astype(str).str.strip() != "",
                settings.WALK_IN_CUSTOMER,
            ),
            "amount": amount,
            "tax_amount": tax_amount,
            "taxable_value": amount - tax_amount,
            "cgst": cgst,
            "sgst": sgst,
            "igst": igst,
            "interstate": interstate,
        }
    )

    buckets = []
    for row in register.to_dict("records"):
        row["bill_date"] = pd.Timestamp(row["bill_date"]).to_pydatetime()
        buckets.append(GSTBucket(**row))
    return make_result("gst_register", GSTBucket, buckets, skipped, gst_totals(buckets))


def gst_totals(rows: list[GSTBucket]) -> dict[str, float]:
    """Register footer: taxable value, each tax head, total tax and grand total."""
    return {
        "taxable": sum(r.taxable_value for r in rows),
        "cgst": sum(r.cgst for r in rows),
        "sgst": sum(r.sgst for r in rows),
        "igst": sum(r.igst for r in rows),
        "total_tax": sum(r.tax_amount for r in rows),
        "grand": sum(r.amount for r in rows),
    }


class GSTRegisterPipeline(ReportPipeline):
    report_type = "gst_register"
    row_model = GSTBucket

    def prepare(self, request: Optional[str]) -> str:
        month = request or local_today().strftime("%Y-%m")
        DateWindow.month(month)  # validates 'YYYY-MM'
        return month

    def extract(self, request: str) -> list[dict[str, Any]]:
        window = DateWindow.month(request)
        logger.info(f"--- GST register for {request} ({window.from_date} -> {window.to_date}) ---")
        return self.store.query(
            settings.SALES_TABLE, window.store_filters("bill_date"), OrderBy("bill_date")
        )

    def transform(self, raw_rows: list[dict[str, Any]], request: str) -> ReportResult:
        return build_gst_register(raw_rows, request)

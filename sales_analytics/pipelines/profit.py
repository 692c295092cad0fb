"""
Item-level and category-level profit over `sale_details`.

Category profit currently reports a single bucket (settings.DEFAULT_CATEGORY):
`sale_details` does not carry the product category yet, and joining it here
from the stock snapshot would attribute historical lines to today's catalogue.
This is a known limitation until the sync propagates `category_name`.
"""

import logging
from typing import Any, Iterable, Optional

import pandas as pd

from sales_analytics import settings
from sales_analytics.pipeline import ReportPipeline, make_result
from sales_analytics.reducer import Accumulator, DateWindow, records_frame, reduce_period, safe_div, safe_ratio
from sales_analytics.schemas import (
    CategoryProfitBucket,
    ItemProfitBucket,
    ReportResult,
    TransactionLineItem,
    validate_rows,
)
from sales_analytics.utils import lookback

logger = logging.getLogger(__name__)


def _line_accumulators(quantity: str, landing: str, sales: str, profit: str) -> list[Accumulator]:
    return [
        Accumulator(quantity, "quantity"),
        Accumulator(landing, "landing_cost", weight="quantity"),
        Accumulator(sales, "net_sale_amount"),
        Accumulator(profit, "profit_amount"),
    ]


def _line_frame(rows: Iterable[Any]) -> tuple[pd.DataFrame, int]:
    records, skipped = validate_rows(rows, TransactionLineItem, settings.SALE_DETAILS_TABLE)
    return records_frame(records, TransactionLineItem), skipped


def build_item_profit(rows: Iterable[Any], window: DateWindow) -> ReportResult:
    """Per-product profit, most profitable product first."""
    frame, skipped = _line_frame(rows)

    grouped = reduce_period(
        frame,
        window,
        key="product_name",
        accumulators=_line_accumulators(
            "total_quantity", "total_landing_cost", "total_sales", "total_profit"
        ),
        sort_by="total_profit",
        ascending=False,
    )
    grouped["profit_percent"] = safe_ratio(grouped["total_profit"], grouped["total_sales"], 100)

    buckets = [ItemProfitBucket(**row) for row in grouped.to_dict("records")]
    total_sales = sum(b.total_sales for b in buckets)
    total_profit = sum(b.total_profit for b in buckets)
    summary = {
        "total_sales": total_sales,
        "total_profit": total_profit,
        "avg_margin": safe_div(total_profit, total_sales, 100),
    }
    return make_result("item_profit", ItemProfitBucket, buckets, skipped, summary)


def _category(frame: pd.DataFrame) -> pd.Series:
    return pd.Series(settings.DEFAULT_CATEGORY, index=frame.index)


def build_category_profit(rows: Iterable[Any], window: DateWindow) -> ReportResult:
    frame, skipped = _line_frame(rows)

    grouped = reduce_period(
        frame,
        window,
        key=_category,
        key_name="category",
        accumulators=_line_accumulators("items_sold", "landing_cost", "sales", "profit"),
    )
    grouped["margin"] = safe_ratio(grouped["profit"], grouped["sales"], 100)

    buckets = [CategoryProfitBucket(**row) for row in grouped.to_dict("records")]
    summary = {
        "sales": sum(b.sales for b in buckets),
        "profit": sum(b.profit for b in buckets),
    }
    return make_result("category_profit", CategoryProfitBucket, buckets, skipped, summary)


class _LineItemPipeline(ReportPipeline):
    lookback_days = 0

    def prepare(self, request: Optional[DateWindow]) -> DateWindow:
        return request or DateWindow.between(*lookback(self.lookback_days))

    def extract(self, request: DateWindow) -> list[dict[str, Any]]:
        logger.info(f"--- {self.report_type} {request.from_date} -> {request.to_date} ---")
        return self.store.query(settings.SALE_DETAILS_TABLE, request.store_filters("bill_date"))


class ItemProfitPipeline(_LineItemPipeline):
    report_type = "item_profit"
    row_model = ItemProfitBucket
    lookback_days = settings.ITEM_PROFIT_LOOKBACK_DAYS

    def transform(self, raw_rows: list[dict[str, Any]], request: DateWindow) -> ReportResult:
        return build_item_profit(raw_rows, request)


class CategoryProfitPipeline(_LineItemPipeline):
    report_type = "category_profit"
    row_model = CategoryProfitBucket
    lookback_days = settings.CATEGORY_PROFIT_LOOKBACK_DAYS

    def transform(self, raw_rows: list[dict[str, Any]], request: DateWindow) -> ReportResult:
        return build_category_profit(raw_rows, request)

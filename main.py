import argparse
import asyncio
import logging

import pandas as pd

from sales_analytics import settings
from sales_analytics.live import LiveMetricsAggregator
from sales_analytics.logger import setup_logger
from sales_analytics.pipelines.bills import BillDetailsPipeline, BillQuery
from sales_analytics.pipelines.customers import CustomerQuery, CustomerSegmentsPipeline
from sales_analytics.pipelines.daily_sales import DailySalesPipeline
from sales_analytics.pipelines.gst import GSTRegisterPipeline
from sales_analytics.pipelines.payments import PaymentModesPipeline
from sales_analytics.pipelines.profit import CategoryProfitPipeline, ItemProfitPipeline
from sales_analytics.pipelines.stock import (
    DeadStockPipeline,
    LowStockPipeline,
    StockQuery,
    StockSummaryPipeline,
)
from sales_analytics.reducer import DateWindow
from sales_analytics.store import PostgrestStore
from sales_analytics.utils import local_today

logger = logging.getLogger(__name__)

# --- Report Registry ---
# report name -> (pipeline class, how to build its request from the CLI args)
REPORT_REGISTRY = {
    "daily-sales": (DailySalesPipeline, lambda a: _window(a)),
    "item-profit": (ItemProfitPipeline, lambda a: _window(a)),
    "category-profit": (CategoryProfitPipeline, lambda a: _window(a)),
    "payments": (PaymentModesPipeline, lambda a: _window(a)),
    "gst": (GSTRegisterPipeline, lambda a: a.month),
    "dead-stock": (DeadStockPipeline, lambda a: a.threshold),
    "low-stock": (LowStockPipeline, lambda a: None),
    "stock": (StockSummaryPipeline, lambda a: StockQuery(a.search, a.low_stock_only)),
    "customers": (CustomerSegmentsPipeline, lambda a: CustomerQuery(a.search, a.segment)),
    "bill": (BillDetailsPipeline, lambda a: BillQuery(a.bill_no or "", a.date or local_today())),
}


def _window(args: argparse.Namespace) -> DateWindow | None:
    if args.from_date and args.to_date:
        return DateWindow.between(args.from_date, args.to_date)
    return None


def run_report(args: argparse.Namespace) -> None:
    pipeline_cls, make_request = REPORT_REGISTRY[args.report]
    pipeline = pipeline_cls(PostgrestStore())
    result = pipeline.run(make_request(args))

    logger.info(f"\n--- {result.report} [{result.status.value}] ---")
    if result.rows:
        df = pd.DataFrame([row.model_dump() for row in result.rows])
        logger.info(df.to_string(index=False))
    for name, value in result.summary.items():
        logger.info(f"{name}: {value:,.2f}")


async def run_live(args: argparse.Namespace) -> None:
    store = PostgrestStore()
    aggregator = LiveMetricsAggregator(store)
    # Open the feed before seeding so bills committed meanwhile are not missed.
    stream = await asyncio.to_thread(store.subscribe, settings.SALES_TABLE)
    await aggregator.start(stream)
    try:
        while aggregator.check_feed():
            snap = aggregator.snapshot()
            logger.info(
                f"[{snap.as_of}] bills={snap.today_bills} net={snap.today_net:,.2f} "
                f"gross={snap.today_gross:,.2f} discount={snap.today_discount:,.2f} "
                f"profit={snap.today_profit:,.2f} items={snap.today_items:g}"
            )
            await asyncio.sleep(args.interval)
    finally:
        await aggregator.stop()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Point-of-sale analytics reports.")
    parser.add_argument("report", choices=[*REPORT_REGISTRY, "live"])
    parser.add_argument("--from", dest="from_date", help="YYYY-MM-DD")
    parser.add_argument("--to", dest="to_date", help="YYYY-MM-DD")
    parser.add_argument("--month", help="YYYY-MM (gst)")
    parser.add_argument("--threshold", type=int, help="days without a sale (dead-stock)")
    parser.add_argument("--search", default="")
    parser.add_argument("--segment", default="All")
    parser.add_argument("--low-stock-only", action="store_true")
    parser.add_argument("--bill-no", help="bill number (bill)")
    parser.add_argument("--date", help="YYYY-MM-DD day of the bill (bill), default today")
    parser.add_argument("--interval", type=float, default=30.0, help="seconds between live snapshots")
    return parser.parse_args(argv)


if __name__ == "__main__":
    setup_logger()
    arguments = parse_args()
    if arguments.report == "live":
        asyncio.run(run_live(arguments))
    else:
        run_report(arguments)

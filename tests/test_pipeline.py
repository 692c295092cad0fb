import asyncio
import threading
from datetime import date

import pytest
from conftest import FailingStore, make_bill, make_line

from sales_analytics import settings
from sales_analytics.errors import InvalidReportRequest
from sales_analytics.pipelines.bills import BillDetailsPipeline
from sales_analytics.pipelines.daily_sales import DailySalesPipeline
from sales_analytics.pipelines.gst import GSTRegisterPipeline
from sales_analytics.pipelines.stock import DeadStockPipeline
from sales_analytics.reducer import DateWindow
from sales_analytics.schemas import ReportStatus
from sales_analytics.store import InMemoryStore


class GatedStore(InMemoryStore):
    """Holds the first query until `gate` is set; later queries answer at once."""

    def __init__(self, tables=None):
        super().__init__(tables)
        self.gate = threading.Event()
        self.calls = 0

    def query(self, table, filters=(), order_by=None, limit=None):
        self.calls += 1
        if self.calls == 1:
            self.gate.wait(timeout=5)
        return super().query(table, filters, order_by, limit)


def test_pipeline_starts_empty():
    pipeline = DailySalesPipeline(InMemoryStore())

    assert pipeline.result.status == ReportStatus.EMPTY
    assert pipeline.result.rows == []


def test_refresh_loads_rows_from_store(march_sales):
    store = InMemoryStore({settings.SALES_TABLE: march_sales})
    pipeline = DailySalesPipeline(store)

    result = pipeline.run(DateWindow.between("2024-03-30", "2024-03-31"))

    assert result.status == ReportStatus.OK
    assert [r.date for r in result.rows] == [date(2024, 3, 30), date(2024, 3, 31)]
    assert pipeline.result is result


def test_no_rows_is_empty_not_error(march_sales):
    store = InMemoryStore({settings.SALES_TABLE: march_sales})

    result = DailySalesPipeline(store).run(DateWindow.between("2024-01-01", "2024-01-07"))

    assert result.status == ReportStatus.EMPTY
    assert result.error is None


def test_fetch_failure_keeps_last_good_rows(march_sales):
    store = FailingStore({settings.SALES_TABLE: march_sales})
    pipeline = DailySalesPipeline(store)
    window = DateWindow.between("2024-03-30", "2024-03-31")
    good = pipeline.run(window)

    store.fail = True
    failed = pipeline.run(window)

    assert failed.status == ReportStatus.ERROR
    assert "connection reset" in failed.error
    assert failed.rows == good.rows


def test_fetch_failure_on_first_load_is_error_with_no_rows():
    store = FailingStore()
    store.fail = True

    result = DailySalesPipeline(store).run(DateWindow.between("2024-03-30", "2024-03-31"))

    assert result.status == ReportStatus.ERROR
    assert result.rows == []


def test_superseded_request_is_discarded(march_sales):
    store = GatedStore({settings.SALES_TABLE: march_sales})
    pipeline = DailySalesPipeline(store)

    async def scenario():
        slow = asyncio.create_task(pipeline.refresh(DateWindow.between("2024-03-30", "2024-03-30")))
        await asyncio.sleep(0.05)
        fast = await pipeline.refresh(DateWindow.between("2024-03-31", "2024-03-31"))
        store.gate.set()
        await slow
        return fast

    fast = asyncio.run(scenario())

    assert pipeline.result is fast
    assert [r.date for r in pipeline.result.rows] == [date(2024, 3, 31)]


def test_invalid_request_fails_before_touching_state():
    pipeline = GSTRegisterPipeline(FailingStore())

    with pytest.raises(InvalidReportRequest):
        pipeline.run("2024-13")
    with pytest.raises(InvalidReportRequest):
        DeadStockPipeline(FailingStore()).run(400)

    assert pipeline.result.status == ReportStatus.EMPTY


def test_dead_stock_pipeline_pushes_filters_to_store():
    store = InMemoryStore({
        settings.STOCK_TABLE: [
            {"product_name": "Tea", "current_stock": 3, "days_since_sale": 40},
            {"product_name": "Ghee", "current_stock": 4, "days_since_sale": 95},
            {"product_name": "Salt", "current_stock": 0, "days_since_sale": 300},
        ]
    })

    result = DeadStockPipeline(store).run(None)

    assert [r.product_name for r in result.rows] == ["Ghee"]


def test_bill_details_match_number_and_day():
    bill = make_bill(7, "2024-03-30T18:40:00", 150.0)
    store = InMemoryStore({
        settings.SALE_DETAILS_TABLE: [
            make_line("7", "2024-03-30T18:40:00", "Rice 1kg", quantity=1, net_sale_amount=100.0),
            make_line("7", "2024-03-30T18:40:05", "Sugar", quantity=1, net_sale_amount=50.0),
            make_line("7", "2023-03-30T11:00:00", "Old bill", quantity=1, net_sale_amount=999.0),
            make_line("8", "2024-03-30T18:45:00", "Other bill", quantity=1, net_sale_amount=10.0),
        ]
    })

    result = BillDetailsPipeline(store).run(bill)

    assert [r.product_name for r in result.rows] == ["Rice 1kg", "Sugar"]
    assert result.summary["net_total"] == 150.0

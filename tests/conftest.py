from datetime import datetime
from typing import Any

import pytest

from sales_analytics.errors import TransientFetchFailure
from sales_analytics.store import InMemoryStore


def make_bill(bill_id: Any, bill_date: str, amount: float | None, **extra) -> dict[str, Any]:
    row = {
        "id": bill_id,
        "bill_no": str(bill_id),
        "bill_date": bill_date,
        "amount": amount,
    }
    row.update(extra)
    return row


def make_line(bill_no: str, bill_date: str, product: str | None, **extra) -> dict[str, Any]:
    row = {"bill_no": bill_no, "bill_date": bill_date, "product_name": product}
    row.update(extra)
    return row


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FailingStore(InMemoryStore):
    """Answers normally until `fail` is switched on."""

    def __init__(self, tables=None):
        super().__init__(tables)
        self.fail = False

    def query(self, table, filters=(), order_by=None, limit=None):
        if self.fail:
            raise TransientFetchFailure(table, "connection reset")
        return super().query(table, filters, order_by, limit)


@pytest.fixture
def march_sales() -> list[dict[str, Any]]:
    return [
        make_bill(1, "2024-03-30T09:15:00", 900.0, gross_amount=1000.0, discount_amount=100.0,
                  items_count=3, payment_mode="CASH", profit=120.0),
        make_bill(2, "2024-03-30T18:40:00", 450.0, gross_amount=450.0, discount_amount=0,
                  items_count=1, payment_mode="UPI", profit=60.0),
        make_bill(3, "2024-03-31T11:00:00", 300.0, gross_amount=None, discount_amount=None,
                  items_count=2, payment_mode=None, profit=None),
        make_bill(4, "2024-03-31T23:59:00", 250.0, gross_amount=275.0, discount_amount=25.0,
                  items_count=1, payment_mode="card", profit=30.0),
    ]

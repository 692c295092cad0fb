import pytest
from conftest import make_bill, make_line

from sales_analytics.pipelines.bills import BillQuery, build_bill_lines
from sales_analytics.pipelines.customers import build_customer_segments
from sales_analytics.pipelines.daily_sales import build_daily_sales
from sales_analytics.pipelines.gst import build_gst_register
from sales_analytics.pipelines.payments import build_payment_modes
from sales_analytics.pipelines.profit import build_category_profit, build_item_profit
from sales_analytics.pipelines.stock import build_dead_stock, build_low_stock, build_stock_summary
from sales_analytics.reducer import DateWindow

WINDOW = DateWindow.between("2024-03-01", "2024-03-31")

BILLS = [
    make_bill(1, "2024-03-30T09:15:00", 900.0, gross_amount=1000.0, discount_amount=100.0,
              payment_mode="CASH", taxamount=90.0, ctamount=45.0, stamount=45.0),
    make_bill(2, "2024-03-31T23:59:00", 250.0, payment_mode="upi", taxamount=25.0,
              ctamount=12.5, stamount=12.5, igstbill=True, customer_name="Asha Traders"),
]
LINES = [
    make_line("1", "2024-03-30T09:15:00", "Rice 1kg", quantity=2, landing_cost=40.0,
              net_sale_amount=100.0, profit_amount=20.0),
    make_line("2", "2024-03-31T23:59:00", "Sugar", quantity=0.5, landing_cost=50.0,
              net_sale_amount=30.0, profit_amount=5.0),
]
STOCK = [
    {"product_name": "Ghee", "current_stock": 4, "stock_value": 1200.0, "reorder_min": 5,
     "days_since_sale": 95, "last_sale_date": "2023-12-01"},
    {"product_name": "Saffron", "current_stock": 3, "stock_value": 900.0, "days_since_sale": None},
]
CUSTOMERS = [
    {"customer_name": "Ravi Kumar", "phone": 9876543210, "total_visits": 12,
     "total_spent": 25000, "recency_days": 4},
    {"customer_name": "Meena", "total_visits": 1, "total_spent": 400, "recency_days": 250},
]

BUILDERS = {
    "daily_sales": lambda: build_daily_sales(BILLS, WINDOW),
    "item_profit": lambda: build_item_profit(LINES, WINDOW),
    "category_profit": lambda: build_category_profit(LINES, WINDOW),
    "payment_modes": lambda: build_payment_modes(BILLS, WINDOW),
    "gst_register": lambda: build_gst_register(BILLS, "2024-03"),
    "dead_stock": lambda: build_dead_stock(STOCK),
    "low_stock": lambda: build_low_stock(STOCK),
    "stock_summary": lambda: build_stock_summary(STOCK),
    "customer_segments": lambda: build_customer_segments(CUSTOMERS),
    "bill_details": lambda: build_bill_lines(LINES, BillQuery("1", WINDOW.from_date.replace(day=30))),
}


@pytest.mark.parametrize("report", sorted(BUILDERS))
def test_same_input_gives_identical_output(report):
    first = BUILDERS[report]()
    second = BUILDERS[report]()

    assert first.rows
    assert first.model_dump_json() == second.model_dump_json()

import pytest
from conftest import make_bill

from sales_analytics.pipelines.payments import TOTAL_MODE, build_payment_modes
from sales_analytics.reducer import DateWindow
from sales_analytics.schemas import ReportStatus

WINDOW = DateWindow.between("2024-03-30", "2024-03-31")


def test_modes_in_first_seen_order_with_missing_mode_as_cash(march_sales):
    result = build_payment_modes(march_sales, WINDOW)

    modes = {r.mode: r for r in result.rows}
    assert [r.mode for r in result.rows] == ["CASH", "UPI", "CARD", TOTAL_MODE]
    assert modes["CASH"].count == 2
    assert modes["CASH"].amount == 1200.0
    assert modes["CARD"].amount == 250.0


def test_mode_rows_add_up_to_total_row(march_sales):
    result = build_payment_modes(march_sales, WINDOW)

    *mode_rows, total = result.rows
    assert total.mode == TOTAL_MODE
    assert sum(r.amount for r in mode_rows) == total.amount
    assert total.amount == result.summary["grand_total"] == 1900.0
    assert total.count == 4
    assert sum(r.percentage for r in mode_rows) == pytest.approx(100.0)


def test_unknown_mode_is_other_and_null_amount_is_zero():
    rows = [
        make_bill(1, "2024-03-30T10:00:00", None, payment_mode="cheque"),
        make_bill(2, "2024-03-30T11:00:00", 0.1, payment_mode="UPI"),
        make_bill(3, "2024-03-30T12:00:00", 0.2, payment_mode="UPI"),
    ]

    result = build_payment_modes(rows, WINDOW)

    *mode_rows, total = result.rows
    assert [r.mode for r in mode_rows] == ["OTHER", "UPI"]
    assert mode_rows[0].amount == 0.0
    assert mode_rows[0].percentage == 0.0
    assert sum(r.amount for r in mode_rows) == total.amount


def test_all_zero_amounts_give_zero_percentages():
    rows = [make_bill(1, "2024-03-30T10:00:00", 0.0)]

    result = build_payment_modes(rows, WINDOW)

    assert all(r.percentage == 0.0 for r in result.rows)


def test_empty_range_has_no_total_row(march_sales):
    result = build_payment_modes(march_sales, DateWindow.between("2024-01-01", "2024-01-31"))

    assert result.status == ReportStatus.EMPTY
    assert result.rows == []
    assert result.summary["grand_total"] == 0.0

from datetime import date, datetime

import pandas as pd
import pytest

from sales_analytics.errors import InvalidReportRequest
from sales_analytics.reducer import (
    Accumulator,
    DateWindow,
    reduce_period,
    safe_div,
    safe_ratio,
    within_window,
)


def _frame(rows):
    return pd.DataFrame(rows, columns=["key", "bill_date", "value", "qty"])


def test_last_minute_of_to_date_is_included():
    frame = _frame([("a", datetime(2024, 3, 31, 23, 59, 0), 10.0, 1)])

    included = within_window(frame, DateWindow.between("2024-03-01", "2024-03-31"))
    excluded = within_window(frame, DateWindow.between("2024-03-01", "2024-03-30"))

    assert len(included) == 1
    assert len(excluded) == 0


def test_window_bounds_cover_whole_days():
    window = DateWindow.between(date(2024, 3, 1), "2024-03-31")

    assert window.contains(datetime(2024, 3, 1, 0, 0, 0))
    assert window.contains(datetime(2024, 3, 31, 23, 59, 59, 999999))
    assert not window.contains(datetime(2024, 4, 1, 0, 0, 0))
    assert not window.contains(datetime(2024, 2, 29, 23, 59, 59))
    assert window.from_date == date(2024, 3, 1)
    assert window.to_date == date(2024, 3, 31)


def test_month_window_uses_real_month_end():
    window = DateWindow.month("2024-02")

    assert window.to_date == date(2024, 2, 29)
    assert window.store_filters()[1].value == "2024-02-29 23:59:59.999999"


def test_reversed_or_malformed_windows_are_rejected():
    with pytest.raises(InvalidReportRequest):
        DateWindow.between("2024-03-31", "2024-03-01")
    with pytest.raises(InvalidReportRequest):
        DateWindow.month("March")
    with pytest.raises(InvalidReportRequest):
        DateWindow.between("yesterday", "2024-03-01")


def test_keys_keep_first_seen_order_and_nulls_fold_to_zero():
    frame = _frame(
        [
            ("b", datetime(2024, 3, 1, 10), 5.0, 1),
            ("a", datetime(2024, 3, 1, 11), None, 2),
            ("b", datetime(2024, 3, 2, 10), 7.5, None),
        ]
    )

    out = reduce_period(
        frame,
        DateWindow.between("2024-03-01", "2024-03-02"),
        key="key",
        accumulators=[Accumulator("total", "value"), Accumulator("rows", "key", op="count")],
    )

    assert list(out["key"]) == ["b", "a"]
    assert list(out["total"]) == [12.5, 0.0]
    assert list(out["rows"]) == [2, 1]


def test_weighted_accumulator_and_sorting():
    frame = _frame(
        [
            ("x", datetime(2024, 3, 1), 2.0, 3),
            ("y", datetime(2024, 3, 1), 10.0, 0.5),
            ("x", datetime(2024, 3, 1), 4.0, 1),
        ]
    )

    out = reduce_period(
        frame,
        None,
        key="key",
        accumulators=[Accumulator("cost", "value", weight="qty")],
        sort_by="cost",
        ascending=False,
    )

    assert list(out["key"]) == ["x", "y"]
    assert list(out["cost"]) == [10.0, 5.0]


def test_empty_input_keeps_output_columns():
    out = reduce_period(
        _frame([]),
        DateWindow.between("2024-03-01", "2024-03-02"),
        key="key",
        accumulators=[Accumulator("total", "value")],
    )

    assert out.empty
    assert list(out.columns) == ["key", "total"]


def test_unknown_accumulator_op_is_rejected():
    with pytest.raises(ValueError):
        Accumulator("avg", "value", op="mean")


def test_ratios_are_zero_guarded():
    ratio = safe_ratio(pd.Series([10.0, 5.0]), pd.Series([4, 0]), scale=100)

    assert list(ratio) == [250.0, 0.0]
    assert safe_div(1.0, 0.0) == 0.0

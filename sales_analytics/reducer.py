"""
Period reducer: the shared grouping primitive behind every bucketed report.

Windows are calendar-day inclusive. `DateWindow.between(d1, d2)` covers
d1 00:00:00 up to the very end of d2, so nothing stamped late on the last
day falls out of the report.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Optional, Union

import pandas as pd
from pydantic import BaseModel

from .errors import InvalidReportRequest
from .store import Filter
from .utils import month_bounds, parse_date

ACCUMULATOR_OPS = ("sum", "count", "min", "max")


@dataclass(frozen=True)
class DateWindow:
    start: datetime
    end: datetime  # exclusive: midnight after the last included day

    @classmethod
    def between(cls, from_date: Union[str, date], to_date: Union[str, date]) -> "DateWindow":
        first, last = parse_date(from_date), parse_date(to_date)
        if first > last:
            raise InvalidReportRequest(f"Window starts after it ends ({first} > {last}).")
        return cls(
            start=datetime.combine(first, time.min),
            end=datetime.combine(last + timedelta(days=1), time.min),
        )

    @classmethod
    def month(cls, month: str) -> "DateWindow":
        return cls.between(*month_bounds(month))

    @property
    def from_date(self) -> date:
        return self.start.date()

    @property
    def to_date(self) -> date:
        return (self.end - timedelta(days=1)).date()

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def store_filters(self, field: str = "bill_date") -> list[Filter]:
        """The same window expressed as store range filters."""
        return [
            Filter(field, "gte", f"{self.from_date.isoformat()} 00:00:00"),
            Filter(field, "lte", f"{self.to_date.isoformat()} 23:59:59.999999"),
        ]


@dataclass(frozen=True)
class Accumulator:
    """
    A named output column folded from `source`. With `weight`, each source
    value is multiplied by the weight column first (e.g., rate x quantity).
    """

    name: str
    source: str
    op: str = "sum"
    weight: Optional[str] = None

    def __post_init__(self):
        if self.op not in ACCUMULATOR_OPS:
            raise ValueError(f"Unsupported accumulator op '{self.op}'")


KeyFunc = Union[str, Callable[[pd.DataFrame], pd.Series]]


def records_frame(records: Iterable[BaseModel], model: type[BaseModel]) -> pd.DataFrame:
    """Builds a DataFrame whose columns are exactly the model's fields, even when empty."""
    return pd.DataFrame(
        [record.model_dump() for record in records], columns=list(model.model_fields)
    )


def numeric(column: pd.Series) -> pd.Series:
    """Coerces a column to float with missing values folded to 0."""
    return pd.to_numeric(column, errors="coerce").fillna(0.0).astype(float)


def within_window(frame: pd.DataFrame, window: DateWindow, time_field: str = "bill_date") -> pd.DataFrame:
    if frame.empty:
        return frame
    stamps = pd.to_datetime(frame[time_field])
    mask = (stamps >= window.start) & (stamps < window.end)
    return frame.loc[mask]


def reduce_period(
    frame: pd.DataFrame,
    window: Optional[DateWindow],
    key: KeyFunc,
    accumulators: list[Accumulator],
    key_name: Optional[str] = None,
    time_field: str = "bill_date",
    sort_by: Optional[str] = None,
    ascending: bool = False,
) -> pd.DataFrame:
    """
    Groups `frame` by `key` and folds each accumulator, one row per key.
    Keys keep first-seen order unless `sort_by` is given. Derived ratios are
    the caller's job, computed afterwards from the finished sums.
    """
    if key_name is None:
        if not isinstance(key, str):
            raise ValueError("key_name is required when key is a function")
        key_name = key

    output_columns = [key_name] + [acc.name for acc in accumulators]
    scoped = within_window(frame, window, time_field) if window is not None else frame
    if scoped.empty:
        return pd.DataFrame(columns=output_columns)

    work = pd.DataFrame(index=scoped.index)
    work[key_name] = key(scoped) if callable(key) else scoped[key]

    named_aggs = {}
    for acc in accumulators:
        values = scoped[acc.source]
        if acc.op != "count":
            values = numeric(values)
            if acc.weight is not None:
                values = values * numeric(scoped[acc.weight])
        work[acc.name] = values
        named_aggs[acc.name] = (acc.name, acc.op)

    grouped = work.groupby(key_name, sort=False, dropna=False).agg(**named_aggs).reset_index()
    grouped = grouped[output_columns]

    if sort_by is not None:
        grouped = grouped.sort_values(sort_by, ascending=ascending, kind="stable").reset_index(drop=True)
    return grouped


def safe_ratio(numerator: pd.Series, denominator: pd.Series, scale: float = 1.0) -> pd.Series:
    """Element-wise numerator / denominator * scale, with 0 wherever the denominator is 0."""
    den = numeric(denominator)
    ratio = numeric(numerator) * scale / den.where(den != 0)
    return ratio.fillna(0.0)


def safe_div(numerator: float, denominator: float, scale: float = 1.0) -> float:
    return numerator * scale / denominator if denominator else 0.0

"""
Record store adapters.

The engine only ever reads from the store through `query` (filter/range/order)
and `subscribe` (new INSERTs). Two adapters are provided:

- `InMemoryStore`: rows held in process, used by tests and local runs.
- `PostgrestStore`: a PostgREST / Supabase REST endpoint reached with requests.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional, Protocol

import requests

from . import settings
from .errors import TransientFetchFailure
from .utils import to_local_naive

logger = logging.getLogger(__name__)

FILTER_OPS = ("gte", "lte", "eq", "gt")


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op '{self.op}', expected one of {FILTER_OPS}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


class RecordStore(Protocol):
    def query(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Returns matching rows or raises TransientFetchFailure."""
        ...

    def subscribe(
        self, table: str, event_types: Iterable[str] = ("INSERT",)
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Opens a feed of newly inserted rows. The subscription is registered
        when this returns, before the first iteration. Delivery is at-least-once.
        """
        ...


def _comparable(value: Any) -> Any:
    # Timestamps arrive as strings in several ISO shapes; compare them as local datetimes.
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, str):
        try:
            return to_local_naive(datetime.fromisoformat(value.strip()))
        except ValueError:
            return value
    return value


def _matches(row: dict[str, Any], flt: Filter) -> bool:
    left = _comparable(row.get(flt.field))
    right = _comparable(flt.value)
    if flt.op == "eq":
        return left == right
    if left is None:
        return False
    try:
        if flt.op == "gte":
            return left >= right
        if flt.op == "lte":
            return left <= right
        return left > right
    except TypeError:
        return False


class InMemoryStore:
    def __init__(self, tables: Optional[dict[str, list[dict[str, Any]]]] = None):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for table, rows in (tables or {}).items():
            self.tables[table] = [dict(row) for row in rows]
        self._subscribers: dict[str, list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = (
            defaultdict(list)
        )

    def insert(self, table: str, row: dict[str, Any]) -> None:
        """Appends a row and pushes it to every open subscription. Safe from any thread."""
        self.tables[table].append(dict(row))
        for loop, queue in list(self._subscribers[table]):
            loop.call_soon_threadsafe(queue.put_nowait, dict(row))

    def query(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        filters = list(filters)
        rows = [dict(row) for row in self.tables[table] if all(_matches(row, f) for f in filters)]

        if order_by is not None:
            present = [r for r in rows if r.get(order_by.field) is not None]
            missing = [r for r in rows if r.get(order_by.field) is None]
            present.sort(key=lambda r: _comparable(r[order_by.field]), reverse=order_by.descending)
            rows = present + missing

        if limit is not None:
            rows = rows[:limit]
        return rows

    def subscribe(
        self, table: str, event_types: Iterable[str] = ("INSERT",)
    ) -> AsyncIterator[dict[str, Any]]:
        """Must be called from the event loop that will iterate the feed."""
        if set(event_types) - {"INSERT"}:
            raise ValueError("Only INSERT events are supported.")
        subscriber = (asyncio.get_running_loop(), asyncio.Queue())
        self._subscribers[table].append(subscriber)
        return self._feed(table, subscriber)

    async def _feed(self, table: str, subscriber: tuple) -> AsyncIterator[dict[str, Any]]:
        _, queue = subscriber
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[table].remove(subscriber)


def _format_value(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PostgrestStore:
    """
    Reads from a PostgREST endpoint (Supabase exposes one at /rest/v1).
    `subscribe` polls for rows past the last seen cursor instead of holding a
    realtime socket, so a row may be seen again after a retry.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.STORE_URL or "").rstrip("/")
        if not self.base_url:
            raise ValueError("STORE_URL not set. Configure it in .env or pass base_url.")
        self.api_key = api_key or settings.STORE_API_KEY
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def query(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, str]] = [("select", "*")]
        for flt in filters:
            params.append((flt.field, f"{flt.op}.{_format_value(flt.value)}"))
        if order_by is not None:
            direction = "desc" if order_by.descending else "asc"
            params.append(("order", f"{order_by.field}.{direction}"))
        if limit is not None:
            params.append(("limit", str(limit)))

        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self.session.get(
                url, params=params, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise TransientFetchFailure(table, str(e)) from e

        if not isinstance(rows, list):
            raise TransientFetchFailure(table, f"unexpected payload type {type(rows).__name__}")
        logger.debug(f"Fetched {len(rows)} row(s) from '{table}'.")
        return rows

    def subscribe(
        self,
        table: str,
        event_types: Iterable[str] = ("INSERT",),
        cursor_field: str = "id",
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Reads the newest `cursor_field` now and returns a feed of rows past it.
        The read is a blocking request; call it through asyncio.to_thread
        from inside a running loop. If it fails, the feed retries it on its
        first poll and rows inserted in between are not delivered.
        """
        if set(event_types) - {"INSERT"}:
            raise ValueError("Only INSERT events are supported.")
        try:
            cursor = self._latest_cursor(table, cursor_field)
        except TransientFetchFailure as e:
            logger.warning(f"⚠️ Could not read subscription cursor: {e}. Will retry on first poll.")
            cursor = None
        return self._poll(table, cursor_field, cursor)

    def _latest_cursor(self, table: str, cursor_field: str) -> Any:
        latest = self.query(table, (), OrderBy(cursor_field, descending=True), 1)
        return latest[0].get(cursor_field) if latest else 0

    async def _poll(self, table: str, cursor_field: str, cursor: Any) -> AsyncIterator[dict[str, Any]]:
        while cursor is None:
            await asyncio.sleep(self.poll_interval)
            try:
                cursor = await asyncio.to_thread(self._latest_cursor, table, cursor_field)
            except TransientFetchFailure as e:
                logger.warning(f"⚠️ Could not read subscription cursor: {e}. Retrying.")

        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                rows = await asyncio.to_thread(
                    self.query, table, [Filter(cursor_field, "gt", cursor)], OrderBy(cursor_field)
                )
            except TransientFetchFailure as e:
                logger.warning(f"⚠️ Poll of '{table}' failed: {e}. Will retry.")
                continue
            for row in rows:
                cursor = row.get(cursor_field, cursor)
                yield row

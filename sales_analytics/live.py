"""
Live "today" metrics for the dashboard.

Lifecycle of one aggregator (one per user session):

    SEEDING  -> bulk fetch of the latest N bills (failure = empty baseline)
    LIVE     -> new bills are applied one at a time from a queue
    CLOSED   -> after stop()

Running sums are additive: each new bill contributes exactly once and the
list is never rescanned. Bills are deduplicated by id because the feed is
at-least-once. The "today" bucket follows the wall clock, so a session that
crosses midnight starts the new day from zero and keeps only the newest
`seed_limit` bills of earlier days.

A feed passed to `start()` is followed before the seed query runs, so a bill
committed while seeding waits in the queue instead of being missed. Bills
seen by both paths are absorbed by the id dedupe.
"""

import asyncio
import bisect
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from operator import attrgetter
from typing import Any, AsyncIterator, Callable, Optional

from . import settings
from .errors import MalformedRecord, TransientFetchFailure
from .schemas import LiveMetricsSnapshot, TransactionRecord, parse_row
from .store import OrderBy, RecordStore
from .utils import local_now, zero

logger = logging.getLogger(__name__)


class AggregatorState(str, Enum):
    SEEDING = "seeding"
    LIVE = "live"
    CLOSED = "closed"


@dataclass
class RunningTotals:
    net: float = 0.0
    gross: float = 0.0
    discount: float = 0.0
    profit: float = 0.0
    items: float = 0.0
    bills: int = 0

    def add(self, record: TransactionRecord) -> None:
        self.net += zero(record.amount)
        self.gross += record.effective_gross
        self.discount += zero(record.discount_amount)
        self.profit += zero(record.profit)
        self.items += zero(record.items_count)
        self.bills += 1


class LiveMetricsAggregator:
    def __init__(
        self,
        store: RecordStore,
        seed_limit: Optional[int] = None,
        clock: Callable[[], datetime] = local_now,
        table: str = settings.SALES_TABLE,
    ):
        self.store = store
        self.seed_limit = seed_limit or settings.LIVE_SEED_LIMIT
        self.table = table
        self.state = AggregatorState.SEEDING
        self.skipped_events = 0
        self.duplicate_events = 0

        self._clock = clock
        self._today: date = clock().date()
        self._totals = RunningTotals()
        self._transactions: list[TransactionRecord] = []  # oldest first
        self._seen_ids: set[str] = set()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._follower: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    async def start(self, stream: Optional[AsyncIterator[dict[str, Any]]] = None) -> None:
        """
        Starts following `stream` (an already opened store subscription),
        seeds from the store, then starts the single consumer of the queue.
        """
        if stream is not None:
            self._follower = asyncio.create_task(self.follow(stream), name="live-metrics-feed")
        await self.seed()
        self._consumer = asyncio.create_task(self._consume(), name="live-metrics-consumer")

    async def seed(self) -> None:
        try:
            rows = await asyncio.to_thread(
                self.store.query,
                self.table,
                (),
                OrderBy("bill_date", descending=True),
                self.seed_limit,
            )
        except TransientFetchFailure as e:
            logger.error(f"❌ Seed fetch failed: {e}. Going live with an empty baseline.")
            rows = []

        self._today = self._clock().date()
        for row in rows:
            self._apply(row)
        self.state = AggregatorState.LIVE
        logger.info(
            f"✅ Live metrics seeded with {len(self._transactions)} bill(s); "
            f"{self._totals.bills} from today ({self._today})."
        )

    async def stop(self) -> None:
        for task in (self._follower, self._consumer):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"❌ Live feed had already failed: {e}")
        self._follower = None
        self._consumer = None
        self.state = AggregatorState.CLOSED
        logger.info("Live metrics stopped.")

    def check_feed(self) -> bool:
        """
        Returns False once the followed feed has ended. If it ended with an
        error, that error is raised. True when no feed was given to start().
        """
        if self._follower is None or not self._follower.done():
            return True
        if self._follower.cancelled():
            return False
        error = self._follower.exception()
        if error is not None:
            raise error
        logger.warning("⚠️ Live feed ended; snapshots are no longer updated.")
        return False

    # --- Event Feed ---

    async def publish(self, row: dict[str, Any]) -> None:
        """Queues one new bill. Bills published while seeding wait for the seed."""
        await self._queue.put(row)

    async def follow(self, stream: AsyncIterator[dict[str, Any]]) -> None:
        """Feeds every row of a subscription stream into the queue."""
        async for row in stream:
            await self.publish(row)

    async def drain(self) -> None:
        """Waits until every queued bill has been applied."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            row = await self._queue.get()
            try:
                self._apply(row)
            finally:
                self._queue.task_done()

    # --- Merge ---

    def _roll_over_if_needed(self) -> None:
        today = self._clock().date()
        if today != self._today:
            logger.info(f"🌙 Day rolled over {self._today} -> {today}; today's totals reset.")
            self._today = today
            self._totals = RunningTotals()
            self._trim_history()

    def _trim_history(self) -> None:
        # Keep the newest bills only; older ids may be re-added by a late redelivery
        # but can no longer count towards today.
        if len(self._transactions) <= self.seed_limit:
            return
        dropped = len(self._transactions) - self.seed_limit
        self._transactions = self._transactions[dropped:]
        self._seen_ids = {str(record.id) for record in self._transactions}
        logger.info(f"Trimmed {dropped} bill(s) from earlier days.")

    def _apply(self, row: Any) -> bool:
        try:
            record = parse_row(row, TransactionRecord, self.table)
        except MalformedRecord as e:
            self.skipped_events += 1
            logger.warning(f"⚠️ Ignoring live event: {e}")
            return False

        record_id = str(record.id)
        if record_id in self._seen_ids:
            self.duplicate_events += 1
            logger.warning(f"⚠️ Duplicate delivery of bill id {record_id} ignored.")
            return False
        self._seen_ids.add(record_id)

        bisect.insort(self._transactions, record, key=attrgetter("bill_date"))

        self._roll_over_if_needed()
        if record.bill_date.date() == self._today:
            self._totals.add(record)
        return True

    def snapshot(self) -> LiveMetricsSnapshot:
        self._roll_over_if_needed()
        return LiveMetricsSnapshot(
            state=self.state.value,
            as_of=self._today,
            today_net=self._totals.net,
            today_gross=self._totals.gross,
            today_discount=self._totals.discount,
            today_profit=self._totals.profit,
            today_items=self._totals.items,
            today_bills=self._totals.bills,
            ordered_transactions=list(reversed(self._transactions)),
            skipped_events=self.skipped_events,
            duplicate_events=self.duplicate_events,
        )

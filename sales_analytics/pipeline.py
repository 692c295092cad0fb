import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from .errors import TransientFetchFailure
from .schemas import ReportResult, ReportStatus
from .store import RecordStore

logger = logging.getLogger(__name__)


def make_result(
    report: str,
    row_model: type[BaseModel],
    rows: list[Any],
    skipped: int = 0,
    summary: dict[str, float] | None = None,
) -> ReportResult:
    """Wraps finished rows; zero rows is EMPTY, a valid state and not a failure."""
    return ReportResult[row_model](
        report=report,
        status=ReportStatus.OK if rows else ReportStatus.EMPTY,
        rows=rows,
        skipped=skipped,
        summary=summary or {},
    )


class ReportPipeline(ABC):
    """
    Abstract base class for report views (Daily Sales, GST, Dead Stock, etc.).
    Follows an Extract -> Transform -> Load pattern:

    - extract: query the record store for the request's rows
    - transform: hand the rows to the report's pure build function
    - load: commit the result as the view's current output

    One instance is one caller's view of a report. It keeps the last good
    output across fetch failures and drops results of superseded requests.
    """

    report_type: str = ""
    row_model: type[BaseModel]

    def __init__(self, store: RecordStore):
        self.store = store
        self.result: ReportResult = ReportResult[self.row_model](
            report=self.report_type, status=ReportStatus.EMPTY
        )
        self._ticket = 0

    def prepare(self, request: Any) -> Any:
        """Validates and normalizes the caller's request. Raises InvalidReportRequest."""
        return request

    @abstractmethod
    def extract(self, request: Any) -> list[dict[str, Any]]:
        """Queries the store. May raise TransientFetchFailure."""
        pass

    @abstractmethod
    def transform(self, raw_rows: list[dict[str, Any]], request: Any) -> ReportResult:
        """Pure: same rows and request always give the same result."""
        pass

    async def refresh(self, request: Any = None) -> ReportResult:
        """
        Runs the report for `request`. If a newer refresh starts before this
        one finishes, this one's output is discarded.
        """
        request = self.prepare(request)
        self._ticket += 1
        ticket = self._ticket

        logger.info(f"🚀 STEP: {self.report_type.upper()} REPORT")
        self.result = self.result.model_copy(update={"status": ReportStatus.LOADING})

        # --- 1. EXTRACT ---
        try:
            raw_rows = await asyncio.to_thread(self.extract, request)
        except TransientFetchFailure as e:
            if ticket != self._ticket:
                logger.info(f"Discarding failure of superseded {self.report_type} request.")
                return self.result
            logger.error(f"❌ {e}. Keeping last good {self.report_type} output.")
            self.result = self.result.model_copy(
                update={"status": ReportStatus.ERROR, "error": str(e)}
            )
            return self.result

        if ticket != self._ticket:
            logger.info(f"Discarding stale {self.report_type} result (superseded).")
            return self.result

        # --- 2. TRANSFORM ---
        logger.info(f"  > Fetched {len(raw_rows)} row(s).")
        built = self.transform(raw_rows, request)

        # --- 3. LOAD ---
        return self.load(built)

    def run(self, request: Any = None) -> ReportResult:
        """Synchronous entry point for scripts."""
        return asyncio.run(self.refresh(request))

    def load(self, built: ReportResult) -> ReportResult:
        self.result = built
        if built.status == ReportStatus.EMPTY:
            logger.warning(f"⚠️ No rows for {self.report_type} in the requested range.")
        else:
            logger.info(f"✅ {self.report_type.capitalize()} report ready ({len(built.rows)} rows).")
        if built.skipped:
            logger.warning(f"⚠️ {built.skipped} malformed row(s) were skipped.")
        return built

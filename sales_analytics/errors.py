class AnalyticsError(Exception):
    """Base error for the analytics engine."""


class TransientFetchFailure(AnalyticsError):
    """The record store could not answer a query. Retrying is the caller's call."""

    def __init__(self, table: str, reason: str):
        super().__init__(f"Fetch from '{table}' failed: {reason}")
        self.table = table
        self.reason = reason


class MalformedRecord(AnalyticsError):
    """A row is missing a required key field (id, timestamp, ...)."""

    def __init__(self, table: str, detail: str):
        super().__init__(f"Malformed '{table}' row: {detail}")
        self.table = table
        self.detail = detail


class InvalidReportRequest(AnalyticsError, ValueError):
    pass

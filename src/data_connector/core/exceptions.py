"""
Engine error taxonomy.

Only malformed calls are exceptional. Expected steady states (fewer than two
datasets, empty or all-null join keys, low match rates) are reported inside
result payloads instead of being raised.
"""


class DataConnectorError(Exception):
    """Base class for engine errors."""

    pass


class InvalidColumnReferenceError(DataConnectorError, ValueError):
    """Raised when a caller names a column missing from a dataset's manifest."""

    def __init__(self, dataset_id: str, column: str, available: list[str] | None = None):
        self.dataset_id = dataset_id
        self.column = column
        self.available = list(available or [])
        message = f"Column '{column}' not found in dataset '{dataset_id}'"
        if self.available:
            message += f" (available: {', '.join(self.available[:20])})"
        super().__init__(message)


class OperationCancelledError(DataConnectorError):
    """Raised at a batch boundary when the caller's cancellation token is set."""

    def __init__(self, stage: str, processed: int = 0, total: int = 0):
        self.stage = stage
        self.processed = processed
        self.total = total
        super().__init__(f"Operation '{stage}' cancelled after {processed}/{total} items")


class SchemaTypeConflictError(DataConnectorError, ValueError):
    """Raised when promoting a relationship would mix star and snowflake tags on one dataset pair."""

    pass

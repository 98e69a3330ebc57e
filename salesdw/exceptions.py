"""Domain exceptions for the sales warehouse loader.

Record-level errors (RecordError subclasses) abort the batch that contains the
record. StorageUnavailable aborts the whole run. DuplicateFact is an expected
outcome of reprocessing and is never surfaced to callers of the ingestor.
"""

from typing import Any, Optional


class WarehouseError(Exception):
    """Base exception for all warehouse loader errors."""

    pass


class RecordError(WarehouseError):
    """A record cannot be loaded; its whole batch is rolled back."""

    retryable = False

    def __init__(self, message: str, record_number: Optional[int] = None):
        super().__init__(message)
        self.reason = message
        self.record_number = record_number


class ValidationError(RecordError):
    """Raised when a record or dimension attribute set is malformed.

    This exception is raised when:
    - A required field is missing or blank
    - A value cannot be parsed (dates, numbers)
    - A calendar date does not exist
    """

    pass


class DimensionConflict(RecordError):
    """Raised when a dimension creation race is not resolved within the retry budget."""

    retryable = True

    def __init__(self, dimension: str, natural_key: Any, attempts: int):
        super().__init__(
            f"Could not resolve {dimension} '{natural_key}' after {attempts} attempts"
        )
        self.dimension = dimension
        self.natural_key = natural_key
        self.attempts = attempts


class ConsistencyError(RecordError):
    """Raised when a supplied total disagrees with price x quantity beyond tolerance."""

    pass


class DuplicateFact(WarehouseError):
    """A fact with the same business key already exists."""

    def __init__(self, business_key: tuple):
        super().__init__(f"Fact already loaded for business key {business_key}")
        self.business_key = business_key


class StorageUnavailable(WarehouseError):
    """Raised when the warehouse database cannot be reached.

    Fatal to the entire run. Batches committed before the failure stay
    committed.
    """

    pass


class AggregateRefreshError(WarehouseError):
    """Raised when an aggregate refresh fails; the published snapshot is unchanged."""

    def __init__(self, mode: str, message: str):
        super().__init__(f"Refresh of {mode} aggregate failed: {message}")
        self.mode = mode

"""
Custom exceptions for the sync engine with structured error context.

Every error carries a context dictionary for logging and an optional
original exception which is chained as ``__cause__``.

Exception Hierarchy:
    SyncException (base)
    ├── ProvisioningError
    ├── PlanUnavailable
    ├── SyncInProgress
    ├── ExtractionError
    │   ├── FetchFailed
    │   └── APIExtractionError
    │       ├── NetworkError (retryable)
    │       ├── RateLimitError (retryable)
    │       └── AuthenticationError
    ├── TransformationError
    │   └── MalformedRecord
    └── LoadError
        ├── SinkWriteError
        └── DeliveryFailed

Run-level failures (ProvisioningError, PlanUnavailable) abort a run and
SyncInProgress rejects one before it starts. The per-date failures
(FetchFailed, MalformedRecord, DeliveryFailed) only drop that date from
the run.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence


class SyncException(Exception):
    """
    Base exception for all sync errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (date, table, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{str(self.original_exception)}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


# ============================================================================
# Run-level Errors
# ============================================================================

class ProvisioningError(SyncException):
    """
    Raised when the destination dataset or table cannot be ensured.

    Context should include:
        - table_id: Fully qualified destination table
        - operation: "ensure_dataset" or "ensure_table"
    """
    pass


class PlanUnavailable(SyncException):
    """
    Raised when the sink cannot answer the MAX(date) query.

    Context should include:
        - table_id: Fully qualified destination table
    """
    pass


class SyncInProgress(SyncException):
    """Raised when a run is requested while another run holds the sync lock."""
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(SyncException):
    """Base exception for data extraction failures."""
    pass


class FetchFailed(ExtractionError):
    """
    Raised when any page of a date's fetch fails. Pages already fetched for
    the date are discarded.
    """

    def __init__(
        self,
        day: date,
        message: str = "Fetch failed",
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        context = dict(context or {})
        context["date"] = day.isoformat()
        super().__init__(message, context, original_exception)
        self.date = day


class APIExtractionError(ExtractionError):
    """
    Exception raised when a Search Analytics request fails.

    Context should include:
        - api_url: The API endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
        - retry_count: Number of retries attempted
    """
    pass


class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic in the HTTP client.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Network-related errors that should be retried."""
    pass


class RateLimitError(RetryableError, APIExtractionError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(APIExtractionError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(SyncException):
    """Base exception for data transformation failures."""
    pass


class MalformedRecord(TransformationError):
    """
    Raised when a raw API record cannot be shaped into an AnalyticsRecord.

    Context should include:
        - date: Date being shaped
        - field_name: Missing or invalid field (if known)
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(SyncException):
    """Base exception for data loading failures."""
    pass


class SinkWriteError(LoadError):
    """
    Raised by a sink backend when a single write request is rejected.

    Context should include:
        - table_id: Destination table
        - rows: Number of rows in the rejected request
        - errors: Backend error payload (truncated)
    """
    pass


class DeliveryFailed(LoadError):
    """Raised when one or more chunks of a delivery were not written."""

    def __init__(
        self,
        failed_chunk_indices: Sequence[int],
        day: Optional[date] = None,
        message: str = "Delivery failed",
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        context = dict(context or {})
        context["failed_chunks"] = list(failed_chunk_indices)
        if day is not None:
            context["date"] = day.isoformat()
        super().__init__(message, context, original_exception)
        self.failed_chunk_indices: List[int] = list(failed_chunk_indices)
        self.date = day

from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SinkBackend(str, enum.Enum):
    """Destination backends"""
    BIGQUERY = "bigquery"
    POSTGRES = "postgres"


class SyncStatus(str, enum.Enum):
    """Outcome of a whole sync run"""
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    NOT_READY = "not_ready"
    PROVISIONED = "provisioned"


class DateStatus(str, enum.Enum):
    """Outcome of a single date within a run"""
    SUCCEEDED = "succeeded"
    EMPTY = "empty"
    FETCH_FAILED = "fetch_failed"
    DELIVERY_FAILED = "delivery_failed"


# Search Analytics dimensions stored as columns, in canonical order
DIMENSION_COLUMNS = ("page", "country", "device", "query")

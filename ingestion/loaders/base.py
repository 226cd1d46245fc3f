"""
Abstract sink interface for the analytical store
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

from schemas.analytics import TableRef


class Sink(ABC):
    """
    Destination table capability.

    Responsibilities:
    - Dataset/table existence check and creation with the fixed schema
    - MAX(date) over persisted rows
    - Idempotent bulk insertion keyed by ``unique_key``
    """

    # True when a freshly created table cannot accept writes straight away
    requires_warmup_after_create: bool = False

    @abstractmethod
    async def ensure_dataset(self, destination: TableRef) -> bool:
        """Create the dataset if missing. Returns True when it was created."""
        pass

    @abstractmethod
    async def ensure_table(self, destination: TableRef) -> bool:
        """Create the table if missing. Returns True when it was created."""
        pass

    @abstractmethod
    async def max_date(self, destination: TableRef) -> Optional[date]:
        """Latest persisted date, or None for an empty table"""
        pass

    @abstractmethod
    async def insert_rows(self, destination: TableRef, rows: List[Dict[str, Any]]) -> int:
        """
        Write one chunk of rows using each row's unique_key as idempotency token.

        Returns:
            Number of rows accepted

        Raises:
            SinkWriteError: when the backend rejects the request
        """
        pass

    async def close(self):
        """Release backend resources"""
        pass

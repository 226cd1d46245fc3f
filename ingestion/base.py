"""
Abstract base class for paginated Search Analytics sources
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Sequence


class PageSource(ABC):
    """
    Abstract base class for anything that serves Search Analytics pages.

    Responsibilities:
    - Return at most ``row_limit`` raw records for one date, starting at
      ``start_row``
    - Raise an ExtractionError subclass when a page cannot be retrieved

    A page shorter than ``row_limit`` (including an empty one) marks the end
    of the data for that date.
    """

    @abstractmethod
    async def query_page(
        self,
        day: date,
        dimensions: Sequence[str],
        row_limit: int,
        start_row: int
    ) -> List[Dict[str, Any]]:
        """
        Fetch one page of raw records.

        Args:
            day: Date to query (used as both start and end date)
            dimensions: Ordered dimension names
            row_limit: Maximum rows to return
            start_row: Zero-based row offset

        Returns:
            List of raw records: {"keys": [...], "clicks", "impressions", "position", ...}
        """
        pass

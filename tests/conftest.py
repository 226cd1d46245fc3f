"""
Pytest configuration and fixtures
"""

import pytest
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from core.config import SyncConfig
from core.exceptions import NetworkError, SinkWriteError
from ingestion.base import PageSource
from ingestion.loaders.base import Sink
from schemas.analytics import TableRef


class InMemorySink(Sink):
    """
    Sink storing rows in a dict keyed by unique_key.

    Failures are scripted per operation; ``fail_on_chunk`` is a predicate
    over the rows of an insert call.
    """

    def __init__(
        self,
        max_date: Optional[date] = None,
        table_exists: bool = True,
        requires_warmup: bool = False
    ):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.insert_calls: List[List[Dict[str, Any]]] = []
        self.table_exists = table_exists
        self.requires_warmup_after_create = requires_warmup
        self._max_date = max_date
        self.fail_ensure = False
        self.fail_max_date = False
        self.fail_on_chunk = None
        self.closed = False

    async def ensure_dataset(self, destination: TableRef) -> bool:
        if self.fail_ensure:
            raise RuntimeError("permission denied")
        return False

    async def ensure_table(self, destination: TableRef) -> bool:
        if self.fail_ensure:
            raise RuntimeError("permission denied")
        created = not self.table_exists
        self.table_exists = True
        return created

    async def max_date(self, destination: TableRef) -> Optional[date]:
        if self.fail_max_date:
            raise RuntimeError("query failed")
        stored = [date.fromisoformat(row["date"]) for row in self.rows.values()]
        candidates = stored + ([self._max_date] if self._max_date else [])
        return max(candidates) if candidates else None

    async def insert_rows(self, destination: TableRef, rows: List[Dict[str, Any]]) -> int:
        self.insert_calls.append(rows)
        if self.fail_on_chunk is not None and self.fail_on_chunk(rows):
            raise SinkWriteError("chunk rejected", context={"rows": len(rows)})
        for row in rows:
            self.rows[row["unique_key"]] = row
        return len(rows)

    async def close(self):
        self.closed = True


class FakePageSource(PageSource):
    """
    Scripted page source.

    ``pages`` maps a date to the list of page sizes returned in order;
    ``failing`` maps a date to the start_row whose request raises.
    """

    def __init__(
        self,
        pages: Optional[Dict[date, List[int]]] = None,
        failing: Optional[Dict[date, int]] = None
    ):
        self.pages = pages or {}
        self.failing = failing or {}
        self.calls: List[tuple] = []

    async def query_page(
        self,
        day: date,
        dimensions: Sequence[str],
        row_limit: int,
        start_row: int
    ) -> List[dict]:
        self.calls.append((day, start_row))

        if day in self.failing and start_row >= self.failing[day]:
            raise NetworkError("Server error after 3 attempts", context={"status_code": 503})

        sizes = self.pages.get(day, [])
        offset = 0
        for size in sizes:
            if offset == start_row:
                return [make_raw_row(day, offset + i, len(dimensions)) for i in range(size)]
            offset += size
        return []

    def calls_for(self, day: date) -> List[int]:
        return [start_row for d, start_row in self.calls if d == day]


def make_raw_row(day: date, index: int, dimension_count: int = 4) -> dict:
    keys = [
        f"https://example.com/{day.isoformat()}/{index}",
        "usa",
        "DESKTOP",
        f"query {index}",
    ][:dimension_count]
    return {
        "keys": keys,
        "clicks": index % 7,
        "impressions": 10 + index % 13,
        "ctr": 0.1,
        "position": 1.0 + (index % 20) / 2,
    }


@pytest.fixture
def destination():
    return TableRef(project="test-project", dataset="search_console", table="search_analytics")


@pytest.fixture
def sample_config():
    return SyncConfig(
        site_url="sc-domain:example.com",
        start_date=date(2024, 1, 1),
        window_size_days=3,
        dimensions=["page", "country", "device", "query"],
        chunk_size=5000,
        destination_project="test-project",
        destination_dataset="search_console",
        destination_table="search_analytics",
    )


@pytest.fixture
def sample_raw_rows():
    """Raw rows as returned by the Search Analytics API"""
    return [
        {
            "keys": ["https://example.com/", "usa", "DESKTOP", "example"],
            "clicks": 12,
            "impressions": 340,
            "ctr": 0.035,
            "position": 2.4
        },
        {
            "keys": ["https://example.com/blog", "deu", "MOBILE", "example blog"],
            "clicks": 0,
            "impressions": 18,
            "ctr": 0.0,
            "position": 14.75
        }
    ]


@pytest.fixture
def in_memory_sink():
    return InMemorySink()


@pytest.fixture
def sink_factory():
    return InMemorySink


@pytest.fixture
def source_factory():
    return FakePageSource


@pytest.fixture
def raw_row_factory():
    return make_raw_row

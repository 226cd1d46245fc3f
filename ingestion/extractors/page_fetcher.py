"""
Fetch one day of Search Analytics rows by paging until the source is exhausted
"""

import logging
from datetime import date
from typing import List, Sequence

from core.exceptions import ExtractionError, FetchFailed
from ingestion.base import PageSource
from ingestion.transformers.row_shaper import RowShaper
from schemas.analytics import AnalyticsRecord

logger = logging.getLogger(__name__)

MAX_ROW_LIMIT = 25000  # Largest page the Search Analytics API returns


class PageCursor:
    """Row offset into one date's result set"""

    def __init__(self):
        self.start_row = 0
        self.exhausted = False

    def advance(self, received: int, page_size: int):
        self.start_row += received
        if received == 0 or received < page_size:
            self.exhausted = True


class PageFetcher:
    """
    Retrieve all rows for a date, all-or-nothing.

    A failing page aborts the whole date and discards the pages already
    received, so a date is only ever persisted complete.
    """

    def __init__(self, source: PageSource, max_pages: int = 1000):
        self.source = source
        self.max_pages = max_pages

    async def fetch_day(
        self,
        day: date,
        dimensions: Sequence[str],
        page_size: int = MAX_ROW_LIMIT
    ) -> List[AnalyticsRecord]:
        """
        Fetch and shape every row for ``day``.

        Returns:
            Shaped rows, possibly empty

        Raises:
            FetchFailed: a page request failed or the page ceiling was hit
            MalformedRecord: a record could not be shaped
        """
        shaper = RowShaper(dimensions)
        cursor = PageCursor()
        raw_rows = []
        pages = 0

        while not cursor.exhausted:
            if pages >= self.max_pages:
                raise FetchFailed(
                    day,
                    f"Exceeded {self.max_pages} pages without reaching the end of the data",
                    context={"start_row": cursor.start_row}
                )

            try:
                page = await self.source.query_page(day, dimensions, page_size, cursor.start_row)
            except ExtractionError as e:
                raise FetchFailed(
                    day,
                    "Page request failed",
                    context={"start_row": cursor.start_row, "pages_discarded": pages},
                    original_exception=e
                )
            except Exception as e:
                raise FetchFailed(
                    day,
                    "Unexpected error during page request",
                    context={"start_row": cursor.start_row, "pages_discarded": pages},
                    original_exception=e
                )

            pages += 1
            raw_rows.extend(page)
            cursor.advance(len(page), page_size)

        records = [shaper.shape(raw, day) for raw in raw_rows]

        if records:
            logger.info(f"Retrieved {len(records)} rows from Search Console. Date: {day} ({pages} pages)")
        else:
            logger.info(f"No rows in Search Console for {day}")

        return records



"""
Chunked, concurrent delivery of shaped rows to a sink
"""

import asyncio
import logging
from datetime import date
from typing import List, Optional, Sequence, TypeVar

from core.exceptions import DeliveryFailed, SyncException
from ingestion.loaders.base import Sink
from schemas.analytics import AnalyticsRecord, TableRef
from schemas.sync import DeliveryReceipt

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 5000  # Practical request size ceiling for streaming inserts


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive chunks of at most ``size``"""
    if size < 1:
        raise ValueError("Chunk size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class SinkAdapter:
    """
    Deliver rows to a sink with at-least-once, deduplicated semantics.

    Ensures:
    - Requests stay below the chunk size ceiling
    - Every chunk is an independent write keyed by unique_key
    - The call succeeds only when every chunk succeeded
    """

    def __init__(self, sink: Sink, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("Chunk size must be positive")
        self.sink = sink
        self.chunk_size = chunk_size

    async def deliver(
        self,
        rows: Sequence[AnalyticsRecord],
        destination: TableRef,
        day: Optional[date] = None
    ) -> DeliveryReceipt:
        """
        Write rows in concurrent chunks.

        Args:
            rows: Shaped rows
            destination: Target table
            day: Date the rows belong to, for error context

        Returns:
            DeliveryReceipt with the number of rows written

        Raises:
            DeliveryFailed: listing the indices of chunks that were not written
        """
        if not rows:
            return DeliveryReceipt(table_id=destination.table_id, rows_delivered=0, chunk_count=0)

        chunks = chunked([row.to_row() for row in rows], self.chunk_size)

        results = await asyncio.gather(
            *(self.sink.insert_rows(destination, chunk) for chunk in chunks),
            return_exceptions=True
        )

        failed = []
        delivered = 0
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                failed.append(index)
                error_context = result.to_dict() if isinstance(result, SyncException) else {"error": str(result)}
                logger.error(
                    f"Chunk {index + 1}/{len(chunks)} for {destination.table_id} failed: {result}",
                    extra={"error_context": error_context}
                )
            else:
                delivered += result

        if failed:
            first_error = next(r for r in results if isinstance(r, BaseException))
            raise DeliveryFailed(
                failed,
                day=day,
                message=f"{len(failed)} of {len(chunks)} chunks were not written",
                context={"table_id": destination.table_id, "rows": len(rows)},
                original_exception=first_error
            )

        logger.info(f"Inserted {delivered} rows into {destination.table_id} in {len(chunks)} chunks")
        return DeliveryReceipt(
            table_id=destination.table_id,
            rows_delivered=delivered,
            chunk_count=len(chunks)
        )

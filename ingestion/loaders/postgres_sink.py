"""
Load Search Analytics rows into PostgreSQL with upsert logic (idempotency)
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import MetaData, func, inspect, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from core.database import build_session_maker
from core.exceptions import SinkWriteError
from ingestion.loaders.base import Sink
from models.search_analytics import SearchAnalyticsRow
from schemas.analytics import TableRef

logger = logging.getLogger(__name__)


class PostgresSink(Sink):
    """
    Sink backed by a PostgreSQL table.

    Ensures:
    - No duplicate rows on repeated runs (unique_key primary key)
    - Re-delivered rows overwrite the stored metrics
    - One transaction per chunk

    The dataset maps to a schema and the table name comes from the
    destination, with the SearchAnalyticsRow column layout; project and
    location are ignored.
    """

    def __init__(self, engine: AsyncEngine, session_maker: Optional[async_sessionmaker] = None):
        self.engine = engine
        self.session_maker = session_maker or build_session_maker(engine)
        self._tables = {}

    def _table(self, destination: TableRef):
        model_table = SearchAnalyticsRow.__table__
        schema = destination.dataset
        if not schema or schema == "public":
            schema = None
        key = (schema, destination.table)
        if key not in self._tables:
            table = model_table.to_metadata(MetaData(), schema=schema, name=destination.table)
            # Index names are unique per schema
            for index in table.indexes:
                index.name = index.name.replace(model_table.name, destination.table)
            self._tables[key] = table
        return self._tables[key]

    async def ensure_dataset(self, destination: TableRef) -> bool:
        if not destination.dataset or destination.dataset == "public":
            return False
        async with self.engine.begin() as conn:
            exists = await conn.scalar(
                text("SELECT 1 FROM information_schema.schemata WHERE schema_name = :name"),
                {"name": destination.dataset}
            )
            if exists:
                return False
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{destination.dataset}"'))
        logger.info(f"Schema {destination.dataset} created.")
        return True

    async def ensure_table(self, destination: TableRef) -> bool:
        table = self._table(destination)
        async with self.engine.begin() as conn:
            existed = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).has_table(table.name, schema=table.schema)
            )
            if not existed:
                await conn.run_sync(table.create, checkfirst=True)
                logger.info(f"Table {destination.table_id} created.")
        return not existed

    async def max_date(self, destination: TableRef) -> Optional[date]:
        table = self._table(destination)
        async with self.session_maker() as session:
            result = await session.execute(select(func.max(table.c.date)))
            return result.scalar()

    async def insert_rows(self, destination: TableRef, rows: List[Dict[str, Any]]) -> int:
        """
        Upsert one chunk (INSERT ON CONFLICT (unique_key) DO UPDATE).

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        table = self._table(destination)
        values = [{**row, "date": date.fromisoformat(row["date"])} for row in rows]

        # executemany keeps each statement within the driver bind parameter limit
        stmt = insert(table)
        stmt = stmt.on_conflict_do_update(
            index_elements=["unique_key"],
            set_={
                "clicks": stmt.excluded.clicks,
                "impressions": stmt.excluded.impressions,
                "position": stmt.excluded.position,
            }
        )

        async with self.session_maker() as session:
            try:
                await session.execute(stmt, values)
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise SinkWriteError(
                    "Failed to upsert Search Analytics rows",
                    context={"table_id": destination.table_id, "rows": len(rows), "operation": "UPSERT"},
                    original_exception=e
                )

        logger.debug(f"Upserted {len(rows)} rows into {destination.table_id}")
        return len(rows)

    async def close(self):
        await self.engine.dispose()

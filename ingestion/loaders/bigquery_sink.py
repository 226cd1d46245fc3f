"""
BigQuery sink: date-partitioned table, MAX(date) query and streaming inserts
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import Conflict
from google.cloud import bigquery

from core.exceptions import SinkWriteError
from ingestion.loaders.base import Sink
from schemas.analytics import TableRef

logger = logging.getLogger(__name__)


SCHEMA = [
    bigquery.SchemaField("date", "DATE", mode="REQUIRED",
                         description="Date of the impression or click"),
    bigquery.SchemaField("clicks", "INTEGER", mode="REQUIRED",
                         description="Number of clicks on a search result"),
    bigquery.SchemaField("impressions", "INTEGER", mode="REQUIRED",
                         description="Number of impressions for the page"),
    bigquery.SchemaField("position", "FLOAT", mode="REQUIRED",
                         description="Position of the search result (average calculated for the date)"),
    bigquery.SchemaField("page", "STRING", mode="NULLABLE", description="Page URL"),
    bigquery.SchemaField("country", "STRING", mode="NULLABLE", description="Country of the user"),
    bigquery.SchemaField("device", "STRING", mode="NULLABLE", description="Device type"),
    bigquery.SchemaField("query", "STRING", mode="NULLABLE", description="Search query"),
    bigquery.SchemaField("unique_key", "STRING", mode="REQUIRED",
                         description="Unique key for each row, a hash of the dimension values and the date"),
]

TABLE_DESCRIPTION = "Raw export data from Google Search Console"


class BigQuerySink(Sink):
    """
    Sink backed by a BigQuery table.

    Streaming inserts pass each row's unique_key as insertId so BigQuery
    collapses repeated rows. A newly created table is not immediately
    available to the streaming API, hence requires_warmup_after_create.

    The google-cloud-bigquery client is blocking; calls run in a worker
    thread so dates and chunks still proceed concurrently.
    """

    requires_warmup_after_create = True

    def __init__(self, project: Optional[str] = None, client: Optional[bigquery.Client] = None):
        self.project = project
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project) if self.project else bigquery.Client()
        return self._client

    def _dataset_id(self, destination: TableRef) -> str:
        project = destination.project or self.client.project
        return f"{project}.{destination.dataset}"

    def _table_id(self, destination: TableRef) -> str:
        return f"{self._dataset_id(destination)}.{destination.table}"

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def _create_dataset(self, destination: TableRef) -> bool:
        dataset = bigquery.Dataset(self._dataset_id(destination))
        if destination.location:
            dataset.location = destination.location
        try:
            self.client.create_dataset(dataset)
        except Conflict:
            logger.debug(f"Dataset {dataset.dataset_id} already exists")
            return False
        logger.info(f"Dataset {self._dataset_id(destination)} created.")
        return True

    def _create_table(self, destination: TableRef) -> bool:
        table = bigquery.Table(self._table_id(destination), schema=SCHEMA)
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            field="date"
        )
        table.require_partition_filter = False
        table.description = TABLE_DESCRIPTION
        try:
            self.client.create_table(table)
        except Conflict:
            logger.debug(f"Table {self._table_id(destination)} already exists")
            return False
        logger.info(f"Table {self._table_id(destination)} created.")
        return True

    async def ensure_dataset(self, destination: TableRef) -> bool:
        return await asyncio.to_thread(self._create_dataset, destination)

    async def ensure_table(self, destination: TableRef) -> bool:
        return await asyncio.to_thread(self._create_table, destination)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _query_max_date(self, destination: TableRef) -> Optional[date]:
        sql = f"SELECT MAX(date) AS max_date FROM `{self._table_id(destination)}`"
        job = self.client.query(sql, location=destination.location)
        for row in job.result():
            return row["max_date"]
        return None

    async def max_date(self, destination: TableRef) -> Optional[date]:
        return await asyncio.to_thread(self._query_max_date, destination)

    # ------------------------------------------------------------------
    # Streaming inserts
    # ------------------------------------------------------------------

    def _insert(self, destination: TableRef, rows: List[Dict[str, Any]]) -> int:
        errors = self.client.insert_rows_json(
            self._table_id(destination),
            rows,
            row_ids=[row["unique_key"] for row in rows]
        )
        if errors:
            raise SinkWriteError(
                f"BigQuery rejected {len(errors)} rows",
                context={
                    "table_id": self._table_id(destination),
                    "rows": len(rows),
                    "errors": str(errors[:5])[:1000],
                }
            )
        return len(rows)

    async def insert_rows(self, destination: TableRef, rows: List[Dict[str, Any]]) -> int:
        return await asyncio.to_thread(self._insert, destination, rows)

    async def close(self):
        if self._client is not None:
            await asyncio.to_thread(self._client.close)

"""
Unit tests for sink backends
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from google.api_core.exceptions import Conflict
from google.cloud import bigquery
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import asyncpg as pg_asyncpg

from core.exceptions import SinkWriteError
from ingestion.loaders.bigquery_sink import SCHEMA, BigQuerySink
from ingestion.loaders.postgres_sink import PostgresSink
from schemas.analytics import TableRef


ROWS = [
    {
        "date": "2024-01-01",
        "clicks": 3,
        "impressions": 40,
        "position": 2.5,
        "page": "https://example.com/",
        "country": "usa",
        "device": "DESKTOP",
        "query": "example",
        "unique_key": "a" * 64,
    },
    {
        "date": "2024-01-01",
        "clicks": 0,
        "impressions": 9,
        "position": 11.0,
        "page": "https://example.com/blog",
        "country": "deu",
        "device": "MOBILE",
        "query": "blog",
        "unique_key": "b" * 64,
    },
]


@pytest.fixture
def bq_destination():
    return TableRef(project="test-project", dataset="search_console", table="search_analytics", location="EU")


@pytest.fixture
def bq_client():
    client = MagicMock()
    client.project = "default-project"
    client.insert_rows_json.return_value = []
    return client


class TestBigQuerySink:
    """Test BigQuery sink with a mocked client"""

    @pytest.mark.asyncio
    async def test_insert_uses_unique_key_as_row_id(self, bq_client, bq_destination):
        sink = BigQuerySink(client=bq_client)

        written = await sink.insert_rows(bq_destination, ROWS)

        assert written == 2
        args, kwargs = bq_client.insert_rows_json.call_args
        assert args[0] == "test-project.search_console.search_analytics"
        assert args[1] == ROWS
        assert kwargs["row_ids"] == ["a" * 64, "b" * 64]

    @pytest.mark.asyncio
    async def test_insert_errors_raise(self, bq_client, bq_destination):
        bq_client.insert_rows_json.return_value = [{"index": 0, "errors": [{"reason": "invalid"}]}]
        sink = BigQuerySink(client=bq_client)

        with pytest.raises(SinkWriteError) as exc_info:
            await sink.insert_rows(bq_destination, ROWS)

        assert exc_info.value.context["rows"] == 2

    @pytest.mark.asyncio
    async def test_create_table_is_day_partitioned(self, bq_client, bq_destination):
        sink = BigQuerySink(client=bq_client)

        created = await sink.ensure_table(bq_destination)

        assert created is True
        table = bq_client.create_table.call_args[0][0]
        assert table.time_partitioning.type_ == bigquery.TimePartitioningType.DAY
        assert table.time_partitioning.field == "date"
        assert [field.name for field in table.schema] == [field.name for field in SCHEMA]

    @pytest.mark.asyncio
    async def test_existing_table_not_created(self, bq_client, bq_destination):
        bq_client.create_table.side_effect = Conflict("Already Exists")
        sink = BigQuerySink(client=bq_client)

        assert await sink.ensure_table(bq_destination) is False

    @pytest.mark.asyncio
    async def test_dataset_location(self, bq_client, bq_destination):
        sink = BigQuerySink(client=bq_client)

        assert await sink.ensure_dataset(bq_destination) is True
        dataset = bq_client.create_dataset.call_args[0][0]
        assert dataset.location == "EU"

    @pytest.mark.asyncio
    async def test_existing_dataset(self, bq_client, bq_destination):
        bq_client.create_dataset.side_effect = Conflict("Already Exists")

        assert await BigQuerySink(client=bq_client).ensure_dataset(bq_destination) is False

    @pytest.mark.asyncio
    async def test_max_date(self, bq_client, bq_destination):
        bq_client.query.return_value.result.return_value = [{"max_date": date(2024, 2, 1)}]
        sink = BigQuerySink(client=bq_client)

        assert await sink.max_date(bq_destination) == date(2024, 2, 1)
        sql = bq_client.query.call_args[0][0]
        assert "MAX(date)" in sql
        assert "`test-project.search_console.search_analytics`" in sql

    @pytest.mark.asyncio
    async def test_max_date_empty_table(self, bq_client, bq_destination):
        bq_client.query.return_value.result.return_value = [{"max_date": None}]

        assert await BigQuerySink(client=bq_client).max_date(bq_destination) is None

    @pytest.mark.asyncio
    async def test_project_defaults_to_client_project(self, bq_client):
        destination = TableRef(dataset="search_console", table="search_analytics")
        await BigQuerySink(client=bq_client).insert_rows(destination, ROWS)

        assert bq_client.insert_rows_json.call_args[0][0] == "default-project.search_console.search_analytics"

    def test_requires_warmup(self):
        assert BigQuerySink.requires_warmup_after_create is True


@pytest.fixture
def pg_session():
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def pg_sink(pg_session):
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = pg_session
    session_maker.return_value.__aexit__.return_value = False
    return PostgresSink(engine=MagicMock(), session_maker=session_maker)


class TestPostgresSink:
    """Test PostgreSQL sink with a mocked session"""

    @pytest.mark.asyncio
    async def test_upsert_chunk(self, pg_sink, pg_session, bq_destination):
        written = await pg_sink.insert_rows(bq_destination, ROWS)

        assert written == 2
        pg_session.execute.assert_called_once()
        pg_session.commit.assert_called_once()

        stmt = pg_session.execute.call_args[0][0]
        compiled = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (unique_key) DO UPDATE" in compiled

    @pytest.mark.asyncio
    async def test_full_chunk_stays_within_bind_limit(self, pg_sink, pg_session, bq_destination):
        rows = [dict(ROWS[0], unique_key=f"{i:064x}", query=f"query {i}") for i in range(5000)]

        assert await pg_sink.insert_rows(bq_destination, rows) == 5000

        stmt, params = pg_session.execute.call_args[0]
        dialect = pg_asyncpg.dialect()
        compiled = stmt.compile(dialect=dialect)

        # Rows go as executemany parameters, batched by the dialect
        assert len(params) == 5000
        assert params[0]["date"] == date(2024, 1, 1)
        assert len(compiled.params) == len(stmt.table.columns)
        assert len(compiled.params) * dialect.insertmanyvalues_page_size <= 32767

    @pytest.mark.asyncio
    async def test_empty_chunk(self, pg_sink, pg_session, bq_destination):
        assert await pg_sink.insert_rows(bq_destination, []) == 0
        pg_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, pg_sink, pg_session, bq_destination):
        pg_session.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(SinkWriteError):
            await pg_sink.insert_rows(bq_destination, ROWS)

        pg_session.rollback.assert_called_once()
        pg_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_max_date(self, pg_sink, pg_session, bq_destination):
        result = MagicMock()
        result.scalar.return_value = date(2024, 1, 31)
        pg_session.execute.return_value = result

        assert await pg_sink.max_date(bq_destination) == date(2024, 1, 31)

    def test_dataset_maps_to_schema(self, pg_sink, bq_destination):
        table = pg_sink._table(bq_destination)
        assert table.schema == "search_console"
        assert pg_sink._table(bq_destination) is table

    def test_public_dataset_uses_model_table(self, pg_sink):
        table = pg_sink._table(TableRef(dataset="public", table="search_analytics"))
        assert table.schema is None

    def test_destination_table_name_is_used(self, pg_sink):
        site_a = pg_sink._table(TableRef(dataset="analytics", table="gsc_site_a"))
        site_b = pg_sink._table(TableRef(dataset="analytics", table="gsc_site_b"))

        assert site_b.name == "gsc_site_b"
        assert site_b.schema == "analytics"
        assert site_a is not site_b
        assert [index.name for index in site_b.indexes] == ["idx_gsc_site_b_date"]

    @pytest.mark.asyncio
    async def test_upsert_targets_destination_table(self, pg_sink, pg_session):
        destination = TableRef(dataset="analytics", table="gsc_site_b")

        await pg_sink.insert_rows(destination, ROWS)

        stmt = pg_session.execute.call_args[0][0]
        assert 'analytics.gsc_site_b' in str(stmt.compile(dialect=postgresql.dialect()))

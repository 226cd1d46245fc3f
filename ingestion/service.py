"""
Build sinks, sources and runners from Settings and execute one sync pass
"""

import asyncio
import logging
from typing import Optional

from core.config import Settings, SyncConfig
from core.database import build_engine
from core.exceptions import SyncInProgress
from ingestion.extractors.search_console import SearchConsoleClient
from ingestion.history import RunHistory
from ingestion.loaders.base import Sink
from ingestion.runner import SyncRunner
from models.base import SinkBackend
from schemas.analytics import TableRef
from schemas.sync import SyncSummary

logger = logging.getLogger(__name__)


def build_sink(settings: Settings) -> Sink:
    """Sink for the configured SINK_BACKEND"""
    backend = SinkBackend(settings.SINK_BACKEND.lower())

    if backend == SinkBackend.POSTGRES:
        from ingestion.loaders.postgres_sink import PostgresSink
        return PostgresSink(build_engine(settings.DATABASE_URL))

    from ingestion.loaders.bigquery_sink import BigQuerySink
    return BigQuerySink(project=settings.BIGQUERY_PROJECT or None)


def destination_from_settings(settings: Settings) -> TableRef:
    return TableRef(
        project=settings.BIGQUERY_PROJECT,
        dataset=settings.BIGQUERY_DATASET,
        table=settings.RESULTS_TABLE,
        location=settings.LOCATION or None
    )


def build_source(settings: Settings) -> SearchConsoleClient:
    return SearchConsoleClient(
        site_url=settings.SITE_URL,
        search_type=settings.SEARCH_TYPE,
        data_state=settings.DATA_STATE,
        aggregation_type=settings.AGGREGATION_TYPE,
        max_retries=settings.MAX_RETRIES,
        retry_delay=settings.RETRY_DELAY,
        timeout=settings.REQUEST_TIMEOUT
    )


async def run_sync(
    settings: Settings,
    history: Optional[RunHistory] = None,
    lock: Optional[asyncio.Lock] = None
) -> SyncSummary:
    """
    Execute one sync pass with freshly built collaborators.

    Args:
        settings: Application settings, converted to a SyncConfig
        history: Run history to record the summary in
        lock: Shared lock; a second caller is rejected instead of planning
            the same window concurrently

    Raises:
        SyncInProgress: another run holds the lock
        ProvisioningError, PlanUnavailable: run-level failures
    """
    if lock is None:
        return await _run_once(settings, history)

    if lock.locked():
        raise SyncInProgress(
            "A sync run is already in progress",
            context={"site_url": settings.SITE_URL}
        )
    async with lock:
        return await _run_once(settings, history)


async def _run_once(settings: Settings, history: Optional[RunHistory]) -> SyncSummary:
    config = SyncConfig.from_settings(settings)
    sink = build_sink(settings)

    try:
        async with build_source(settings) as source:
            runner = SyncRunner(sink, source, history=history)
            return await runner.run(config)
    finally:
        await sink.close()

# ============================================================================
# File: ingestion/runner.py
# Description: Incremental sync orchestrator with per-date failure isolation
# ============================================================================
"""
Sync Runner - Orchestrates Provision, Plan, Fetch, Deliver.

This module provides the sync pass with:
- Provisioning of the destination before any data is fetched
- Resume from the latest persisted date
- Concurrent fetching and delivery, one task per date
- Per-date failure isolation (a failed date never aborts its siblings)
- A typed SyncSummary instead of log-and-continue
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from core.config import SyncConfig
from core.exceptions import (
    PlanUnavailable,
    ProvisioningError,
    SyncException,
)
from ingestion.base import PageSource
from ingestion.extractors.page_fetcher import PageFetcher
from ingestion.history import RunHistory
from ingestion.loaders.base import Sink
from ingestion.loaders.delivery import SinkAdapter
from ingestion.planner import DateRangePlanner
from models.base import DateStatus, SyncStatus
from schemas.analytics import AnalyticsRecord, TableRef
from schemas.sync import DateResult, SyncSummary

logger = logging.getLogger(__name__)


def destination_for(config: SyncConfig) -> TableRef:
    return TableRef(
        project=config.destination_project,
        dataset=config.destination_dataset,
        table=config.destination_table,
        location=config.destination_location
    )


def _describe(error: BaseException) -> str:
    if isinstance(error, SyncException):
        return error.message if not error.original_exception else (
            f"{error.message}: {type(error.original_exception).__name__}: {error.original_exception}"
        )
    return f"{type(error).__name__}: {error}"


class SyncRunner:
    """
    Incremental sync orchestrator

    Responsibilities:
    - Provision dataset and table (run aborted on failure)
    - Plan the next window of dates (run aborted on failure)
    - Fetch every date concurrently, all-or-nothing per date
    - Deliver every non-empty date concurrently
    - Report succeeded and failed dates; a failed date is never retried
      within the run, and once a later date is persisted it is never
      planned again (logged as a gap)
    """

    def __init__(self, sink: Sink, source: PageSource, history: Optional[RunHistory] = None):
        self.sink = sink
        self.source = source
        self.history = history

    async def run(self, config: SyncConfig, today: Optional[date] = None) -> SyncSummary:
        """
        Run one sync pass.

        Args:
            config: Immutable run configuration
            today: Reference date for the planner (defaults to current UTC date)

        Returns:
            SyncSummary with one DateResult per planned date

        Raises:
            ProvisioningError: dataset/table could not be ensured
            PlanUnavailable: latest persisted date could not be read
        """
        destination = destination_for(config)
        summary = SyncSummary(status=SyncStatus.COMPLETED)
        logger.info(f"Sync run {summary.run_id} started for {config.site_url} -> {destination.table_id}")

        try:
            # --------------------------------------------------
            # PHASE 1: PROVISIONING
            # --------------------------------------------------
            table_created = await self._provision(destination)

            if table_created and self.sink.requires_warmup_after_create:
                logger.info(
                    "Ending run. Streaming inserts need a few minutes before "
                    "they work on the new table."
                )
                return self._finish(summary, SyncStatus.PROVISIONED, "Destination table created")

            # --------------------------------------------------
            # PHASE 2: PLANNING
            # --------------------------------------------------
            plan = await DateRangePlanner(self.sink).plan_next_range(
                destination,
                config.start_date,
                config.window_size_days,
                today=today
            )

            if plan is None:
                return self._finish(summary, SyncStatus.NOT_READY, "No complete dates to sync yet")

            summary.plan = plan

        except (ProvisioningError, PlanUnavailable) as e:
            logger.error(
                f"Sync run {summary.run_id} aborted: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            if self.history is not None:
                self.history.record_error(e.to_dict())
            raise

        # --------------------------------------------------
        # PHASE 3: FETCHING
        # --------------------------------------------------
        fetched = await self._fetch_all(plan.dates, config)

        # --------------------------------------------------
        # PHASE 4: AGGREGATING
        # --------------------------------------------------
        results: Dict[date, DateResult] = {}
        pending: Dict[date, List[AnalyticsRecord]] = {}

        for day, outcome in zip(plan.dates, fetched):
            if isinstance(outcome, BaseException):
                self._log_date_failure(day, "fetch", outcome)
                results[day] = DateResult(date=day, status=DateStatus.FETCH_FAILED, error=_describe(outcome))
            elif not outcome:
                results[day] = DateResult(date=day, status=DateStatus.EMPTY)
            else:
                pending[day] = outcome

        # --------------------------------------------------
        # PHASE 5: DELIVERING
        # --------------------------------------------------
        if not pending:
            logger.info("No new data found.")
        else:
            adapter = SinkAdapter(self.sink, config.chunk_size)
            delivered = await asyncio.gather(
                *(adapter.deliver(rows, destination, day=day) for day, rows in pending.items()),
                return_exceptions=True
            )

            for (day, rows), outcome in zip(pending.items(), delivered):
                if isinstance(outcome, BaseException):
                    self._log_date_failure(day, "delivery", outcome)
                    results[day] = DateResult(
                        date=day,
                        status=DateStatus.DELIVERY_FAILED,
                        rows_retrieved=len(rows),
                        error=_describe(outcome)
                    )
                else:
                    results[day] = DateResult(
                        date=day,
                        status=DateStatus.SUCCEEDED,
                        rows_retrieved=len(rows),
                        rows_delivered=outcome.rows_delivered
                    )

        # --------------------------------------------------
        # PHASE 6: FINALIZE
        # --------------------------------------------------
        summary.results = [results[day] for day in plan.dates]
        self._warn_about_gaps(summary)
        status = SyncStatus.PARTIAL_FAILURE if summary.failed_dates else SyncStatus.COMPLETED
        return self._finish(summary, status)

    async def _provision(self, destination: TableRef) -> bool:
        try:
            await self.sink.ensure_dataset(destination)
        except Exception as e:
            raise ProvisioningError(
                "Dataset could not be ensured",
                context={"table_id": destination.table_id, "operation": "ensure_dataset"},
                original_exception=e
            )

        try:
            return await self.sink.ensure_table(destination)
        except Exception as e:
            raise ProvisioningError(
                "Table could not be ensured",
                context={"table_id": destination.table_id, "operation": "ensure_table"},
                original_exception=e
            )

    async def _fetch_all(self, dates: List[date], config: SyncConfig) -> list:
        fetcher = PageFetcher(self.source, max_pages=config.max_pages_per_day)
        semaphore = asyncio.Semaphore(config.max_concurrent_dates) if config.max_concurrent_dates else None

        async def fetch(day: date) -> List[AnalyticsRecord]:
            if semaphore is None:
                return await fetcher.fetch_day(day, config.dimensions, config.page_size)
            async with semaphore:
                return await fetcher.fetch_day(day, config.dimensions, config.page_size)

        return await asyncio.gather(*(fetch(day) for day in dates), return_exceptions=True)

    def _warn_about_gaps(self, summary: SyncSummary):
        """Failed dates before the latest delivered date are skipped by every later run"""
        if not summary.succeeded_dates:
            return
        latest = max(summary.succeeded_dates)
        gaps = [day for day in summary.failed_dates if day < latest]
        if gaps:
            logger.warning(
                f"Dates {[d.isoformat() for d in gaps]} failed but {latest} was persisted; "
                f"they will not be planned again and need a manual backfill"
            )

    def _log_date_failure(self, day: date, phase: str, error: BaseException):
        if isinstance(error, SyncException):
            logger.error(
                f"{phase.capitalize()} failed for {day}, date dropped from this run: {error.message}",
                extra={"error_context": error.to_dict()}
            )
        else:
            logger.error(
                f"Unexpected {phase} error for {day}, date dropped from this run",
                exc_info=error
            )

    def _finish(self, summary: SyncSummary, status: SyncStatus, message: Optional[str] = None) -> SyncSummary:
        summary.status = status
        summary.message = message
        summary.finished_at = datetime.utcnow()

        if summary.results:
            logger.info(
                f"Sync run {summary.run_id} {status.value}: "
                f"retrieved={summary.rows_retrieved}, delivered={summary.rows_delivered}, "
                f"succeeded={[d.isoformat() for d in summary.succeeded_dates]}, "
                f"failed={[d.isoformat() for d in summary.failed_dates]}"
            )
        else:
            logger.info(f"Sync run {summary.run_id} {status.value}" + (f": {message}" if message else ""))

        if self.history is not None:
            self.history.record(summary)
        return summary

"""
Sync pipeline components for Search Console ingestion.

Modules:
    base: Abstract page source consumed by the page fetcher
    planner: Resume point and date window planning
    runner: Sync orchestrator (provision, plan, fetch, deliver)
    service: Builds sinks and sources from settings and runs one pass
    scheduler: APScheduler integration for periodic sync runs
    history: In-memory record of recent run summaries

Subpackages:
    extractors: Search Console client and per-date page fetcher
    transformers: Row shaping and unique key derivation
    loaders: Sink interface, chunked delivery, BigQuery and Postgres sinks

Usage:
    from ingestion.service import run_sync
    from core.config import settings

    summary = await run_sync(settings)
    print(summary.report())

Error Handling:
    Provisioning and planning failures abort the run (ProvisioningError,
    PlanUnavailable). Fetch and delivery failures are isolated per date and
    reported in the SyncSummary. A failed date that precedes a delivered
    date is never planned again and stays a gap in the table.
"""

__all__ = [
    "PageSource",
    "DateRangePlanner",
    "SyncRunner",
    "SyncScheduler",
    "RunHistory",
    "run_sync",
]

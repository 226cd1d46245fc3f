"""
Script to run one Search Console sync pass
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import date

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.exceptions import SyncException
from core.logging import setup_logging
from ingestion.service import run_sync

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sync Search Console data into the analytical table")
    parser.add_argument("--site-url", help="Search Console property, overrides SITE_URL")
    parser.add_argument("--start-date", type=date.fromisoformat, help="First date for an empty table (YYYY-MM-DD), overrides START_DATE")
    parser.add_argument("--days", type=int, help="Dates per run, overrides NUM_DAYS_AT_ONCE")
    parser.add_argument("--backend", choices=["bigquery", "postgres"], help="Overrides SINK_BACKEND")
    parser.add_argument("--log-level", help="Overrides LOG_LEVEL")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Run one sync pass; non-zero exit only for run-level failures"""
    args = parse_args(argv)
    setup_logging(args.log_level)

    overrides = {
        "SITE_URL": args.site_url,
        "START_DATE": args.start_date,
        "NUM_DAYS_AT_ONCE": args.days,
        "SINK_BACKEND": args.backend,
    }
    run_settings = settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    try:
        summary = await run_sync(run_settings)
    except SyncException as e:
        logger.error(f"Sync aborted: {e}", extra={"error_context": e.to_dict()})
        return 1

    for result in summary.results:
        logger.info(
            f"{result.date}: {result.status.value} "
            f"(retrieved={result.rows_retrieved}, delivered={result.rows_delivered})"
            + (f" - {result.error}" if result.error else "")
        )

    logger.info(f"Sync finished with status {summary.status.value}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

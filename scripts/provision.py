import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from ingestion.service import build_sink, destination_from_settings

logger = logging.getLogger(__name__)


async def provision_destination():
    destination = destination_from_settings(settings)
    sink = build_sink(settings)
    logger.info(f"Provisioning {destination.table_id} ({settings.SINK_BACKEND})...")

    try:
        if await sink.ensure_dataset(destination):
            logger.info(f"Created dataset {destination.dataset}")
        if await sink.ensure_table(destination):
            logger.info(f"Created table {destination.table_id}")
        else:
            logger.info("Table already exists.")
    finally:
        await sink.close()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(provision_destination())

"""
FastAPI dependencies
"""

import asyncio
from typing import AsyncGenerator

from core.config import settings, Settings
from ingestion.history import RunHistory
from ingestion.loaders.base import Sink
from ingestion.service import build_sink

run_history = RunHistory()

# Shared by /sync and the scheduler so only one run plans a window at a time
run_lock = asyncio.Lock()


def get_settings() -> Settings:
    return settings


def get_history() -> RunHistory:
    return run_history


def get_run_lock() -> asyncio.Lock:
    return run_lock


async def get_sink() -> AsyncGenerator[Sink, None]:
    """Sink for read-only queries, closed after the request"""
    sink = build_sink(settings)
    try:
        yield sink
    finally:
        await sink.close()

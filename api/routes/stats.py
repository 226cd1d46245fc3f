"""
Sync statistics endpoint
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from api.dependencies import get_history, get_settings, get_sink
from core.config import Settings
from ingestion.history import RunHistory
from ingestion.loaders.base import Sink
from ingestion.service import destination_from_settings
from schemas.api import StatsResponse, SyncRunSummary
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    sink: Sink = Depends(get_sink),
    history: RunHistory = Depends(get_history),
    settings: Settings = Depends(get_settings)
):
    """
    Get sync statistics.

    Returns:
    - Destination table and latest persisted date
    - Recent sync runs with per-date outcomes
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"

    logger.info(f"[{request_id}] GET /stats")

    destination = destination_from_settings(settings)

    last_persisted_date = None
    try:
        last_persisted_date = await sink.max_date(destination)
    except Exception as e:
        logger.warning(f"[{request_id}] Could not read latest persisted date: {e}")

    recent_runs = [SyncRunSummary.from_summary(s) for s in history.recent(limit)]

    logger.info(f"[{request_id}] Stats: {len(history)} runs, last date {last_persisted_date}")

    return StatsResponse(
        timestamp=datetime.utcnow(),
        site_url=settings.SITE_URL,
        table_id=destination.table_id,
        last_persisted_date=last_persisted_date,
        total_runs=len(history),
        recent_runs=recent_runs,
        request_id=request_id
    )

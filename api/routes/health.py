"""
Health check endpoint with sink reachability and last run status
"""

from fastapi import APIRouter, Depends
from core.config import Settings
from api.dependencies import get_history, get_settings, get_sink
from ingestion.history import RunHistory
from ingestion.loaders.base import Sink
from ingestion.service import destination_from_settings
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    sink: Sink = Depends(get_sink),
    history: RunHistory = Depends(get_history),
    settings: Settings = Depends(get_settings)
):
    """
    Health check endpoint.

    Returns:
    - Sink reachability (MAX(date) query on the destination table)
    - Latest persisted date
    - Status of the last sync run in this process
    """
    sink_reachable = False
    last_persisted_date = None

    destination = destination_from_settings(settings)

    try:
        last_persisted_date = await sink.max_date(destination)
        sink_reachable = True
    except Exception as e:
        logger.error(f"Sink query failed: {str(e)}")

    latest = history.latest()

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        sink_backend=settings.SINK_BACKEND,
        sink_reachable=sink_reachable,
        last_persisted_date=last_persisted_date,
        last_run_status=latest.status if latest else None,
        last_error=history.last_error
    )

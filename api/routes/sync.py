"""
Sync trigger endpoint for Pub/Sub push subscriptions and manual calls
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request

from api.dependencies import get_history, get_run_lock, get_settings
from core.config import Settings
from ingestion.history import RunHistory
from ingestion.service import run_sync
from schemas.api import PubSubEnvelope, SyncRunSummary
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Sync"])


@router.post("/sync", response_model=SyncRunSummary)
async def trigger_sync(
    request: Request,
    envelope: Optional[PubSubEnvelope] = Body(None),
    history: RunHistory = Depends(get_history),
    lock: asyncio.Lock = Depends(get_run_lock),
    settings: Settings = Depends(get_settings)
):
    """
    Run one sync pass.

    The Pub/Sub payload is logged only; it does not change what is synced.
    Run-level failures (provisioning, planning) surface as HTTP 500 so that
    Pub/Sub redelivers the message. A request arriving while another run is
    in progress gets HTTP 409 and is redelivered later.
    """
    request_id = getattr(request.state, "request_id", None)

    if envelope is not None:
        logger.info(
            f"[{request_id}] Pub/Sub message {envelope.message.messageId} payload: "
            f"{envelope.message.decoded_data()}"
        )

    summary = await run_sync(settings, history=history, lock=lock)
    return SyncRunSummary.from_summary(summary)

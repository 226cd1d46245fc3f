"""
Pydantic schemas for API request/response models
"""

import base64
import binascii
import datetime as dt
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from models.base import SyncStatus


# ============================================================================
# Trigger Schemas
# ============================================================================

class PubSubMessage(BaseModel):
    """Pub/Sub push message; data is base64 encoded"""
    data: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    messageId: Optional[str] = None
    publishTime: Optional[datetime] = None

    def decoded_data(self) -> Optional[str]:
        if not self.data:
            return None
        try:
            return base64.b64decode(self.data).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return None


class PubSubEnvelope(BaseModel):
    """Pub/Sub push subscription request body"""
    message: PubSubMessage = Field(default_factory=PubSubMessage)
    subscription: Optional[str] = None


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    sink_backend: str
    sink_reachable: bool
    last_persisted_date: Optional[date] = None
    last_run_status: Optional[SyncStatus] = None
    last_error: Optional[Dict[str, Any]] = None
    # Declared last so the validator sees the fields above
    status: Optional[str] = Field(None, description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("sink_reachable", False):
            return "unhealthy"
        if values.get("last_error") or values.get("last_run_status") == SyncStatus.PARTIAL_FAILURE:
            return "degraded"
        return "healthy"

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "sink_backend": "bigquery",
                "sink_reachable": True,
                "last_persisted_date": "2024-01-12",
                "last_run_status": "completed",
            }
        }


# ============================================================================
# Statistics Schemas
# ============================================================================

class DateResultInfo(BaseModel):
    date: dt.date
    status: str
    rows_retrieved: int
    rows_delivered: int
    error: Optional[str] = None


class SyncRunSummary(BaseModel):
    """Summary of a single sync run"""
    run_id: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rows_retrieved: int = 0
    rows_delivered: int = 0
    succeeded_dates: List[date] = Field(default_factory=list)
    failed_dates: List[date] = Field(default_factory=list)
    message: Optional[str] = None
    results: List[DateResultInfo] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary) -> "SyncRunSummary":
        return cls(
            run_id=summary.run_id,
            status=summary.status.value,
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            start_date=summary.plan.start_date if summary.plan else None,
            end_date=summary.plan.end_date if summary.plan else None,
            rows_retrieved=summary.rows_retrieved,
            rows_delivered=summary.rows_delivered,
            succeeded_dates=summary.succeeded_dates,
            failed_dates=summary.failed_dates,
            message=summary.message,
            results=[
                DateResultInfo(
                    date=r.date,
                    status=r.status.value,
                    rows_retrieved=r.rows_retrieved,
                    rows_delivered=r.rows_delivered,
                    error=r.error
                )
                for r in summary.results
            ]
        )


class StatsResponse(BaseModel):
    """Sync statistics response"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    site_url: str
    table_id: str
    last_persisted_date: Optional[date] = None
    total_runs: int = 0
    recent_runs: List[SyncRunSummary] = Field(default_factory=list)
    request_id: str

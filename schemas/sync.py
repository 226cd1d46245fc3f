"""
Pydantic schemas for sync run results
"""

import datetime as dt
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from models.base import DateStatus, SyncStatus
from schemas.analytics import DateRangePlan


class DeliveryReceipt(BaseModel):
    """Result of a successful delivery to a sink"""
    table_id: str
    rows_delivered: int = 0
    chunk_count: int = 0


class DateResult(BaseModel):
    """Outcome for one date of a run"""
    date: dt.date
    status: DateStatus
    rows_retrieved: int = 0
    rows_delivered: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in (DateStatus.FETCH_FAILED, DateStatus.DELIVERY_FAILED)


class SyncSummary(BaseModel):
    """
    Report of one sync run.

    Dates that failed are listed with their error. A later run only plans
    them again while no later date has been persisted, since the planner
    resumes after the latest persisted date.
    """
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    status: SyncStatus
    plan: Optional[DateRangePlan] = None
    results: List[DateResult] = Field(default_factory=list)
    started_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    finished_at: Optional[dt.datetime] = None
    message: Optional[str] = None

    @property
    def succeeded_dates(self) -> List[dt.date]:
        return [r.date for r in self.results if r.status == DateStatus.SUCCEEDED]

    @property
    def failed_dates(self) -> List[dt.date]:
        return [r.date for r in self.results if r.failed]

    @property
    def rows_retrieved(self) -> int:
        return sum(r.rows_retrieved for r in self.results)

    @property
    def rows_delivered(self) -> int:
        return sum(r.rows_delivered for r in self.results)

    def report(self) -> dict:
        """JSON-friendly view including the derived totals"""
        data = self.dict()
        data.update({
            "succeeded_dates": [d.isoformat() for d in self.succeeded_dates],
            "failed_dates": [d.isoformat() for d in self.failed_dates],
            "rows_retrieved": self.rows_retrieved,
            "rows_delivered": self.rows_delivered,
        })
        return data

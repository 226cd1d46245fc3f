"""
Pydantic schemas for Search Analytics rows, date range plans and destinations
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class AnalyticsRecord(BaseModel):
    """
    Canonical Search Analytics row.

    Ensures:
    - Metrics are present and non-negative
    - unique_key is the sink idempotency token (see RowShaper)
    """

    date: dt.date
    clicks: int = Field(..., ge=0)
    impressions: int = Field(..., ge=0)
    position: float = Field(..., ge=0)

    page: Optional[str] = None
    country: Optional[str] = None
    device: Optional[str] = None
    query: Optional[str] = None

    unique_key: str = Field(..., min_length=1)

    class Config:
        frozen = True

    def to_row(self) -> Dict[str, Any]:
        """Row dictionary with an ISO date, as written to the sinks"""
        row = self.dict()
        row["date"] = self.date.isoformat()
        return row


class DateRangePlan(BaseModel):
    """Inclusive, contiguous range of dates to sync in one run"""

    start_date: dt.date
    end_date: dt.date
    dates: List[dt.date]

    @validator("dates")
    def dates_contiguous(cls, v, values):
        start = values.get("start_date")
        end = values.get("end_date")
        if not v:
            raise ValueError("A plan needs at least one date")
        if start is not None and v[0] != start:
            raise ValueError("dates must begin at start_date")
        if end is not None and v[-1] != end:
            raise ValueError("dates must end at end_date")
        for previous, current in zip(v, v[1:]):
            if current - previous != dt.timedelta(days=1):
                raise ValueError("dates must be contiguous and ascending")
        return v

    class Config:
        frozen = True

    @classmethod
    def spanning(cls, start_date: dt.date, days: int) -> "DateRangePlan":
        dates = [start_date + dt.timedelta(days=offset) for offset in range(days)]
        return cls(start_date=dates[0], end_date=dates[-1], dates=dates)


class TableRef(BaseModel):
    """Fully qualified destination table"""

    project: str = ""
    dataset: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    location: Optional[str] = None

    class Config:
        frozen = True

    @property
    def table_id(self) -> str:
        parts = [p for p in (self.project, self.dataset, self.table) if p]
        return ".".join(parts)

"""
Plan the next batch of dates to sync from the latest persisted date
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from core.exceptions import PlanUnavailable
from ingestion.loaders.base import Sink
from schemas.analytics import DateRangePlan, TableRef

logger = logging.getLogger(__name__)


class DateRangePlanner:
    """
    Resume point calculation.

    The sink's MAX(date) is the only checkpoint: the next range starts the
    day after it, or at the configured start date for an empty table.
    """

    def __init__(self, sink: Sink):
        self.sink = sink

    async def plan_next_range(
        self,
        destination: TableRef,
        configured_start_date: date,
        window_size_days: int,
        today: Optional[date] = None
    ) -> Optional[DateRangePlan]:
        """
        Compute the next window of dates.

        Args:
            destination: Table whose MAX(date) is the resume point
            configured_start_date: First date to sync for an empty table
            window_size_days: Number of contiguous dates in the plan
            today: Reference date, defaults to the current UTC date

        Returns:
            DateRangePlan, or None when the range would start in the future

        Raises:
            PlanUnavailable: the sink query failed
        """
        if window_size_days < 1:
            raise ValueError("window_size_days must be at least 1")

        try:
            last_persisted = await self.sink.max_date(destination)
        except Exception as e:
            raise PlanUnavailable(
                "Could not read the latest persisted date",
                context={"table_id": destination.table_id},
                original_exception=e
            )

        if last_persisted is None:
            start = configured_start_date
            logger.info(f"No persisted rows in {destination.table_id}, starting at {start}")
        else:
            start = last_persisted + timedelta(days=1)
            logger.info(f"Latest persisted date in {destination.table_id} is {last_persisted}")

        today = today or datetime.utcnow().date()
        if start > today:
            logger.info(f"Next date {start} is after {today}, nothing to sync yet")
            return None

        plan = DateRangePlan.spanning(start, window_size_days)
        logger.info(f"Getting data for {plan.start_date} - {plan.end_date}")
        return plan


async def plan_next_range(
    sink: Sink,
    destination: TableRef,
    configured_start_date: date,
    window_size_days: int,
    today: Optional[date] = None
) -> Optional[DateRangePlan]:
    return await DateRangePlanner(sink).plan_next_range(
        destination, configured_start_date, window_size_days, today=today
    )

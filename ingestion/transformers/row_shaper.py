"""
Shape raw Search Analytics records into AnalyticsRecord rows
"""

import hashlib
import json
from datetime import date
from typing import Any, Dict, Sequence

from pydantic import ValidationError

from core.exceptions import MalformedRecord
from models.base import DIMENSION_COLUMNS
from schemas.analytics import AnalyticsRecord


METRIC_FIELDS = ("clicks", "impressions", "position")


def unique_key(dimension_values: Sequence[Any], day: date) -> str:
    """
    Deterministic idempotency key for a row.

    The ordered dimension values and the ISO date are encoded as a JSON array
    before hashing so that value boundaries are part of the digest.
    """
    payload = json.dumps(
        [None if v is None else str(v) for v in dimension_values] + [day.isoformat()],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RowShaper:
    """
    Map raw API records onto the canonical schema.

    Handles:
    - Metric mapping (clicks, impressions, position)
    - Positional dimension values ("keys") to named columns
    - unique_key generation
    """

    def __init__(self, dimensions: Sequence[str]):
        unknown = [d for d in dimensions if d not in DIMENSION_COLUMNS]
        if unknown:
            raise ValueError(f"Unsupported dimensions: {', '.join(unknown)}")
        if len(set(dimensions)) != len(dimensions):
            raise ValueError("Dimensions must not repeat")
        self.dimensions = tuple(dimensions)

    def shape(self, raw_record: Dict[str, Any], day: date) -> AnalyticsRecord:
        """
        Shape one raw record for the given date.

        Raises:
            MalformedRecord: missing metrics, missing keys or invalid values
        """
        return shape(raw_record, day, self.dimensions)


def shape(raw_record: Dict[str, Any], day: date, dimension_order: Sequence[str]) -> AnalyticsRecord:
    """Pure shaping function used by RowShaper"""
    if not isinstance(raw_record, dict):
        raise MalformedRecord(
            "Record is not an object",
            context={"date": day.isoformat(), "record_type": type(raw_record).__name__}
        )

    for field_name in METRIC_FIELDS:
        if raw_record.get(field_name) is None:
            raise MalformedRecord(
                f"Missing metric field '{field_name}'",
                context={"date": day.isoformat(), "field_name": field_name}
            )

    keys = raw_record.get("keys") or []
    if not isinstance(keys, list) or len(keys) != len(dimension_order):
        raise MalformedRecord(
            "Dimension values do not match requested dimensions",
            context={
                "date": day.isoformat(),
                "field_name": "keys",
                "expected": len(dimension_order),
                "received": len(keys) if isinstance(keys, list) else None,
            }
        )

    values = dict(zip(dimension_order, keys))

    try:
        return AnalyticsRecord(
            date=day,
            clicks=raw_record["clicks"],
            impressions=raw_record["impressions"],
            position=raw_record["position"],
            unique_key=unique_key(keys, day),
            **{column: values.get(column) for column in DIMENSION_COLUMNS},
        )
    except ValidationError as e:
        raise MalformedRecord(
            "Record failed validation",
            context={"date": day.isoformat(), "field_errors": e.errors()},
            original_exception=e
        )

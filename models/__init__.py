"""
SQLAlchemy ORM models and shared enums.

Models:
    base: Declarative base, status enums and the canonical dimension order
    search_analytics: Destination table used by the postgres sink

Usage:
    from models.base import Base, SyncStatus, DateStatus
    from models.search_analytics import SearchAnalyticsRow
"""

__all__ = [
    "Base",
    "SinkBackend",
    "SyncStatus",
    "DateStatus",
    "DIMENSION_COLUMNS",
    "SearchAnalyticsRow",
]

"""
Pydantic schemas for sync data and API payloads.

Schemas:
    analytics: Shaped analytics records, date range plans, table references
    sync: Delivery receipts, per-date results and run summaries
    api: Pub/Sub push envelopes, health and statistics responses

Usage:
    from schemas.analytics import AnalyticsRecord, DateRangePlan, TableRef
    from schemas.sync import SyncSummary
"""

__all__ = [
    "AnalyticsRecord",
    "DateRangePlan",
    "TableRef",
    "DeliveryReceipt",
    "DateResult",
    "SyncSummary",
    "PubSubEnvelope",
    "HealthCheckResponse",
    "StatsResponse",
]

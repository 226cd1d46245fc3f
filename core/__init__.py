"""
Core utilities and configuration for the Search Console sync service.

Modules:
    config: Settings (environment) and the immutable SyncConfig
    database: Async engine and session factories for the postgres sink
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings, SyncConfig
    from core.exceptions import FetchFailed, DeliveryFailed
    from core.logging import setup_logging

Example:
    setup_logging()
    config = SyncConfig.from_settings(settings)
"""

__all__ = [
    "settings",
    "SyncConfig",
    "setup_logging",
    "build_engine",
    "build_session_maker",
    # Exceptions
    "SyncException",
    "ProvisioningError",
    "PlanUnavailable",
    "SyncInProgress",
    "ExtractionError",
    "FetchFailed",
    "APIExtractionError",
    "RetryableError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "TransformationError",
    "MalformedRecord",
    "LoadError",
    "SinkWriteError",
    "DeliveryFailed",
]

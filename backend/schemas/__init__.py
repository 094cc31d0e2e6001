"""Pydantic schemas for API request/response validation."""

from schemas.directory_config import (
    REDACTED,
    AttributeMapping,
    ConnectionTestResponse,
    DirectoryConfig,
    DirectoryConfigUpdateResponse,
)
from schemas.sync import (
    SyncLogEntryResponse,
    SyncLogFilter,
    SyncLogListResponse,
    SyncProgressResponse,
    SyncRunSummary,
    SyncStartResponse,
    SyncStatisticsResponse,
    SyncStatusResponse,
)

__all__ = [
    "REDACTED",
    "AttributeMapping",
    "ConnectionTestResponse",
    "DirectoryConfig",
    "DirectoryConfigUpdateResponse",
    "SyncLogEntryResponse",
    "SyncLogFilter",
    "SyncLogListResponse",
    "SyncProgressResponse",
    "SyncRunSummary",
    "SyncStartResponse",
    "SyncStatisticsResponse",
    "SyncStatusResponse",
]

"""Pydantic schemas for directory sync status, progress, logs and statistics."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

LogLevel = Literal["info", "warning", "error"]


class SyncStartResponse(BaseModel):
    """Response returned when a sync run has been accepted."""

    message: str = "Synchronization started"
    sync_id: str
    estimated_duration: str


class SyncStatusResponse(BaseModel):
    """Current sync state plus totals of the latest (or in-flight) run.

    When nothing has ever run, every counter is zero and ``status`` is
    ``"never_synced"``.
    """

    status: str
    is_running: bool
    total_users: int = 0
    synced_users: int = 0
    errors: int = 0
    warnings: int = 0
    last_sync_duration: Optional[str] = None
    last_sync_time: Optional[datetime] = None


class SyncProgressResponse(BaseModel):
    """Live progress of the active run."""

    is_running: bool
    progress: float = 0.0  # 0-100
    processed_items: int = 0
    total_items: int = 0
    sync_id: Optional[str] = None
    current_step: Optional[str] = None
    estimated_time: Optional[str] = None
    start_time: Optional[datetime] = None


class SyncLogFilter(BaseModel):
    """Filter for sync log queries. All criteria are ANDed."""

    limit: int = Field(default=100, ge=1)
    level: Optional[LogLevel] = None
    sync_id: Optional[str] = None
    username: Optional[str] = None
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None

    @model_validator(mode="after")
    def check_time_range(self):
        if self.from_time and self.to_time and self.from_time > self.to_time:
            raise ValueError("from must not be later than to")
        return self


class SyncLogEntryResponse(BaseModel):
    """A single sync log entry."""

    id: int
    sync_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    username: Optional[str] = None
    external_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    ldap_error_code: Optional[int] = None
    ldap_error_message: Optional[str] = None
    stack_trace: Optional[str] = None


class SyncLogListResponse(BaseModel):
    """A page of sync log entries and the total matching count."""

    logs: list[SyncLogEntryResponse]
    total: int


class SyncRunSummary(BaseModel):
    """Summary of a single sync run."""

    id: str
    trigger: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_entries: int = 0
    users_created: int = 0
    users_updated: int = 0
    users_deactivated: int = 0
    error_count: int = 0
    warning_count: int = 0
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SyncStatisticsResponse(BaseModel):
    """Counters rolled up across every recorded run."""

    total_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    cancelled_runs: int = 0
    total_users_created: int = 0
    total_users_updated: int = 0
    total_users_deactivated: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    external_users: int = 0
    active_external_users: int = 0
    last_sync_time: Optional[datetime] = None
    recent_runs: list[SyncRunSummary] = Field(default_factory=list)

"""SQLAlchemy ORM models."""

from .directory_setting import DirectorySetting
from .sync_log import LOG_LEVELS, SyncLogEntry
from .sync_run import TERMINAL_STATUSES, SyncRun
from .user import User
from .utils import as_utc, generate_uuid, utcnow

__all__ = ["DirectorySetting", "LOG_LEVELS", "SyncLogEntry", "SyncRun", "TERMINAL_STATUSES", "User", "as_utc", "generate_uuid", "utcnow"]

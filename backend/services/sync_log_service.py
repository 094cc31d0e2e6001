"""Sync log service - durable, queryable log lines for directory sync runs."""

import json
import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from config import settings
from models import LOG_LEVELS, SyncLogEntry, as_utc
from schemas.sync import SyncLogEntryResponse, SyncLogFilter
from services.exceptions import SyncLogNotFoundError

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _entry_response(entry: SyncLogEntry) -> SyncLogEntryResponse:
    return SyncLogEntryResponse(
        id=entry.id,
        sync_id=entry.sync_run_id,
        timestamp=as_utc(entry.timestamp),
        level=entry.level,
        message=entry.message,
        username=entry.username,
        external_id=entry.external_id,
        details=entry.details,
        ldap_error_code=entry.directory_error_code,
        ldap_error_message=entry.directory_error_message,
        stack_trace=entry.stack_trace,
    )


def _json_safe(details: dict[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip details through JSON so datetimes etc. become strings."""
    if details is None:
        return None
    return json.loads(json.dumps(details, default=str))


class SyncLogService:
    """Append-only sink for sync log entries.

    Every ``append`` commits before returning, so entries survive a crash
    of the worker that wrote them.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def append(
        self,
        sync_run_id: str,
        level: str,
        message: str,
        *,
        username: str | None = None,
        external_id: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: int | None = None,
        error_message: str | None = None,
        stack_trace: str | None = None,
    ) -> SyncLogEntryResponse:
        """Write one log entry for a run.

        Raises:
            ValueError: If ``level`` is not one of info, warning, error.
        """
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid sync log level {level!r}; expected one of {LOG_LEVELS}")

        logger.log(
            _PY_LEVELS[level],
            "[sync %s] %s%s",
            sync_run_id[:8],
            message,
            f" (user={username})" if username else "",
        )

        db = self._session_factory()
        try:
            entry = SyncLogEntry(
                sync_run_id=sync_run_id,
                level=level,
                message=message,
                username=username,
                external_id=external_id,
                details=_json_safe(details),
                directory_error_code=error_code,
                directory_error_message=error_message,
                stack_trace=stack_trace,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return _entry_response(entry)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def query(self, log_filter: SyncLogFilter) -> tuple[list[SyncLogEntryResponse], int]:
        """Return matching entries newest first, and the total match count.

        ``limit`` is capped at ``settings.SYNC_LOG_MAX_LIMIT``; ``total``
        ignores the limit.
        """
        limit = min(log_filter.limit, settings.SYNC_LOG_MAX_LIMIT)
        db = self._session_factory()
        try:
            q = db.query(SyncLogEntry)
            if log_filter.level:
                q = q.filter(SyncLogEntry.level == log_filter.level)
            if log_filter.sync_id:
                q = q.filter(SyncLogEntry.sync_run_id == log_filter.sync_id)
            if log_filter.username:
                q = q.filter(SyncLogEntry.username == log_filter.username)
            if log_filter.from_time:
                q = q.filter(SyncLogEntry.timestamp >= _naive_utc(log_filter.from_time))
            if log_filter.to_time:
                q = q.filter(SyncLogEntry.timestamp <= _naive_utc(log_filter.to_time))

            total = q.count()
            entries = (
                q.order_by(SyncLogEntry.timestamp.desc(), SyncLogEntry.id.desc())
                .limit(limit)
                .all()
            )
            return [_entry_response(e) for e in entries], total
        finally:
            db.close()

    def get_by_id(self, log_id: int) -> SyncLogEntryResponse:
        """Fetch a single entry.

        Raises:
            SyncLogNotFoundError: If no entry has this id.
        """
        db = self._session_factory()
        try:
            entry = db.query(SyncLogEntry).filter(SyncLogEntry.id == log_id).first()
            if entry is None:
                raise SyncLogNotFoundError(log_id)
            return _entry_response(entry)
        finally:
            db.close()

    def count_by_level(self, sync_run_id: str) -> dict[str, int]:
        """Number of entries per level for one run."""
        db = self._session_factory()
        try:
            counts = {level: 0 for level in LOG_LEVELS}
            for (level,) in (
                db.query(SyncLogEntry.level)
                .filter(SyncLogEntry.sync_run_id == sync_run_id)
                .all()
            ):
                counts[level] = counts.get(level, 0) + 1
            return counts
        finally:
            db.close()


def _naive_utc(value):
    """Stored timestamps are naive UTC (SQLite drops tzinfo)."""
    return as_utc(value).replace(tzinfo=None)

"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timedelta, timezone

from models import SyncLogEntry, SyncRun, User
from sqlalchemy.orm import Session


def create_sync_run(
    db: Session,
    status: str = "completed",
    started_at: datetime | None = None,
    duration: timedelta = timedelta(seconds=42),
    **counters,
) -> SyncRun:
    """Create a finished sync run with the given counters.

    This is a helper function (not a fixture) for tests that need several
    runs with different outcomes.
    """
    started_at = started_at or datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)
    run = SyncRun(
        trigger=counters.pop("trigger", "manual"),
        status=status,
        started_at=started_at,
        ended_at=started_at + duration if status != "running" else None,
        duration_seconds=duration.total_seconds() if status != "running" else None,
        **counters,
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


@pytest.fixture
def external_user(db: Session) -> User:
    """Create a directory-sourced user matching the ``alice`` sample entry."""
    user = User(
        external_id="uuid-alice",
        username="alice",
        email="alice@example.com",
        display_name="Alice",
        is_active=True,
        is_external=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def inactive_external_user(db: Session) -> User:
    """Create a deactivated directory-sourced user."""
    user = User(
        external_id="uuid-dave",
        username="dave",
        email="dave@example.com",
        display_name="Dave",
        is_active=False,
        is_external=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def local_user(db: Session) -> User:
    """Create a locally-managed user (no external id)."""
    user = User(
        username="admin",
        email="admin@example.com",
        display_name="Local Admin",
        is_active=True,
        is_external=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def completed_sync_run(db: Session) -> SyncRun:
    """Create a completed sync run."""
    return create_sync_run(
        db,
        total_entries=3,
        users_created=2,
        users_updated=1,
        warning_count=1,
    )


@pytest.fixture
def sync_log_entry(db: Session, completed_sync_run: SyncRun) -> SyncLogEntry:
    """Create a test sync log entry."""
    entry = SyncLogEntry(
        sync_run_id=completed_sync_run.id,
        level="warning",
        message="Duplicate external identifier 'uuid-bob' in directory results; using the last entry",
        username="bob",
        external_id="uuid-bob",
        details={"dn": "uid=bob,ou=people,dc=example,dc=com"},
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry

"""Sync run service - persistence of SyncRun rows and historical roll-ups."""

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import TERMINAL_STATUSES, SyncRun, User, as_utc, utcnow
from schemas.sync import SyncRunSummary, SyncStatisticsResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunCounters:
    """Final counters of a run, written once at the terminal transition."""

    total_entries: int = 0
    users_created: int = 0
    users_updated: int = 0
    users_deactivated: int = 0
    error_count: int = 0
    warning_count: int = 0


def _summary(run: SyncRun) -> SyncRunSummary:
    summary = SyncRunSummary.model_validate(run)
    return summary.model_copy(update={
        "started_at": as_utc(run.started_at),
        "ended_at": as_utc(run.ended_at),
    })


class SyncRunService:
    """Creates, transitions and reads SyncRun rows.

    Every method commits its own transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_run(self, trigger: str) -> SyncRunSummary:
        """Insert a ``pending`` run with its start time."""
        if trigger not in ("manual", "scheduled"):
            raise ValueError(f"Invalid sync trigger {trigger!r}")
        db = self._session_factory()
        try:
            run = SyncRun(trigger=trigger, status="pending", started_at=utcnow())
            db.add(run)
            db.commit()
            db.refresh(run)
            logger.info("Sync run %s created (%s)", run.id[:8], trigger)
            return _summary(run)
        finally:
            db.close()

    def mark_running(self, run_id: str) -> None:
        db = self._session_factory()
        try:
            run = db.query(SyncRun).filter(SyncRun.id == run_id).one()
            if run.status != "pending":
                raise ValueError(f"Sync run {run_id} is {run.status}, not pending")
            run.status = "running"
            db.commit()
        finally:
            db.close()

    def finalize(
        self,
        run_id: str,
        status: str,
        counters: RunCounters,
        error_message: str | None = None,
    ) -> SyncRunSummary:
        """Write the terminal status, end time and counters.

        Raises:
            ValueError: If ``status`` is not terminal or the run was
                already finalized.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status!r} is not a terminal sync status")
        db = self._session_factory()
        try:
            run = db.query(SyncRun).filter(SyncRun.id == run_id).one()
            if run.is_terminal:
                raise ValueError(f"Sync run {run_id} already finalized as {run.status}")
            ended = utcnow()
            run.status = status
            run.ended_at = ended
            run.duration_seconds = (ended - as_utc(run.started_at)).total_seconds()
            run.total_entries = counters.total_entries
            run.users_created = counters.users_created
            run.users_updated = counters.users_updated
            run.users_deactivated = counters.users_deactivated
            run.error_count = counters.error_count
            run.warning_count = counters.warning_count
            run.error_message = error_message
            db.commit()
            db.refresh(run)
            logger.info(
                "Sync run %s %s in %.1fs: %d created, %d updated, %d deactivated, %d errors",
                run_id[:8], status, run.duration_seconds, run.users_created,
                run.users_updated, run.users_deactivated, run.error_count,
            )
            return _summary(run)
        finally:
            db.close()

    def get_run(self, run_id: str) -> SyncRunSummary | None:
        db = self._session_factory()
        try:
            run = db.query(SyncRun).filter(SyncRun.id == run_id).first()
            return _summary(run) if run else None
        finally:
            db.close()

    def latest_terminal_run(self) -> SyncRunSummary | None:
        """The most recently started run that has finished."""
        db = self._session_factory()
        try:
            run = (
                db.query(SyncRun)
                .filter(SyncRun.status.in_(TERMINAL_STATUSES))
                .order_by(SyncRun.started_at.desc())
                .first()
            )
            return _summary(run) if run else None
        finally:
            db.close()

    def fail_interrupted_runs(self) -> int:
        """Finalize runs a previous process left pending/running as failed.

        Returns:
            Number of runs closed.
        """
        db = self._session_factory()
        try:
            stale = (
                db.query(SyncRun)
                .filter(SyncRun.status.in_(("pending", "running")))
                .all()
            )
            ended = utcnow()
            for run in stale:
                run.status = "failed"
                run.ended_at = ended
                run.duration_seconds = (ended - as_utc(run.started_at)).total_seconds()
                run.error_message = "Interrupted by process restart"
            db.commit()
            if stale:
                logger.warning("Closed %d interrupted sync run(s) as failed", len(stale))
            return len(stale)
        finally:
            db.close()

    def statistics(self, recent: int = 10) -> SyncStatisticsResponse:
        """Roll up counters over every run plus the latest ``recent`` runs."""
        db = self._session_factory()
        try:
            totals = db.query(
                func.count(SyncRun.id),
                func.coalesce(func.sum(SyncRun.users_created), 0),
                func.coalesce(func.sum(SyncRun.users_updated), 0),
                func.coalesce(func.sum(SyncRun.users_deactivated), 0),
                func.coalesce(func.sum(SyncRun.error_count), 0),
                func.coalesce(func.sum(SyncRun.warning_count), 0),
            ).one()
            by_status = dict(
                db.query(SyncRun.status, func.count(SyncRun.id))
                .group_by(SyncRun.status)
                .all()
            )
            last_ended = (
                db.query(func.max(SyncRun.ended_at))
                .filter(SyncRun.status.in_(TERMINAL_STATUSES))
                .scalar()
            )
            external_users = (
                db.query(func.count(User.id))
                .filter(User.external_id.isnot(None))
                .scalar()
            )
            active_external_users = (
                db.query(func.count(User.id))
                .filter(User.external_id.isnot(None), User.is_active.is_(True))
                .scalar()
            )
            recent_runs = (
                db.query(SyncRun)
                .order_by(SyncRun.started_at.desc())
                .limit(recent)
                .all()
            )
            return SyncStatisticsResponse(
                total_runs=totals[0],
                completed_runs=by_status.get("completed", 0),
                failed_runs=by_status.get("failed", 0),
                cancelled_runs=by_status.get("cancelled", 0),
                total_users_created=totals[1],
                total_users_updated=totals[2],
                total_users_deactivated=totals[3],
                total_errors=totals[4],
                total_warnings=totals[5],
                external_users=external_users or 0,
                active_external_users=active_external_users or 0,
                last_sync_time=as_utc(last_ended),
                recent_runs=[_summary(r) for r in recent_runs],
            )
        finally:
            db.close()

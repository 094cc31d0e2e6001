"""Directory sync job - one run of fetch, plan and apply.

State machine::

    pending -> running -> completed | failed | cancelled

The job is driven by a single worker thread. Control-surface readers only
ever see the latest published ``JobProgress`` snapshot.
"""

import logging
import threading
import time
import traceback
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from integrations.directory_protocol import DirectoryClient, DirectoryEntry
from integrations.exceptions import DirectoryError
from schemas.directory_config import DirectoryConfig
from services import sync_planner
from services.exceptions import UserRepositoryError
from services.sync_log_service import SyncLogService
from services.sync_planner import CreateUser, DeactivateUser, SyncAction, UpdateUser
from services.sync_run_service import RunCounters, SyncRunService
from services.user_repository import UserRepository

logger = logging.getLogger(__name__)

# Publish a progress snapshot every N fetched entries
_FETCH_PROGRESS_EVERY = 100


class JobState(str, Enum):
    """Lifecycle state of a sync job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


class CancellationToken:
    """Cooperative cancellation flag, checked between actions."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def format_duration(seconds: float) -> str:
    """Render seconds as ``1h 2m 3s`` / ``2m 3s`` / ``3s``."""
    seconds = max(0, int(round(seconds)))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class JobProgress:
    """Immutable snapshot of a job's progress and running totals."""

    sync_id: str
    state: JobState
    started_at: datetime
    current_step: str | None = None
    total_entries: int = 0
    total_items: int = 0
    processed_items: int = 0
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    errors: int = 0
    warnings: int = 0
    estimated_seconds_remaining: float | None = None

    @property
    def percent(self) -> float:
        """Processed directory entries (plus removals) as 0-100, or 0 while the total is unknown."""
        if self.state == JobState.COMPLETED:
            return 100.0
        if self.total_items <= 0:
            return 0.0
        return round(min(100.0, 100.0 * self.processed_items / self.total_items), 1)

    @property
    def estimated_time(self) -> str | None:
        if self.estimated_seconds_remaining is None:
            return None
        return format_duration(self.estimated_seconds_remaining)

    @property
    def synced_users(self) -> int:
        return self.created + self.updated + self.deactivated


class _FatalSyncError(Exception):
    """Run-level failure: no reliable plan can be computed."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class DirectorySyncJob:
    """A single directory synchronization run.

    Constructing the job allocates the run id and inserts the SyncRun row
    (state ``pending``). ``run()`` does the work on the calling thread and
    always leaves the run in a terminal state, finalized exactly once.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        directory_client: DirectoryClient,
        user_repository: UserRepository,
        log_service: SyncLogService,
        run_service: SyncRunService,
        trigger: str = "manual",
        token: CancellationToken | None = None,
    ):
        self._config = config
        self._directory = directory_client
        self._users = user_repository
        self._logs = log_service
        self._runs = run_service
        self._token = token or CancellationToken()
        self._run_lock = threading.Lock()
        self._apply_started: float | None = None
        self._applied = 0
        self._action_total = 0

        run = self._runs.create_run(trigger)
        self._progress = JobProgress(
            sync_id=run.id,
            state=JobState.PENDING,
            started_at=run.started_at,
            current_step="Queued",
        )

    # -- read side -----------------------------------------------------

    @property
    def sync_id(self) -> str:
        return self._progress.sync_id

    @property
    def state(self) -> JobState:
        return self._progress.state

    def progress(self) -> JobProgress:
        """Latest published snapshot; never blocks."""
        return self._progress

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next action."""
        self._token.cancel()

    @property
    def cancel_requested(self) -> bool:
        return self._token.is_cancelled

    # -- run -----------------------------------------------------------

    def run(self):
        """Execute the job. Returns the finalized SyncRunSummary.

        Raises:
            RuntimeError: If the job has already been started.
        """
        if not self._run_lock.acquire(blocking=False):
            raise RuntimeError(f"Sync job {self.sync_id} is already running")
        if self.state != JobState.PENDING:
            self._run_lock.release()
            raise RuntimeError(f"Sync job {self.sync_id} has already been started")

        status = JobState.FAILED
        error_message: str | None = None
        try:
            self._runs.mark_running(self.sync_id)
            self._publish(state=JobState.RUNNING, current_step="Connecting to directory")
            self._log("info", "Directory synchronization started", details={
                "directory": self._config.url,
                "base_dn": self._config.base_dn,
            })

            plan = self._build_plan()
            status = self._apply(plan.actions)
        except _FatalSyncError as e:
            status = JobState.FAILED
            error_message = str(e)
            self._log_fatal(e)
        except Exception as e:
            status = JobState.FAILED
            error_message = f"Unexpected error: {e}"
            logger.error("Sync run %s failed unexpectedly", self.sync_id[:8], exc_info=True)
            self._log(
                "error",
                f"Synchronization failed: {e}",
                stack_trace=traceback.format_exc(),
            )
        finally:
            summary = self._finish(status, error_message)
            self._run_lock.release()
        return summary

    def _build_plan(self) -> sync_planner.SyncPlan:
        if not self._config.enabled:
            raise _FatalSyncError("Directory sync is disabled")

        self._publish(current_step="Fetching directory entries")
        entries = self._fetch_entries()
        self._log("info", f"Fetched {len(entries)} entries from the directory")

        self._publish(current_step="Loading local users")
        try:
            existing = self._users.list_external_users()
        except UserRepositoryError as e:
            raise _FatalSyncError(f"User store unavailable: {e}", cause=e) from e

        self._publish(current_step="Computing reconciliation plan")
        plan = sync_planner.plan(entries, existing)
        for note in plan.notes:
            self._log(
                note.level,
                note.message,
                username=note.username,
                external_id=note.external_id,
                details=note.details,
            )
        self._log("info", (
            f"Plan: {plan.creates} to create, {plan.updates} to update, "
            f"{plan.deactivates} to deactivate"
        ))
        # entries that need no change are done as soon as the plan exists
        self._publish(
            total_items=plan.work_items,
            processed_items=plan.work_items - len({a.external_id for a in plan.actions}),
        )
        return plan

    def _fetch_entries(self) -> list[DirectoryEntry]:
        """Materialize the full directory snapshot.

        Any error aborts the run before a single action is applied.
        """
        entries: list[DirectoryEntry] = []
        try:
            for entry in self._directory.fetch_entries(self._config):
                entries.append(entry)
                if len(entries) % _FETCH_PROGRESS_EVERY == 0:
                    self._publish(total_entries=len(entries))
        except DirectoryError as e:
            raise _FatalSyncError(
                f"Directory fetch failed after {len(entries)} entries: {e}", cause=e
            ) from e
        self._publish(total_entries=len(entries))
        return entries

    def _apply(self, actions: list[SyncAction]) -> JobState:
        self._publish(current_step="Applying changes")
        self._apply_started = time.monotonic()
        self._action_total = len(actions)
        # an entry counts as processed once its last action has run
        last_for_entry = {action.external_id: i for i, action in enumerate(actions)}
        for index, action in enumerate(actions):
            # single cancellation checkpoint, before each action
            if self._token.is_cancelled:
                self._log("warning", (
                    f"Synchronization cancelled after {index} of {len(actions)} changes"
                ))
                return JobState.CANCELLED
            self._apply_one(action, completes_entry=last_for_entry[action.external_id] == index)
        if self._token.is_cancelled and not actions:
            self._log("warning", "Synchronization cancelled before any changes")
            return JobState.CANCELLED
        return JobState.COMPLETED

    def _apply_one(self, action: SyncAction, completes_entry: bool = True) -> None:
        """Apply one action; failures are logged and counted, never raised."""
        progress = self._progress
        try:
            if isinstance(action, CreateUser):
                self._users.create_user(action.entry)
                progress = replace(progress, created=progress.created + 1)
                message = f"Created user {action.username}"
                details = {"email": action.entry.email, "dn": action.entry.dn}
            elif isinstance(action, UpdateUser):
                self._users.update_user(action.user.id, action.changes)
                progress = replace(progress, updated=progress.updated + 1)
                message = f"Updated user {action.username}: {', '.join(sorted(action.changes))}"
                details = {"changes": action.changes}
            elif isinstance(action, DeactivateUser):
                self._users.deactivate_user(action.user.id)
                progress = replace(progress, deactivated=progress.deactivated + 1)
                message = f"Deactivated user {action.username} ({action.reason})"
                details = {"reason": action.reason}
            else:
                raise TypeError(f"Unknown sync action {action!r}")
        except Exception as e:
            if not isinstance(e, UserRepositoryError):
                logger.error("Unexpected error applying %s for %s", action.kind, action.username, exc_info=True)
            self._applied += 1
            self._publish(processed_items=self._progress.processed_items + int(completes_entry))
            self._log(
                "error",
                f"Failed to {action.kind} user {action.username}: {e}",
                username=action.username,
                external_id=action.external_id,
                details={"action": action.kind},
                stack_trace=traceback.format_exc(),
            )
            return

        self._applied += 1
        self._publish(
            created=progress.created,
            updated=progress.updated,
            deactivated=progress.deactivated,
            processed_items=self._progress.processed_items + int(completes_entry),
        )
        self._log("info", message, username=action.username, external_id=action.external_id, details=details)

    def _log_fatal(self, e: _FatalSyncError) -> None:
        cause = e.cause
        self._log(
            "error",
            f"Synchronization failed: {e}",
            error_code=getattr(cause, "error_code", None),
            error_message=getattr(cause, "error_message", None),
            stack_trace=(
                "".join(traceback.format_exception(cause)) if cause is not None else None
            ),
        )

    def _finish(self, status: JobState, error_message: str | None):
        progress = self._progress
        if status == JobState.COMPLETED:
            self._log("info", (
                f"Synchronization completed: {progress.created} created, "
                f"{progress.updated} updated, {progress.deactivated} deactivated, "
                f"{progress.errors} errors"
            ))
        progress = self._progress
        counters = RunCounters(
            total_entries=progress.total_entries,
            users_created=progress.created,
            users_updated=progress.updated,
            users_deactivated=progress.deactivated,
            error_count=progress.errors,
            warning_count=progress.warnings,
        )
        try:
            summary = self._runs.finalize(self.sync_id, status.value, counters, error_message)
        finally:
            self._publish(state=status, current_step="Finished", estimated_seconds_remaining=None)
        return summary

    # -- helpers -------------------------------------------------------

    def _publish(self, **changes) -> None:
        """Swap in a new progress snapshot (single writer: the worker)."""
        progress = replace(self._progress, **changes)
        if (
            self._apply_started is not None
            and self._applied
            and not progress.state.is_terminal
        ):
            # extrapolated from the actions applied so far
            elapsed = time.monotonic() - self._apply_started
            remaining = max(0, self._action_total - self._applied)
            progress = replace(
                progress,
                estimated_seconds_remaining=elapsed / self._applied * remaining,
            )
        self._progress = progress

    def _log(
        self,
        level: str,
        message: str,
        *,
        username: str | None = None,
        external_id: str | None = None,
        details: dict | None = None,
        error_code: int | None = None,
        error_message: str | None = None,
        stack_trace: str | None = None,
    ) -> None:
        """Append to the sync log and count warnings/errors that were written.

        Counters only move once the entry is durable, so the run's error
        count always equals its error-level log entries.
        """
        try:
            self._logs.append(
                self.sync_id,
                level,
                message,
                username=username,
                external_id=external_id,
                details=details,
                error_code=error_code,
                error_message=error_message,
                stack_trace=stack_trace,
            )
        except ValueError:
            raise
        except Exception:
            logger.error(
                "Could not write sync log entry for run %s: %s",
                self.sync_id[:8], message, exc_info=True,
            )
            return
        if level == "error":
            self._publish(errors=self._progress.errors + 1)
        elif level == "warning":
            self._publish(warnings=self._progress.warnings + 1)

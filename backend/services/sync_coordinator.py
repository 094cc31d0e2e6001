"""Sync coordinator - single-flight control surface for directory sync.

At most one ``DirectorySyncJob`` is active per coordinator. Starting a
run checks the slot under a lock, inserts the run row, and hands the job
to a worker thread, so the caller gets the run id back immediately.
"""

import logging
import threading

from integrations.directory_protocol import DirectoryClient
from integrations.exceptions import DirectoryError
from schemas.directory_config import ConnectionTestResponse, DirectoryConfig
from schemas.sync import (
    SyncLogEntryResponse,
    SyncLogFilter,
    SyncLogListResponse,
    SyncProgressResponse,
    SyncStartResponse,
    SyncStatisticsResponse,
    SyncStatusResponse,
)
from services.config_gate import ConfigGate, keep_stored_password, validate_config
from services.exceptions import (
    DirectoryDisabledError,
    SyncAlreadyRunningError,
    SyncError,
    SyncNotRunningError,
)
from services.sync_job import DirectorySyncJob, format_duration
from services.sync_log_service import SyncLogService
from services.sync_run_service import SyncRunService
from services.user_repository import UserRepository

logger = logging.getLogger(__name__)

# Estimate reported before any run has completed
DEFAULT_ESTIMATED_DURATION = "5m"


class SyncCoordinator:
    """Starts, cancels and reports on directory sync runs."""

    def __init__(
        self,
        config_gate: ConfigGate,
        directory_client: DirectoryClient,
        user_repository: UserRepository,
        log_service: SyncLogService,
        run_service: SyncRunService,
        recover_interrupted: bool = True,
    ):
        self._config_gate = config_gate
        self._directory = directory_client
        self._users = user_repository
        self._logs = log_service
        self._runs = run_service

        self._slot_lock = threading.Lock()
        self._job: DirectorySyncJob | None = None
        self._thread: threading.Thread | None = None
        self._idle = threading.Event()
        self._idle.set()
        self._closed = False
        self._starting = False

        if recover_interrupted:
            self._runs.fail_interrupted_runs()

    # -- start / cancel ------------------------------------------------

    def start_manual_sync(self) -> SyncStartResponse:
        """Start a run on behalf of an operator.

        Raises:
            DirectoryNotConfiguredError: If no configuration exists.
            DirectoryDisabledError: If the configuration is disabled.
            SyncAlreadyRunningError: If a run is already active.
        """
        return self._start("manual")

    def start_scheduled_sync(self) -> SyncStartResponse:
        """Start a run on behalf of the scheduler. Same errors as manual."""
        return self._start("scheduled")

    def _start(self, trigger: str) -> SyncStartResponse:
        config = self._config_gate.get_config()
        if not config.enabled:
            raise DirectoryDisabledError()
        estimate = self._estimated_duration()

        # the lock only guards the slot; the run row is inserted outside it
        with self._slot_lock:
            if self._closed:
                raise SyncError("Sync coordinator is shut down")
            active = self._active_job()
            if active is not None or self._starting:
                sync_id = active.sync_id if active is not None else None
                logger.info("Sync request rejected: run %s still active", (sync_id or "?")[:8])
                raise SyncAlreadyRunningError(sync_id)
            self._starting = True
            self._idle.clear()

        try:
            job = DirectorySyncJob(
                config,
                self._directory,
                self._users,
                self._logs,
                self._runs,
                trigger=trigger,
            )
        except Exception:
            with self._slot_lock:
                self._starting = False
                if self._active_job() is None:
                    self._idle.set()
            raise

        with self._slot_lock:
            self._starting = False
            if self._closed:
                job.cancel()
            self._job = job
            self._thread = threading.Thread(
                target=self._run_job,
                args=(job,),
                name=f"directory-sync-{job.sync_id[:8]}",
                daemon=True,
            )
            self._thread.start()

        logger.info("Directory sync %s started (%s)", job.sync_id[:8], trigger)
        return SyncStartResponse(sync_id=job.sync_id, estimated_duration=estimate)

    def _run_job(self, job: DirectorySyncJob) -> None:
        try:
            job.run()
        except Exception:
            logger.error("Sync run %s could not be finalized", job.sync_id[:8], exc_info=True)
        finally:
            with self._slot_lock:
                # a newer run may already hold the slot
                if self._job is job:
                    self._job = None
                    self._thread = None
                    if not self._starting:
                        self._idle.set()

    def _active_job(self) -> DirectorySyncJob | None:
        """The current job unless it has reached a terminal state."""
        job = self._job
        if job is None or job.state.is_terminal:
            return None
        return job

    def cancel_sync(self) -> str:
        """Request cancellation of the active run.

        Returns:
            The id of the run being cancelled.

        Raises:
            SyncNotRunningError: If no run is active.
        """
        with self._slot_lock:
            job = self._active_job()
            if job is None:
                raise SyncNotRunningError()
            job.cancel()
        logger.info("Cancellation requested for sync %s", job.sync_id[:8])
        return job.sync_id

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no run is active. Returns False on timeout."""
        return self._idle.wait(timeout)

    def shutdown(self, timeout: float = 10.0) -> None:
        """Refuse new runs, cancel the active one and wait for it."""
        with self._slot_lock:
            self._closed = True
            job = self._job
            thread = self._thread
        if job is not None:
            job.cancel()
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Sync %s still running at shutdown", job.sync_id[:8])

    # -- reporting -----------------------------------------------------

    def get_sync_status(self) -> SyncStatusResponse:
        """Status of the in-flight run, else the most recent finished run."""
        job = self._active_job()
        if job is not None:
            progress = job.progress()
            return SyncStatusResponse(
                status=progress.state.value,
                is_running=True,
                total_users=progress.total_entries,
                synced_users=progress.synced_users,
                errors=progress.errors,
                warnings=progress.warnings,
                last_sync_time=progress.started_at,
            )

        last = self._runs.latest_terminal_run()
        if last is None:
            return SyncStatusResponse(status="never_synced", is_running=False)
        return SyncStatusResponse(
            status=last.status,
            is_running=False,
            total_users=last.total_entries,
            synced_users=last.users_created + last.users_updated + last.users_deactivated,
            errors=last.error_count,
            warnings=last.warning_count,
            last_sync_duration=(
                format_duration(last.duration_seconds)
                if last.duration_seconds is not None else None
            ),
            last_sync_time=last.ended_at,
        )

    def get_sync_progress(self) -> SyncProgressResponse:
        job = self._active_job()
        if job is None:
            return SyncProgressResponse(is_running=False)
        progress = job.progress()
        return SyncProgressResponse(
            is_running=True,
            progress=progress.percent,
            processed_items=progress.processed_items,
            total_items=progress.total_items,
            sync_id=progress.sync_id,
            current_step=progress.current_step,
            estimated_time=progress.estimated_time,
            start_time=progress.started_at,
        )

    def get_sync_logs(self, log_filter: SyncLogFilter) -> SyncLogListResponse:
        logs, total = self._logs.query(log_filter)
        return SyncLogListResponse(logs=logs, total=total)

    def get_sync_log_details(self, log_id: int) -> SyncLogEntryResponse:
        return self._logs.get_by_id(log_id)

    def get_statistics(self, recent: int = 10) -> SyncStatisticsResponse:
        return self._runs.statistics(recent=recent)

    # -- connection test -----------------------------------------------

    def test_connection(
        self, override: DirectoryConfig | dict | None = None
    ) -> ConnectionTestResponse:
        """Bind and search against the directory without touching users.

        Tests ``override`` when given (the stored configuration stays as it
        is), else the stored configuration. Connection failures are reported
        in the result rather than raised.

        Raises:
            DirectoryNotConfiguredError: No override and nothing stored.
            DirectoryConfigError: ``override`` fails validation.
        """
        if override is None:
            config = self._config_gate.get_config()
        elif isinstance(override, DirectoryConfig):
            config = override
        else:
            current = (
                self._config_gate.get_config() if self._config_gate.is_configured() else None
            )
            config = validate_config(keep_stored_password(override, current))

        try:
            self._directory.test_connection(config)
        except DirectoryError as e:
            logger.warning("Directory connection test to %s failed: %s", config.url, e)
            return ConnectionTestResponse(success=False, message=str(e))
        logger.info("Directory connection test to %s succeeded", config.url)
        return ConnectionTestResponse(success=True, message="Connection successful")

    # -- helpers -------------------------------------------------------

    def _estimated_duration(self) -> str:
        last = self._runs.latest_terminal_run()
        if last is None or last.status != "completed" or not last.duration_seconds:
            return DEFAULT_ESTIMATED_DURATION
        return format_duration(last.duration_seconds)


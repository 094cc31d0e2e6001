"""Periodic trigger for directory sync.

Runs on a daemon thread and starts a scheduled sync every
``sync_interval_minutes``. An interval of 0, a disabled directory or a
missing configuration pauses the schedule until the config changes.
"""

import logging
import threading

from schemas.directory_config import DirectoryConfig
from services.config_gate import ConfigGate
from services.exceptions import DirectoryConfigError, SyncAlreadyRunningError, SyncError
from services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, coordinator: SyncCoordinator, config_gate: ConfigGate):
        self._coordinator = coordinator
        self._config_gate = config_gate
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        config_gate.subscribe(self._on_config_change)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._loop, name="directory-sync-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Directory sync scheduler started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stopped.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Directory sync scheduler stopped")

    def interval_seconds(self) -> float | None:
        """Seconds between scheduled runs, or None when paused."""
        try:
            config = self._config_gate.get_config()
        except DirectoryConfigError:
            return None
        if not config.enabled or config.sync_interval_minutes <= 0:
            return None
        return config.sync_interval_minutes * 60.0

    def trigger(self) -> bool:
        """Start a scheduled run now. Returns True if one was started."""
        try:
            result = self._coordinator.start_scheduled_sync()
        except SyncAlreadyRunningError:
            logger.info("Scheduled sync skipped: a sync is already running")
            return False
        except DirectoryConfigError as e:
            logger.warning("Scheduled sync skipped: %s", e)
            return False
        except SyncError as e:
            logger.warning("Scheduled sync not started: %s", e)
            return False
        logger.info("Scheduled sync %s started", result.sync_id[:8])
        return True

    def _on_config_change(self, config: DirectoryConfig | None) -> None:
        self._wake.set()

    def _loop(self) -> None:
        while not self._stopped.is_set():
            self._wake.clear()
            if self._stopped.is_set():
                break
            interval = self.interval_seconds()
            if interval is None:
                self._wake.wait()
                continue
            if self._wake.wait(interval):
                # config changed or stopping; recompute the interval
                continue
            if not self._stopped.is_set():
                self.trigger()

"""Exceptions raised by the directory sync services.

Each condition the control surface must distinguish has its own type so
callers never have to match on message text.
"""


class SyncError(Exception):
    """Base exception for directory sync service errors."""

    pass


class SyncAlreadyRunningError(SyncError):
    """A sync run is already in progress; a second one was not started."""

    def __init__(self, sync_id: str | None = None):
        self.sync_id = sync_id
        message = "A sync is already running"
        if sync_id:
            message = f"{message} ({sync_id})"
        super().__init__(message)


class SyncNotRunningError(SyncError):
    """Cancel was requested but no sync run is active."""

    def __init__(self):
        super().__init__("No sync is currently running")


class SyncLogNotFoundError(SyncError):
    """No sync log entry exists with the requested id."""

    def __init__(self, log_id: int):
        self.log_id = log_id
        super().__init__(f"Sync log entry {log_id} not found")


class DirectoryConfigError(SyncError):
    """The directory configuration is invalid.

    ``errors`` carries the per-field validation errors when available.
    """

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)


class DirectoryNotConfiguredError(DirectoryConfigError):
    """No directory configuration has been saved."""

    def __init__(self):
        super().__init__("Directory is not configured")


class DirectoryDisabledError(DirectoryConfigError):
    """The directory configuration exists but is disabled."""

    def __init__(self):
        super().__init__("Directory sync is disabled")


class UserRepositoryError(SyncError):
    """A local user record could not be written."""

    def __init__(self, message: str, username: str | None = None, external_id: str | None = None):
        self.username = username
        self.external_id = external_id
        super().__init__(message)

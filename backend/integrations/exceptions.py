"""Typed exception hierarchy for directory errors.

Provides structured exceptions for differentiated error handling
(auth errors vs unreachable server vs malformed data).
"""


class DirectoryError(Exception):
    """Base exception for all directory-related errors.

    Carries the directory's own result code and message (when the server
    returned one) so they can be recorded in the sync log.
    """

    def __init__(
        self,
        message: str,
        error_code: int | None = None,
        error_message: str | None = None,
    ):
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(message)


class DirectoryConnectionError(DirectoryError):
    """Network failures - timeouts, DNS resolution, connection refused."""

    pass


class DirectoryAuthError(DirectoryError):
    """Bind credentials rejected by the directory."""

    pass


class DirectoryDataError(DirectoryError):
    """Search failed or returned data that could not be interpreted."""

    pass

"""Mock implementations for external services."""

import threading

from integrations.directory_protocol import DirectoryEntry
from integrations.exceptions import (
    DirectoryAuthError,
    DirectoryConnectionError,
    DirectoryDataError,
)
from services.exceptions import UserRepositoryError


def make_entry(
    name: str,
    *,
    external_id: str | None = "",
    email: str | None = "",
    display_name: str | None = "",
    enabled: bool = True,
) -> DirectoryEntry:
    """Build a DirectoryEntry with derived defaults for ``name``.

    Pass ``None`` explicitly to leave an attribute out.
    """
    return DirectoryEntry(
        external_id=f"uuid-{name}" if external_id == "" else external_id,
        username=name,
        email=f"{name}@example.com" if email == "" else email,
        display_name=name.title() if display_name == "" else display_name,
        enabled=enabled,
        dn=f"uid={name},ou=people,dc=example,dc=com",
    )


SAMPLE_ENTRIES = [
    make_entry("alice"),
    make_entry("bob"),
    make_entry("carol"),
]


class MockDirectoryClient:
    """Mock directory client for testing.

    ``should_fail`` makes every call raise immediately; ``fail_after``
    makes ``fetch_entries`` raise after yielding that many entries.
    """

    def __init__(
        self,
        entries: list[DirectoryEntry] | None = None,
        should_fail: bool = False,
        failure_message: str = "Mock directory error",
        failure_type: str = "connection",
        fail_after: int | None = None,
    ):
        self.entries = list(entries or [])
        self._should_fail = should_fail
        self._failure_message = failure_message
        self._failure_type = failure_type
        self._fail_after = fail_after
        self.test_calls = []
        self.fetch_calls = []

    def _raise_failure(self) -> None:
        """Raise the appropriate exception based on failure_type."""
        if self._failure_type == "auth":
            raise DirectoryAuthError(
                self._failure_message, error_code=49, error_message="invalidCredentials"
            )
        elif self._failure_type == "connection":
            raise DirectoryConnectionError(self._failure_message)
        elif self._failure_type == "data":
            raise DirectoryDataError(
                self._failure_message, error_code=32, error_message="noSuchObject"
            )
        else:
            raise Exception(self._failure_message)

    def test_connection(self, config) -> None:
        self.test_calls.append(config)
        if self._should_fail:
            self._raise_failure()

    def fetch_entries(self, config):
        self.fetch_calls.append(config)
        if self._should_fail:
            self._raise_failure()
        for index, entry in enumerate(list(self.entries)):
            if self._fail_after is not None and index == self._fail_after:
                self._raise_failure()
            yield entry


class GatedDirectoryClient(MockDirectoryClient):
    """Directory client whose fetch blocks until ``release()`` is called.

    Lets tests observe a run while it is in flight.
    """

    def __init__(self, entries: list[DirectoryEntry] | None = None, **kwargs):
        super().__init__(entries=entries, **kwargs)
        self.fetch_started = threading.Event()
        self._gate = threading.Event()

    def release(self) -> None:
        self._gate.set()

    def fetch_entries(self, config):
        self.fetch_started.set()
        if not self._gate.wait(timeout=10):
            raise DirectoryConnectionError("gate never released")
        yield from super().fetch_entries(config)


class RecordingUserRepository:
    """Wraps a real repository; can fail chosen users and observe writes.

    Args:
        inner: The repository that performs the writes.
        fail_usernames: Usernames whose writes raise UserRepositoryError.
        unexpected_usernames: Usernames whose writes raise RuntimeError.
        after_write: Called with the running count of successful writes.
        fail_listing: Make ``list_external_users`` raise.
    """

    def __init__(
        self,
        inner,
        fail_usernames: set[str] | None = None,
        unexpected_usernames: set[str] | None = None,
        after_write=None,
        fail_listing: bool = False,
    ):
        self._inner = inner
        self._fail_usernames = fail_usernames or set()
        self._unexpected_usernames = unexpected_usernames or set()
        self._after_write = after_write
        self._fail_listing = fail_listing
        self.writes = []

    def list_external_users(self):
        if self._fail_listing:
            raise UserRepositoryError("Mock user store unavailable")
        return self._inner.list_external_users()

    def _check(self, username: str | None) -> None:
        if username in self._fail_usernames:
            raise UserRepositoryError(f"Mock write failure for {username}", username=username)
        if username in self._unexpected_usernames:
            raise RuntimeError(f"Mock crash for {username}")

    def _written(self, kind: str, username: str | None) -> None:
        self.writes.append((kind, username))
        if self._after_write is not None:
            self._after_write(len(self.writes))

    def create_user(self, entry):
        self._check(entry.username)
        record = self._inner.create_user(entry)
        self._written("create", entry.username)
        return record

    def update_user(self, user_id, changes):
        username = self._username_for(user_id)
        self._check(username)
        record = self._inner.update_user(user_id, changes)
        self._written("update", record.username)
        return record

    def deactivate_user(self, user_id):
        username = self._username_for(user_id)
        self._check(username)
        record = self._inner.deactivate_user(user_id)
        self._written("deactivate", record.username)
        return record

    def _username_for(self, user_id: str) -> str | None:
        for user in self._inner.list_external_users():
            if user.id == user_id:
                return user.username
        return None

"""Directory client protocol definitions.

This module defines the normalized entry type and the capability surface
the sync engine needs from an LDAP-like directory.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from schemas.directory_config import DirectoryConfig


@dataclass(frozen=True)
class DirectoryEntry:
    """Normalized user entry from the directory.

    Directory clients map their raw search results to this format using
    the configured attribute mapping. Required attributes may be ``None``
    when the directory omits them; the planner reports those entries.
    """

    external_id: str | None  # Directory's stable unique key
    username: str | None
    email: str | None
    display_name: str | None = None
    enabled: bool = True  # Directory-side account state
    dn: str | None = None  # Distinguished name, for diagnostics
    attributes: dict = field(default_factory=dict, compare=False)  # Raw attributes


class DirectoryClient(Protocol):
    """Protocol that directory clients must implement."""

    def test_connection(self, config: "DirectoryConfig") -> None:
        """Connect and bind with ``config``.

        Raises:
            DirectoryConnectionError: If the server cannot be reached.
            DirectoryAuthError: If the bind is rejected.
        """
        ...

    def fetch_entries(self, config: "DirectoryConfig") -> Iterator[DirectoryEntry]:
        """Yield all user entries matching the configured filter.

        Each call starts a fresh search. The iterator may raise a
        ``DirectoryError`` part way through.
        """
        ...

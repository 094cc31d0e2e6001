"""External directory integrations.

This package contains:
- Directory protocol: Normalized entry type and client interface
- LDAP client: Integration with LDAP v3 servers via ldap3
"""

from integrations.directory_protocol import DirectoryClient, DirectoryEntry
from integrations.exceptions import (
    DirectoryAuthError,
    DirectoryConnectionError,
    DirectoryDataError,
    DirectoryError,
)

__all__ = [
    "DirectoryAuthError",
    "DirectoryClient",
    "DirectoryConnectionError",
    "DirectoryDataError",
    "DirectoryEntry",
    "DirectoryError",
]

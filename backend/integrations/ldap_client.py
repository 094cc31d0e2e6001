"""LDAP directory client built on ldap3.

This module implements the DirectoryClient protocol against any
LDAP v3 server (OpenLDAP, 389-ds, FreeIPA, Active Directory).
"""

import logging
from collections.abc import Iterator

from ldap3 import NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import (
    LDAPBindError,
    LDAPCommunicationError,
    LDAPException,
    LDAPInvalidCredentialsResult,
    LDAPOperationResult,
    LDAPStartTLSError,
)

from integrations.directory_protocol import DirectoryEntry
from integrations.exceptions import (
    DirectoryAuthError,
    DirectoryConnectionError,
    DirectoryDataError,
    DirectoryError,
)
from schemas.directory_config import DirectoryConfig

logger = logging.getLogger(__name__)

# Active Directory: ACCOUNTDISABLE bit of userAccountControl
_UAC_ACCOUNTDISABLE = 0x0002

_DISABLED_VALUES = frozenset({"false", "0", "no", "disabled", "inactive", "locked"})


def _first_value(value):
    """Collapse a (possibly multi-valued) attribute to its first value."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_text(value) -> str | None:
    """Normalize an attribute value to a stripped string, or None if empty."""
    value = _first_value(value)
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.hex()
    text = str(value).strip()
    return text or None


def _is_enabled(attribute: str, value) -> bool:
    """Interpret the directory's account-state attribute.

    ``userAccountControl`` is decoded as a bit mask; any other attribute
    is treated as a boolean-ish flag. A missing value means enabled.
    """
    value = _first_value(value)
    if value is None or value == "":
        return True
    if attribute.lower() == "useraccountcontrol":
        try:
            return not int(value) & _UAC_ACCOUNTDISABLE
        except (TypeError, ValueError):
            return True
    return str(value).strip().lower() not in _DISABLED_VALUES


def _translate(e: LDAPException, action: str) -> DirectoryError:
    """Map an ldap3 exception onto the directory error hierarchy."""
    if isinstance(e, (LDAPInvalidCredentialsResult, LDAPBindError)):
        code = getattr(e, "result", None)
        return DirectoryAuthError(
            f"Directory bind failed: {e}",
            error_code=code if isinstance(code, int) else 49,
            error_message=getattr(e, "description", None) or str(e),
        )
    if isinstance(e, (LDAPCommunicationError, LDAPStartTLSError)):
        return DirectoryConnectionError(f"Cannot reach directory while {action}: {e}")
    if isinstance(e, LDAPOperationResult):
        return DirectoryDataError(
            f"Directory {action} failed: {e.description or e}",
            error_code=e.result,
            error_message=e.message or e.description,
        )
    return DirectoryError(f"Directory error while {action}: {e}")


class LdapDirectoryClient:
    """DirectoryClient implementation using ldap3.

    Every call opens its own connection, so ``fetch_entries`` can be
    restarted and a config snapshot never leaks into another run.
    """

    def _connect(self, config: DirectoryConfig) -> Connection:
        """Open, optionally StartTLS, and bind a connection for ``config``."""
        server = Server(
            config.host,
            port=config.port,
            use_ssl=config.use_ssl,
            get_info=NONE,
            connect_timeout=config.connect_timeout,
        )
        conn = Connection(
            server,
            user=config.bind_dn or None,
            password=config.bind_password.get_secret_value() or None,
            auto_bind=False,
            raise_exceptions=True,
            receive_timeout=config.connect_timeout,
            read_only=True,
        )
        try:
            conn.open()
            if config.use_start_tls and not config.use_ssl:
                conn.start_tls()
            conn.bind()
        except LDAPException as e:
            try:
                conn.unbind()
            except LDAPException:
                logger.debug("unbind after failed connect raised", exc_info=True)
            raise _translate(e, "connecting") from e
        logger.debug("Bound to %s as %s", config.url, config.bind_dn or "<anonymous>")
        return conn

    def test_connection(self, config: DirectoryConfig) -> None:
        """Connect and bind, then disconnect.

        Raises:
            DirectoryConnectionError: If the server cannot be reached.
            DirectoryAuthError: If the bind is rejected.
        """
        conn = self._connect(config)
        try:
            logger.debug("Directory connection test to %s bound successfully", config.url)
        finally:
            conn.unbind()

    def fetch_entries(self, config: DirectoryConfig) -> Iterator[DirectoryEntry]:
        """Yield user entries from a paged subtree search under ``base_dn``."""
        mapping = config.attribute_mapping
        attributes = [mapping.username, mapping.email, mapping.external_id]
        if mapping.display_name:
            attributes.append(mapping.display_name)
        if mapping.enabled:
            attributes.append(mapping.enabled)

        conn = self._connect(config)
        count = 0
        try:
            results = conn.extend.standard.paged_search(
                search_base=config.base_dn,
                search_filter=config.user_filter,
                search_scope=SUBTREE,
                attributes=attributes,
                paged_size=config.page_size,
                generator=True,
            )
            for item in results:
                if item.get("type") != "searchResEntry":
                    continue
                attrs = item.get("attributes") or {}
                count += 1
                yield DirectoryEntry(
                    external_id=_as_text(attrs.get(mapping.external_id)),
                    username=_as_text(attrs.get(mapping.username)),
                    email=_as_text(attrs.get(mapping.email)),
                    display_name=(
                        _as_text(attrs.get(mapping.display_name))
                        if mapping.display_name
                        else None
                    ),
                    enabled=(
                        _is_enabled(mapping.enabled, attrs.get(mapping.enabled))
                        if mapping.enabled
                        else True
                    ),
                    dn=item.get("dn"),
                    attributes=dict(attrs),
                )
        except LDAPException as e:
            raise _translate(e, "searching") from e
        finally:
            conn.unbind()
            logger.info("Directory search under %s returned %d entries", config.base_dn, count)

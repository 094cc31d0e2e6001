"""OS keychain access for directory secrets.

``Settings`` reads ``LDAP_BIND_PASSWORD`` from the keychain ahead of the
environment; ``scripts/ldap_bind_password.py`` writes and removes it.
Keyring failures (no backend, locked keychain, missing entry) are logged
and reported as ``None`` or ``False`` rather than raised.
"""

import logging
from typing import Any, Callable

import keyring
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)

SERVICE_NAME = "dirsync"

CREDENTIAL_KEYS: frozenset[str] = frozenset({"LDAP_BIND_PASSWORD"})


def _keyring_call(action: str, key: str, fn: Callable[..., Any], *args) -> tuple[bool, Any]:
    """Run one keyring operation for ``key``.

    Returns:
        ``(ok, result)``; ``ok`` is False for unknown keys and failures.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to %s non-credential key %s", action, key)
        return False, None
    try:
        return True, fn(SERVICE_NAME, key, *args)
    except PasswordDeleteError:
        logger.debug("%s is not in the keychain", key)
    except Exception:
        logger.warning("Keychain %s failed for %s", action, key, exc_info=True)
    return False, None


def get_credential(key: str) -> str | None:
    """Return the stored value for ``key``, or ``None``."""
    _, value = _keyring_call("read", key, keyring.get_password)
    return value


def set_credential(key: str, value: str) -> bool:
    """Store ``value`` under ``key``. Blank values are rejected."""
    if not value or not value.strip():
        logger.warning("Attempted to store empty value for %s", key)
        return False
    ok, _ = _keyring_call("store", key, keyring.set_password, value)
    if ok:
        logger.info("Stored %s in keychain", key)
    return ok


def delete_credential(key: str) -> bool:
    ok, _ = _keyring_call("delete", key, keyring.delete_password)
    if ok:
        logger.info("Deleted %s from keychain", key)
    return ok

"""Config gate - owns the current directory configuration.

Readers get an immutable ``DirectoryConfig``; writers replace it wholesale
under a lock (last writer wins). A sync job takes one snapshot at start
and keeps it for the whole run, so an update never mixes old and new
settings inside one run.
"""

import json
import logging
import threading
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.orm import Session

from config import Settings
from models import DirectorySetting
from schemas.directory_config import REDACTED, AttributeMapping, DirectoryConfig
from services.exceptions import DirectoryConfigError, DirectoryNotConfiguredError

logger = logging.getLogger(__name__)

CONFIG_KEY = "ldap"

ConfigListener = Callable[[DirectoryConfig | None], None]


def validate_config(data: dict) -> DirectoryConfig:
    try:
        return DirectoryConfig.model_validate(data)
    except ValidationError as e:
        raise DirectoryConfigError(
            f"Invalid directory configuration: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def keep_stored_password(data: dict, current: DirectoryConfig | None) -> dict:
    """Substitute the stored bind password when ``data`` echoes the mask.

    Clients only ever see the redacted password, so sending it back means
    "unchanged". Only applies while the bind DN is unchanged too.
    """
    if current is None or data.get("bind_password") != REDACTED:
        return data
    if data.get("bind_dn", "") != current.bind_dn:
        return data
    return {**data, "bind_password": current.bind_password.get_secret_value()}


def config_from_settings(settings: Settings) -> DirectoryConfig | None:
    """Build a bootstrap config from ``LDAP_*`` settings, if any are set."""
    if not settings.LDAP_URL:
        return None
    return validate_config({
        "enabled": True,
        "url": settings.LDAP_URL,
        "bind_dn": settings.LDAP_BIND_DN,
        "bind_password": settings.LDAP_BIND_PASSWORD,
        "base_dn": settings.LDAP_BASE_DN,
        "user_filter": settings.LDAP_USER_FILTER,
        "attribute_mapping": AttributeMapping(
            username=settings.LDAP_USERNAME_ATTRIBUTE,
            email=settings.LDAP_EMAIL_ATTRIBUTE,
            external_id=settings.LDAP_EXTERNAL_ID_ATTRIBUTE,
            display_name=settings.LDAP_DISPLAY_NAME_ATTRIBUTE or None,
        ),
        "use_start_tls": settings.LDAP_START_TLS,
        "sync_interval_minutes": settings.LDAP_SYNC_INTERVAL_MINUTES,
    })


class ConfigGate:
    """Holds, validates, persists and publishes the directory configuration."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        bootstrap_settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._bootstrap_settings = bootstrap_settings
        self._lock = threading.Lock()
        self._listeners: list[ConfigListener] = []
        self._current: DirectoryConfig | None = None
        try:
            self._current = self._load()
        except DirectoryConfigError:
            logger.error("Stored directory configuration is invalid; directory sync unavailable", exc_info=True)

    # -- reads ---------------------------------------------------------

    def get_config(self) -> DirectoryConfig:
        """Return the current configuration.

        Raises:
            DirectoryNotConfiguredError: If nothing has been configured.
        """
        current = self._current
        if current is None:
            raise DirectoryNotConfiguredError()
        return current

    def is_configured(self) -> bool:
        return self._current is not None

    # -- writes --------------------------------------------------------

    def update_config(self, config: DirectoryConfig | dict) -> DirectoryConfig:
        """Validate, persist and publish a new configuration.

        The new value is visible to readers as soon as this returns;
        subscribers are notified afterwards on a background thread.

        Raises:
            DirectoryConfigError: If ``config`` fails validation.
        """
        if not isinstance(config, DirectoryConfig):
            config = validate_config(keep_stored_password(config, self._current))
        with self._lock:
            self._store(config)
            self._current = config
        logger.info(
            "Directory configuration updated: %s (enabled=%s)",
            config.url, config.enabled,
        )
        self._notify_async(config)
        return config

    def disable(self) -> None:
        """Turn directory sync off. Safe to call repeatedly or when unconfigured."""
        with self._lock:
            current = self._current
            if current is None or not current.enabled:
                return
            disabled = current.model_copy(update={"enabled": False})
            self._store(disabled)
            self._current = disabled
        logger.info("Directory sync disabled")
        self._notify_async(disabled)

    def reload_config(self) -> DirectoryConfig:
        """Re-read and re-validate the stored configuration, synchronously.

        Raises:
            DirectoryNotConfiguredError: If nothing is stored.
            DirectoryConfigError: If the stored value is no longer valid.
        """
        with self._lock:
            config = self._load()
            if config is None:
                self._current = None
                raise DirectoryNotConfiguredError()
            self._current = config
        logger.info("Directory configuration reloaded")
        self._notify_async(config)
        return config

    # -- subscriptions -------------------------------------------------

    def subscribe(self, listener: ConfigListener) -> None:
        """Call ``listener(config)`` after every change."""
        self._listeners.append(listener)

    def _notify_async(self, config: DirectoryConfig | None) -> None:
        if not self._listeners:
            return
        threading.Thread(
            target=self._notify,
            args=(config,),
            name="directory-config-reload",
            daemon=True,
        ).start()

    def _notify(self, config: DirectoryConfig | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(config)
            except Exception:
                logger.error("Directory config listener %r failed", listener, exc_info=True)

    # -- storage -------------------------------------------------------

    def _load(self) -> DirectoryConfig | None:
        db = self._session_factory()
        try:
            row = db.query(DirectorySetting).filter(DirectorySetting.key == CONFIG_KEY).first()
            raw = row.value if row else None
        finally:
            db.close()
        if raw is not None:
            return validate_config(json.loads(raw))
        if self._bootstrap_settings is not None:
            config = config_from_settings(self._bootstrap_settings)
            if config is not None:
                logger.info("Using directory configuration from environment settings")
            return config
        return None

    def _store(self, config: DirectoryConfig) -> None:
        serialized = json.dumps(config.to_storage())
        db = self._session_factory()
        try:
            row = db.query(DirectorySetting).filter(DirectorySetting.key == CONFIG_KEY).first()
            if row is None:
                db.add(DirectorySetting(key=CONFIG_KEY, value=serialized))
            else:
                row.value = serialized
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

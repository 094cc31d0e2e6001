"""Pydantic schemas for the directory (LDAP) configuration."""

from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

REDACTED = "**********"


class AttributeMapping(BaseModel):
    """Maps local user fields to directory attribute names.

    ``username``, ``email`` and ``external_id`` are required targets.
    """

    model_config = ConfigDict(frozen=True)

    username: str = "uid"
    email: str = "mail"
    external_id: str = "entryUUID"
    display_name: Optional[str] = "cn"
    enabled: Optional[str] = None  # e.g. "userAccountControl" on Active Directory

    @field_validator("username", "email", "external_id")
    @classmethod
    def require_attribute_name(cls, v: str) -> str:
        """Required targets must name a directory attribute."""
        if not v or not v.strip():
            raise ValueError("attribute name must not be empty")
        return v.strip()


class DirectoryConfig(BaseModel):
    """The complete directory configuration.

    Instances are immutable; an update replaces the whole object. The bind
    password is a ``SecretStr`` so it renders as ``**********`` in reprs,
    logs and JSON responses.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    url: str
    bind_dn: str = ""
    bind_password: SecretStr = SecretStr("")
    base_dn: str
    user_filter: str = "(objectClass=person)"
    attribute_mapping: AttributeMapping = Field(default_factory=AttributeMapping)
    use_start_tls: bool = False
    connect_timeout: int = Field(default=10, ge=1, le=300)
    page_size: int = Field(default=500, ge=1, le=5000)
    sync_interval_minutes: int = Field(default=0, ge=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Accept ``ldap://host[:port]`` or ``ldaps://host[:port]``."""
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("ldap", "ldaps"):
            raise ValueError("url must start with ldap:// or ldaps://")
        if not parsed.hostname:
            raise ValueError("url must include a host")
        try:
            parsed.port
        except ValueError:
            raise ValueError("url has an invalid port")
        return v

    @field_validator("base_dn")
    @classmethod
    def validate_base_dn(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("base_dn must not be empty")
        return v.strip()

    @field_validator("user_filter")
    @classmethod
    def validate_user_filter(cls, v: str) -> str:
        v = v.strip()
        if not (v.startswith("(") and v.endswith(")")):
            raise ValueError("user_filter must be a parenthesized LDAP filter")
        return v

    @property
    def use_ssl(self) -> bool:
        return urlparse(self.url).scheme == "ldaps"

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def port(self) -> int:
        parsed = urlparse(self.url)
        if parsed.port:
            return parsed.port
        return 636 if parsed.scheme == "ldaps" else 389

    def to_storage(self) -> dict[str, Any]:
        """Serialize including the real bind password, for persistence only."""
        data = self.model_dump(mode="json")
        data["bind_password"] = self.bind_password.get_secret_value()
        return data

    def redacted(self) -> dict[str, Any]:
        """Serialize with the bind password masked, for responses and logs."""
        data = self.model_dump(mode="json")
        data["bind_password"] = REDACTED if self.bind_password.get_secret_value() else ""
        return data


class DirectoryConfigUpdateResponse(BaseModel):
    """Response body after a configuration update."""

    message: str
    config: dict[str, Any]


class ConnectionTestResponse(BaseModel):
    """Result of a directory connection test."""

    success: bool
    message: str

"""User repository - local user records keyed by directory external id.

The sync job only talks to the ``UserRepository`` protocol. The SQLAlchemy
implementation commits every write in its own transaction, so a crash
mid-run leaves a consistent partial result that the next run completes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from integrations.directory_protocol import DirectoryEntry
from models import User, as_utc, utcnow
from services.exceptions import UserRepositoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalUserRecord:
    """Read-only snapshot of a local user, detached from any session."""

    id: str
    external_id: str | None
    username: str
    email: str
    display_name: str | None = None
    is_active: bool = True
    is_external: bool = False
    last_synced_at: datetime | None = None

    @classmethod
    def from_model(cls, user: User) -> "LocalUserRecord":
        return cls(
            id=user.id,
            external_id=user.external_id,
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            is_active=bool(user.is_active),
            is_external=bool(user.is_external),
            last_synced_at=as_utc(user.last_synced_at),
        )


class UserRepository(Protocol):
    """Capability surface the sync job needs from the user store."""

    def list_external_users(self) -> list[LocalUserRecord]:
        """Return every user that has an external id."""
        ...

    def create_user(self, entry: DirectoryEntry) -> LocalUserRecord:
        ...

    def update_user(self, user_id: str, changes: dict[str, Any]) -> LocalUserRecord:
        ...

    def deactivate_user(self, user_id: str) -> LocalUserRecord:
        ...


class SqlAlchemyUserRepository:
    """UserRepository backed by the ``users`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def list_external_users(self) -> list[LocalUserRecord]:
        db = self._session_factory()
        try:
            users = db.query(User).filter(User.external_id.isnot(None)).all()
            return [LocalUserRecord.from_model(u) for u in users]
        except SQLAlchemyError as e:
            raise UserRepositoryError(f"Failed to load directory users: {e}") from e
        finally:
            db.close()

    def create_user(self, entry: DirectoryEntry) -> LocalUserRecord:
        """Insert a directory-sourced user.

        Raises:
            UserRepositoryError: If the external id is already taken.
        """
        db = self._session_factory()
        try:
            user = User(
                external_id=entry.external_id,
                username=entry.username,
                email=entry.email,
                display_name=entry.display_name,
                is_active=True,
                is_external=True,
                last_synced_at=utcnow(),
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return LocalUserRecord.from_model(user)
        except IntegrityError as e:
            db.rollback()
            raise UserRepositoryError(
                f"Cannot create user {entry.username!r}: external id {entry.external_id!r} already exists",
                username=entry.username,
                external_id=entry.external_id,
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            raise UserRepositoryError(
                f"Cannot create user {entry.username!r}: {e}",
                username=entry.username,
                external_id=entry.external_id,
            ) from e
        finally:
            db.close()

    def update_user(self, user_id: str, changes: dict[str, Any]) -> LocalUserRecord:
        """Apply ``changes`` to a user and stamp ``last_synced_at``."""
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                raise UserRepositoryError(f"User {user_id} no longer exists")
            for name, value in changes.items():
                setattr(user, name, value)
            user.last_synced_at = utcnow()
            db.commit()
            db.refresh(user)
            return LocalUserRecord.from_model(user)
        except IntegrityError as e:
            db.rollback()
            raise UserRepositoryError(
                f"Cannot update user {user_id}: {', '.join(sorted(changes))} conflicts with another user",
                username=changes.get("username"),
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            raise UserRepositoryError(f"Cannot update user {user_id}: {e}") from e
        finally:
            db.close()

    def deactivate_user(self, user_id: str) -> LocalUserRecord:
        """Mark a user inactive. Deactivating an inactive user is a no-op."""
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                raise UserRepositoryError(f"User {user_id} no longer exists")
            user.is_active = False
            user.last_synced_at = utcnow()
            db.commit()
            db.refresh(user)
            return LocalUserRecord.from_model(user)
        except SQLAlchemyError as e:
            db.rollback()
            raise UserRepositoryError(f"Cannot deactivate user {user_id}: {e}") from e
        finally:
            db.close()

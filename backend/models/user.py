"""User model - local user record, optionally sourced from the directory."""

from sqlalchemy import Boolean, Column, DateTime, String

from database import Base
from models.utils import generate_uuid, utcnow


class User(Base):
    """A local user account.

    ``external_id`` is the directory's stable key for the person. It is
    ``None`` for locally-created users, which the directory sync never
    touches. Non-null values are unique. Usernames are not: a directory can
    hand a retired username to a new person while the old record stays
    deactivated.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    external_id = Column(String, unique=True, index=True, nullable=True)
    username = Column(String(255), index=True, nullable=False)
    email = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_external = Column(Boolean, default=False, nullable=False)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

"""DirectorySetting model - persisted directory connection configuration."""

from sqlalchemy import Column, DateTime, String, Text

from database import Base
from models.utils import generate_uuid, utcnow


class DirectorySetting(Base):
    """Stores the current directory configuration as a JSON document.

    There is one row per configuration key (currently only ``"ldap"``).
    Updates replace the whole document.
    """

    __tablename__ = "directory_settings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(Text, nullable=False)  # JSON-serialized DirectoryConfig
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

"""SyncRun model - one execution of the directory synchronization job."""

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow

TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})


class SyncRun(Base):
    """A directory sync run.

    ``id``, ``trigger`` and ``started_at`` are set on creation. The
    terminal fields (``ended_at``, ``status``, counters) are written once
    when the run finishes and never changed afterwards.
    """

    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    trigger = Column(String(20), nullable=False, default="manual")  # "manual" | "scheduled"
    status = Column(String(20), nullable=False, default="pending", index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    total_entries = Column(Integer, default=0, nullable=False)
    users_created = Column(Integer, default=0, nullable=False)
    users_updated = Column(Integer, default=0, nullable=False)
    users_deactivated = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    warning_count = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    # Relationships
    log_entries = relationship("SyncLogEntry", back_populates="sync_run")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def synced_users(self) -> int:
        """Users touched by the run (created + updated + deactivated)."""
        return (
            (self.users_created or 0)
            + (self.users_updated or 0)
            + (self.users_deactivated or 0)
        )

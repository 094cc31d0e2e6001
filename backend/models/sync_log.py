"""SyncLogEntry model - append-only log lines attached to a sync run."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import utcnow

LOG_LEVELS = ("info", "warning", "error")


class SyncLogEntry(Base):
    """A single structured log line written while a sync run executes.

    Entries are immutable once written. ``id`` is monotonic so entries of
    a run can be replayed in write order.
    """

    __tablename__ = "sync_log_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_run_id = Column(String(36), ForeignKey("sync_runs.id"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    level = Column(String(10), nullable=False, index=True)  # "info" | "warning" | "error"
    message = Column(Text, nullable=False)
    username = Column(String(255), nullable=True, index=True)
    external_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    directory_error_code = Column(Integer, nullable=True)
    directory_error_message = Column(Text, nullable=True)
    stack_trace = Column(Text, nullable=True)

    # Relationships
    sync_run = relationship("SyncRun", back_populates="log_entries")

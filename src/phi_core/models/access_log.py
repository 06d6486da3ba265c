"""Append-only access log.

Rows are never updated or deleted; the ORM refuses both.
"""

import enum
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text, event

from .base import Base, RowMixin, utcnow


class AccessOutcome(str, enum.Enum):
    """Audit status values."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    DENIED = "DENIED"


class AccessLog(Base, RowMixin):
    """One access, denial, upload or rejection event."""

    __tablename__ = "phi_access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Who
    actor_id = Column(Integer, nullable=True, index=True)
    actor_type = Column(String(50), nullable=False)

    # What
    action = Column(String(100), nullable=False)
    document_type = Column(String(50))
    document_id = Column(Integer)
    patient_id = Column(Integer, index=True)
    access_reason = Column(String(255))

    # Result
    success = Column(Boolean, nullable=False)
    status = Column(String(20), nullable=False)
    failure_reason = Column(Text)

    # Where
    ip_address = Column(String(45))
    user_agent = Column(String(500))

    details = Column(JSON, default=dict)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("idx_phi_access_patient_time", "patient_id", "timestamp"),
        Index("idx_phi_access_actor_time", "actor_id", "timestamp"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AccessLog(id={self.id}, actor={self.actor_type}:{self.actor_id}, "
            f"action={self.action}, status={self.status})>"
        )


@event.listens_for(AccessLog, "before_update")
def _reject_update(mapper: Any, connection: Any, target: AccessLog) -> None:
    raise ValueError("Access log entries are append-only")


@event.listens_for(AccessLog, "before_delete")
def _reject_delete(mapper: Any, connection: Any, target: AccessLog) -> None:
    raise ValueError("Access log entries are append-only")

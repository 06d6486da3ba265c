"""
Access auditing for PHI.

Audit writes are best-effort: a failed write is retried once, then logged
locally and dropped. An audit outage must never become a PHI-access outage,
so the audit trail is not transactionally coupled to the access it records.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from phi_core.models.access_log import AccessLog, AccessOutcome
from phi_core.models.base import utcnow
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)

# Actions counted by suspicious-activity detection
PHI_VIEW_ACTIONS = ("VIEW_PHI", "VIEW_MEDICAL_RECORD", "VIEW_BILLING", "DOWNLOAD_DOCUMENT")
PHI_VIEW_ACTION_PREFIXES = ("LAW_FIRM_ACCESS_", "MEDICAL_PROVIDER_ACCESS_")


@dataclass(frozen=True)
class RequestContext:
    """Origin of the request being audited."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class AccessEntry:
    """Document-centric audit entry."""

    actor_id: Optional[int]
    actor_type: str
    action: str
    document_type: Optional[str] = None
    document_id: Optional[int] = None
    patient_id: Optional[int] = None
    access_reason: Optional[str] = None
    success: bool = True
    failure_reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PhiAccessEntry:
    """Patient-centric audit entry."""

    user_id: int
    user_type: str
    action: str
    patient_id: int
    record_type: Optional[str] = None
    record_id: Optional[int] = None
    success: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)


class AuditSink(ABC):
    """Destination for audit rows.

    ``write`` never raises. Subclasses implement ``_persist``, which may.
    """

    retry_attempts = 2
    retry_wait_seconds = 0.05

    async def write(self, row: Dict[str, Any]) -> bool:
        """Persist one audit row. Returns False if it was dropped."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_fixed(self.retry_wait_seconds),
                retry=retry_if_exception_type(SQLAlchemyError),
                reraise=True,
            ):
                with attempt:
                    await self._persist(row)
            return True
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "audit_write_failed",
                error=str(e),
                action=row.get("action"),
                actor_id=row.get("actor_id"),
                actor_type=row.get("actor_type"),
            )
            return False

    @abstractmethod
    async def _persist(self, row: Dict[str, Any]) -> None:
        """Store the row."""


class DatabaseAuditSink(AuditSink):
    """Writes each row in its own session and transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        """Initialize sink with a session factory."""
        self.session_factory = session_factory

    async def _persist(self, row: Dict[str, Any]) -> None:
        async with self.session_factory() as session:
            session.add(AccessLog(**row))
            await session.commit()


class AccessAuditor:
    """Records PHI access and answers breach-investigation queries."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        sink: Optional[AuditSink] = None,
    ):
        """Initialize auditor; rows go to ``sink`` or to the database."""
        self.session_factory = session_factory
        self.sink = sink or DatabaseAuditSink(session_factory)

    async def log_access(
        self, entry: AccessEntry, context: Optional[RequestContext] = None
    ) -> bool:
        """Append a document access entry."""
        context = context or RequestContext()
        row = {
            "actor_id": entry.actor_id,
            "actor_type": entry.actor_type,
            "action": entry.action,
            "document_type": entry.document_type,
            "document_id": entry.document_id,
            "patient_id": entry.patient_id,
            "access_reason": entry.access_reason,
            "success": entry.success,
            "status": (
                AccessOutcome.SUCCESS.value
                if entry.success
                else AccessOutcome.DENIED.value
            ),
            "failure_reason": entry.failure_reason,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
            "details": dict(entry.details),
            "timestamp": utcnow(),
        }
        return await self.sink.write(row)

    async def log_phi_access(
        self, entry: PhiAccessEntry, context: Optional[RequestContext] = None
    ) -> bool:
        """Append a patient-centric PHI access entry."""
        context = context or RequestContext()
        now = utcnow()
        row = {
            "actor_id": entry.user_id,
            "actor_type": entry.user_type,
            "action": entry.action,
            "document_type": entry.record_type,
            "document_id": entry.record_id,
            "patient_id": entry.patient_id,
            "access_reason": entry.action,
            "success": entry.success,
            "status": (
                AccessOutcome.SUCCESS.value
                if entry.success
                else AccessOutcome.FAILURE.value
            ),
            "failure_reason": None,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
            "details": {
                "record_type": entry.record_type,
                "timestamp": now.isoformat(),
                **entry.metadata,
            },
            "timestamp": now,
        }
        return await self.sink.write(row)

    async def get_phi_access_logs(
        self,
        patient_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AccessLog]:
        """Entries touching one patient, newest first."""
        stmt = select(AccessLog).where(AccessLog.patient_id == patient_id)
        if start is not None:
            stmt = stmt.where(AccessLog.timestamp >= start)
        if end is not None:
            stmt = stmt.where(AccessLog.timestamp <= end)
        stmt = (
            stmt.order_by(AccessLog.timestamp.desc(), AccessLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def detect_suspicious_activity(
        self, since: Optional[datetime] = None, threshold: int = 50
    ) -> List[Dict[str, Any]]:
        """
        Actors whose successful PHI views since ``since`` exceed ``threshold``.

        Returns:
            One dict per actor, busiest first
        """
        since = since or utcnow() - timedelta(hours=24)
        stmt = (
            select(
                AccessLog.actor_id,
                AccessLog.actor_type,
                func.count(distinct(AccessLog.patient_id)).label("unique_patients"),
                func.count(AccessLog.id).label("total_accesses"),
            )
            .where(
                AccessLog.timestamp >= since,
                AccessLog.success.is_(True),
                _phi_view_clause(),
            )
            .group_by(AccessLog.actor_id, AccessLog.actor_type)
            .having(func.count(AccessLog.id) > threshold)
            .order_by(func.count(AccessLog.id).desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        findings = [
            {
                "actor_id": row.actor_id,
                "actor_type": row.actor_type,
                "unique_patients_accessed": row.unique_patients,
                "total_accesses": row.total_accesses,
            }
            for row in rows
        ]
        if findings:
            logger.warning("suspicious_phi_access_detected", actors=len(findings))
        return findings


def _phi_view_clause() -> Any:
    clauses = [AccessLog.action.in_(PHI_VIEW_ACTIONS)]
    clauses.extend(
        AccessLog.action.like(f"{prefix}%") for prefix in PHI_VIEW_ACTION_PREFIXES
    )
    return or_(*clauses)

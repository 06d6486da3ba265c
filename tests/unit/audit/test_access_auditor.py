"""
Tests for the PHI access audit trail.

HIPAA COMPLIANCE: audit rows are append-only and an audit outage never
surfaces to the caller.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from phi_core.audit.access_auditor import (
    AccessAuditor,
    AccessEntry,
    AuditSink,
    PhiAccessEntry,
    RequestContext,
)
from phi_core.models.access_log import AccessLog
from phi_core.models.base import utcnow


class FlakySink(AuditSink):
    """Fails a fixed number of times, then stores rows in memory."""

    retry_wait_seconds = 0

    def __init__(self, failures, error=None):
        """Initialize with the number of failures to simulate."""
        self.failures = failures
        self.error = error or OperationalError("INSERT", {}, Exception("locked"))
        self.rows = []

    async def _persist(self, row):
        """Fail until the failure budget is spent."""
        if self.failures:
            self.failures -= 1
            raise self.error
        self.rows.append(row)


def _entry(**overrides):
    values = {
        "actor_id": 10,
        "actor_type": "lawfirm",
        "action": "LAW_FIRM_ACCESS_FULL_ACCESS",
        "document_type": "medical_records",
        "document_id": 5,
        "patient_id": 1,
    }
    values.update(overrides)
    return AccessEntry(**values)


@pytest.mark.audit_required
class TestLogAccess:
    """Writing audit rows."""

    @pytest.mark.asyncio
    async def test_log_access_persists_row(self, auditor):
        """All entry fields and the request origin are stored."""
        written = await auditor.log_access(
            _entry(details={"consent": "FULL_ACCESS"}),
            RequestContext(ip_address="192.0.2.1", user_agent="Firm Portal"),
        )

        assert written is True
        logs = await auditor.get_phi_access_logs(1)
        assert len(logs) == 1
        log = logs[0]
        assert log.actor_id == 10
        assert log.actor_type == "lawfirm"
        assert log.action == "LAW_FIRM_ACCESS_FULL_ACCESS"
        assert log.document_type == "medical_records"
        assert log.document_id == 5
        assert log.success is True
        assert log.status == "SUCCESS"
        assert log.ip_address == "192.0.2.1"
        assert log.user_agent == "Firm Portal"
        assert log.details == {"consent": "FULL_ACCESS"}
        assert log.timestamp is not None

    @pytest.mark.asyncio
    async def test_denied_entry_status(self, auditor):
        """Unsuccessful access is recorded as DENIED with the reason."""
        await auditor.log_access(
            _entry(
                action="LAW_FIRM_ACCESS_DENIED",
                success=False,
                failure_reason="No active consent on file for this document type",
            )
        )

        log = (await auditor.get_phi_access_logs(1))[0]
        assert log.success is False
        assert log.status == "DENIED"
        assert log.failure_reason == "No active consent on file for this document type"
        assert log.ip_address is None

    @pytest.mark.asyncio
    async def test_log_phi_access(self, auditor):
        """Patient-centric entries map onto the same log."""
        await auditor.log_phi_access(
            PhiAccessEntry(
                user_id=3,
                user_type="patient",
                action="VIEW_PHI",
                patient_id=1,
                record_type="evidence",
                record_id=8,
                metadata={"screen": "timeline"},
            )
        )

        log = (await auditor.get_phi_access_logs(1))[0]
        assert log.actor_id == 3
        assert log.actor_type == "patient"
        assert log.action == "VIEW_PHI"
        assert log.document_type == "evidence"
        assert log.document_id == 8
        assert log.details["record_type"] == "evidence"
        assert log.details["screen"] == "timeline"
        assert "timestamp" in log.details

    @pytest.mark.asyncio
    async def test_failed_phi_access_status(self, auditor):
        """Failed patient-centric entries are FAILURE."""
        await auditor.log_phi_access(
            PhiAccessEntry(
                user_id=3, user_type="patient", action="VIEW_PHI", patient_id=1, success=False
            )
        )
        log = (await auditor.get_phi_access_logs(1))[0]
        assert log.status == "FAILURE"


@pytest.mark.audit_required
class TestBestEffortSink:
    """Audit failures never reach the caller."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, session_factory):
        """One failed attempt is retried."""
        sink = FlakySink(failures=1)
        auditor = AccessAuditor(session_factory, sink=sink)

        assert await auditor.log_access(_entry()) is True
        assert len(sink.rows) == 1

    @pytest.mark.asyncio
    async def test_persistent_failure_is_dropped(self, session_factory):
        """Repeated failures are logged and swallowed."""
        sink = FlakySink(failures=10)
        auditor = AccessAuditor(session_factory, sink=sink)

        assert await auditor.log_access(_entry()) is False
        assert sink.rows == []
        assert sink.failures == 10 - AuditSink.retry_attempts

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_retried(self, session_factory):
        """Only database errors are retried; nothing propagates."""
        sink = FlakySink(failures=5, error=RuntimeError("serializer bug"))
        auditor = AccessAuditor(session_factory, sink=sink)

        assert await auditor.log_phi_access(
            PhiAccessEntry(user_id=1, user_type="patient", action="VIEW_PHI", patient_id=1)
        ) is False
        assert sink.failures == 4

    @pytest.mark.asyncio
    async def test_missing_tables_do_not_raise(self, session_factory, engine):
        """Even a broken schema only costs the audit row."""
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE phi_access_logs")

        assert await AccessAuditor(session_factory).log_access(_entry()) is False

        async with engine.begin() as conn:
            await conn.run_sync(AccessLog.__table__.create)


@pytest.mark.audit_required
class TestAppendOnly:
    """Audit rows cannot change."""

    @pytest.mark.asyncio
    async def test_update_is_refused(self, auditor, session):
        """Updating an audit row raises."""
        await auditor.log_access(_entry())
        log = (await auditor.get_phi_access_logs(1))[0]
        log = await session.get(AccessLog, log.id)

        log.action = "TAMPERED"
        with pytest.raises(ValueError):
            await session.flush()

    @pytest.mark.asyncio
    async def test_delete_is_refused(self, auditor, session):
        """Deleting an audit row raises."""
        await auditor.log_access(_entry())
        log = await session.get(AccessLog, (await auditor.get_phi_access_logs(1))[0].id)

        await session.delete(log)
        with pytest.raises(ValueError):
            await session.flush()


class TestAccessLogQueries:
    """Breach-investigation queries."""

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, auditor, session):
        """Logs are per patient, newest first, windowed and paged."""
        now = utcnow()
        for days_ago in range(5):
            session.add(
                AccessLog(
                    actor_id=10,
                    actor_type="lawfirm",
                    action="LAW_FIRM_ACCESS_FULL_ACCESS",
                    patient_id=1,
                    success=True,
                    status="SUCCESS",
                    timestamp=now - timedelta(days=days_ago),
                    details={"days_ago": days_ago},
                )
            )
        session.add(
            AccessLog(
                actor_id=10,
                actor_type="lawfirm",
                action="LAW_FIRM_ACCESS_FULL_ACCESS",
                patient_id=2,
                success=True,
                status="SUCCESS",
                timestamp=now,
            )
        )
        await session.commit()

        logs = await auditor.get_phi_access_logs(1)
        assert [log.details["days_ago"] for log in logs] == [0, 1, 2, 3, 4]

        window = await auditor.get_phi_access_logs(
            1, start=now - timedelta(days=3, hours=1), end=now - timedelta(hours=1)
        )
        assert [log.details["days_ago"] for log in window] == [1, 2, 3]

        page = await auditor.get_phi_access_logs(1, limit=2, offset=2)
        assert [log.details["days_ago"] for log in page] == [2, 3]

    @pytest.mark.asyncio
    async def test_detect_suspicious_activity(self, auditor, session):
        """Actors over the threshold are reported, busiest first."""
        now = utcnow()

        def add(actor_id, count, action="LAW_FIRM_ACCESS_FULL_ACCESS", success=True, age=0):
            for i in range(count):
                session.add(
                    AccessLog(
                        actor_id=actor_id,
                        actor_type="lawfirm",
                        action=action,
                        patient_id=i % 3,
                        success=success,
                        status="SUCCESS" if success else "DENIED",
                        timestamp=now - timedelta(hours=age),
                    )
                )

        add(10, 8)
        add(11, 6, action="DOWNLOAD_DOCUMENT")
        add(12, 3)
        add(13, 9, action="UPLOAD_EVIDENCE")
        add(14, 9, action="LAW_FIRM_ACCESS_DENIED", success=False)
        add(15, 9, age=48)
        await session.commit()

        findings = await auditor.detect_suspicious_activity(threshold=5)

        assert [f["actor_id"] for f in findings] == [10, 11]
        assert findings[0] == {
            "actor_id": 10,
            "actor_type": "lawfirm",
            "unique_patients_accessed": 3,
            "total_accesses": 8,
        }

    @pytest.mark.asyncio
    async def test_no_suspicious_activity(self, auditor):
        """Quiet periods report nothing."""
        assert await auditor.detect_suspicious_activity(threshold=0) == []

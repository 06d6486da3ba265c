"""Append-only audit trail for PHI access."""

from phi_core.audit.access_auditor import (
    AccessAuditor,
    AccessEntry,
    AuditSink,
    DatabaseAuditSink,
    PhiAccessEntry,
    RequestContext,
)

__all__ = [
    "AccessAuditor",
    "AccessEntry",
    "AuditSink",
    "DatabaseAuditSink",
    "PhiAccessEntry",
    "RequestContext",
]

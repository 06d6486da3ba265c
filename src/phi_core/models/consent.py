"""Consent records and their CUSTOM scopes."""

import enum
from typing import Dict, FrozenSet

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import Base, RowMixin, TimestampMixin, enum_column
from .enums import AccessorType, DocumentCategory


class ConsentType(str, enum.Enum):
    """What a consent grant covers."""

    FULL_ACCESS = "FULL_ACCESS"
    MEDICAL_RECORDS_ONLY = "MEDICAL_RECORDS_ONLY"
    BILLING_ONLY = "BILLING_ONLY"
    CUSTOM = "CUSTOM"


class ConsentStatus(str, enum.Enum):
    """Lifecycle status; only ACTIVE rows are usable."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


# CUSTOM grants nothing by type; its coverage comes from ConsentScope rows.
CONSENT_TYPE_CATEGORIES: Dict[ConsentType, FrozenSet[DocumentCategory]] = {
    ConsentType.FULL_ACCESS: frozenset(DocumentCategory),
    ConsentType.MEDICAL_RECORDS_ONLY: frozenset({DocumentCategory.MEDICAL_RECORDS}),
    ConsentType.BILLING_ONLY: frozenset({DocumentCategory.MEDICAL_BILLING}),
    ConsentType.CUSTOM: frozenset(),
}

if set(CONSENT_TYPE_CATEGORIES) != set(ConsentType):
    raise RuntimeError("CONSENT_TYPE_CATEGORIES must cover every ConsentType")


class ConsentRecord(Base, RowMixin, TimestampMixin):
    """A patient's grant of access to a law firm or medical provider."""

    __tablename__ = "consent_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, nullable=False, index=True)
    granted_to_type = enum_column(AccessorType, nullable=False)
    granted_to_id = Column(Integer, nullable=False)
    consent_type = enum_column(ConsentType, nullable=False)
    status = enum_column(ConsentStatus, nullable=False, default=ConsentStatus.ACTIVE)
    expires_at = Column(DateTime, nullable=True)

    consent_method = Column(String(50), default="electronic")
    ip_address = Column(String(45))
    signature_data = Column(Text)

    revoked_at = Column(DateTime, nullable=True)
    revoked_reason = Column(Text)

    scopes = relationship(
        "ConsentScope",
        back_populates="consent",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index(
            "idx_consent_grantee",
            "patient_id",
            "granted_to_type",
            "granted_to_id",
            "status",
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<ConsentRecord(id={self.id}, patient={self.patient_id}, "
            f"to={self.granted_to_type}:{self.granted_to_id}, "
            f"type={self.consent_type}, status={self.status})>"
        )


class ConsentScope(Base, RowMixin):
    """Per-category permission of a CUSTOM consent."""

    __tablename__ = "consent_scope"

    id = Column(Integer, primary_key=True, autoincrement=True)
    consent_id = Column(
        Integer,
        ForeignKey("consent_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_type = Column(String(50), nullable=False)
    can_view = Column(Boolean, nullable=False, default=True)
    can_edit = Column(Boolean, nullable=False, default=False)

    consent = relationship("ConsentRecord", back_populates="scopes")

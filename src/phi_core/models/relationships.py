"""Accessor-to-patient relationship rows.

A row is created when an invite is accepted and deleted on disconnect.
Deleting it revokes every downstream consent check immediately.
"""

import enum

from sqlalchemy import Column, DateTime, Integer, UniqueConstraint

from .base import Base, RowMixin, enum_column, utcnow


class RelationshipStatus(str, enum.Enum):
    """Provider relationship status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class LawFirmClient(Base, RowMixin):
    """Law firm to client link; existence of the row is the activation signal."""

    __tablename__ = "law_firm_clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    law_firm_id = Column(Integer, nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("law_firm_id", "client_id", name="uq_law_firm_client"),
    )


class MedicalProviderPatient(Base, RowMixin):
    """Medical provider to patient link."""

    __tablename__ = "medical_provider_patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    medical_provider_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(Integer, nullable=False, index=True)
    status = enum_column(
        RelationshipStatus, nullable=False, default=RelationshipStatus.ACTIVE
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "medical_provider_id", "patient_id", name="uq_medical_provider_patient"
        ),
    )

"""Patient-owned document rows.

PHI sub-fields are stored as ``<name>_encrypted`` in the
``iv:authTag:ciphertext`` wire format. The plaintext twin ``<name>`` is kept
for rows written before encryption was introduced.
"""

from typing import Dict, Tuple, Type

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, Numeric, String, Text

from .base import Base, RowMixin, utcnow
from .enums import DocumentCategory


class DocumentMixin(RowMixin):
    """Columns shared by every document table."""

    # Logical PHI attribute names, each with an ``_encrypted`` column
    phi_fields: Tuple[str, ...] = ()
    # Columns returned by listings, in addition to the PHI attributes
    listing_columns: Tuple[str, ...] = ()

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)

    file_name = Column(String(255))
    original_file_name = Column(String(255))
    file_size = Column(Integer)
    mime_type = Column(String(100))
    file_hash = Column(String(64))
    storage_key = Column(String(500))
    storage_type = Column(String(20))

    uploaded_by = Column(Integer)
    uploaded_by_role = Column(String(50))
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    accessible_by_law_firm = Column(Boolean, nullable=False, default=True)


class MedicalRecord(Base, DocumentMixin):
    """Clinical records."""

    __tablename__ = "medical_records"

    phi_fields = ("facility_name", "provider_name", "diagnosis")
    listing_columns = (
        "id",
        "record_type",
        "file_name",
        "file_size",
        "uploaded_at",
        "date_of_service",
    )

    record_type = Column(String(100))
    date_of_service = Column(Date)

    facility_name = Column(String(255))
    facility_name_encrypted = Column(Text)
    provider_name = Column(String(255))
    provider_name_encrypted = Column(Text)
    diagnosis = Column(Text)
    diagnosis_encrypted = Column(Text)


class MedicalBilling(Base, DocumentMixin):
    """Medical bills."""

    __tablename__ = "medical_billing"

    phi_fields = ("facility_name", "billing_details", "insurance_info")
    listing_columns = (
        "id",
        "billing_type",
        "file_name",
        "file_size",
        "uploaded_at",
        "total_amount",
        "amount_due",
        "bill_date",
    )

    billing_type = Column(String(100))
    total_amount = Column(Numeric(12, 2))
    amount_due = Column(Numeric(12, 2))
    bill_date = Column(Date)

    facility_name = Column(String(255))
    facility_name_encrypted = Column(Text)
    billing_details = Column(Text)
    billing_details_encrypted = Column(Text)
    insurance_info = Column(Text)
    insurance_info_encrypted = Column(Text)


class Evidence(Base, DocumentMixin):
    """Case evidence (reports, footage, photographs, insurance cards)."""

    __tablename__ = "evidence"

    phi_fields = ("title", "description", "location")
    listing_columns = (
        "id",
        "evidence_type",
        "category_code",
        "file_name",
        "file_size",
        "uploaded_at",
        "date_of_incident",
    )

    evidence_type = Column(String(100))
    category_code = Column(String(20))
    date_of_incident = Column(Date)

    # Set once at upload time by the classification policy
    accessible_by_medical_provider = Column(Boolean, nullable=False, default=False)

    title = Column(String(255))
    title_encrypted = Column(Text)
    description = Column(Text)
    description_encrypted = Column(Text)
    location = Column(String(255))
    location_encrypted = Column(Text)


DOCUMENT_MODELS: Dict[DocumentCategory, Type[DocumentMixin]] = {
    DocumentCategory.MEDICAL_RECORDS: MedicalRecord,
    DocumentCategory.MEDICAL_BILLING: MedicalBilling,
    DocumentCategory.EVIDENCE: Evidence,
}

if set(DOCUMENT_MODELS) != set(DocumentCategory):
    raise RuntimeError("DOCUMENT_MODELS must cover every DocumentCategory")

"""Shared enumerations."""

import enum


class AccessorType(str, enum.Enum):
    """External party requesting access to a patient's documents."""

    LAWFIRM = "lawfirm"
    MEDICAL_PROVIDER = "medical_provider"


class DocumentCategory(str, enum.Enum):
    """Document categories; each maps to one table."""

    MEDICAL_RECORDS = "medical_records"
    MEDICAL_BILLING = "medical_billing"
    EVIDENCE = "evidence"

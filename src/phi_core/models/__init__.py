"""Database models for the PHI core."""

from phi_core.models.access_log import AccessLog, AccessOutcome
from phi_core.models.base import Base
from phi_core.models.consent import (
    CONSENT_TYPE_CATEGORIES,
    ConsentRecord,
    ConsentScope,
    ConsentStatus,
    ConsentType,
)
from phi_core.models.documents import (
    DOCUMENT_MODELS,
    Evidence,
    MedicalBilling,
    MedicalRecord,
)
from phi_core.models.enums import AccessorType, DocumentCategory
from phi_core.models.relationships import (
    LawFirmClient,
    MedicalProviderPatient,
    RelationshipStatus,
)

__all__ = [
    "AccessLog",
    "AccessOutcome",
    "AccessorType",
    "Base",
    "CONSENT_TYPE_CATEGORIES",
    "ConsentRecord",
    "ConsentScope",
    "ConsentStatus",
    "ConsentType",
    "DOCUMENT_MODELS",
    "DocumentCategory",
    "Evidence",
    "LawFirmClient",
    "MedicalBilling",
    "MedicalProviderPatient",
    "MedicalRecord",
    "RelationshipStatus",
]

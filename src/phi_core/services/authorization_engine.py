"""Consent-based authorization of document access.

Checks run in a fixed order and stop at the first failure:

1. the accessor has a relationship with the patient;
2. an active, unexpired consent covers the document category;
3. the document belongs to the patient and is visible to the accessor.

Denials are returned as values with an enumerated reason. Only store
failures raise. Granted rows are handed back with PHI sub-fields still
encrypted; decrypting them is the caller's job.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from phi_core.audit.access_auditor import AccessAuditor, AccessEntry, RequestContext
from phi_core.models.consent import ConsentType
from phi_core.models.documents import DOCUMENT_MODELS, DocumentMixin, Evidence
from phi_core.models.enums import AccessorType, DocumentCategory
from phi_core.repositories.consent_store import ConsentStore
from phi_core.repositories.document_repository import DocumentRepository
from phi_core.security.crypto_box import CryptoBox
from phi_core.security.phi_fields import decrypt_row_fields
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)


class DenialReason(str, enum.Enum):
    """Why access was refused."""

    NOT_LAW_FIRM_CLIENT = "Patient is not a client of this law firm"
    NOT_PROVIDER_PATIENT = "Patient is not associated with this medical provider"
    NO_ACTIVE_CONSENT = "No active consent on file for this document type"
    DOCUMENT_NOT_ACCESSIBLE = "Document not found or not accessible"

    @property
    def http_status(self) -> int:
        """Status code a controller should answer with."""
        if self is DenialReason.DOCUMENT_NOT_ACCESSIBLE:
            return 404
        return 403


_RELATIONSHIP_DENIALS = {
    AccessorType.LAWFIRM: DenialReason.NOT_LAW_FIRM_CLIENT,
    AccessorType.MEDICAL_PROVIDER: DenialReason.NOT_PROVIDER_PATIENT,
}

_ACTION_PREFIXES = {
    AccessorType.LAWFIRM: "LAW_FIRM",
    AccessorType.MEDICAL_PROVIDER: "MEDICAL_PROVIDER",
}


@dataclass(frozen=True)
class AccessGranted:
    """Access allowed by ``consent_type``; ``document`` is the raw row."""

    document: DocumentMixin
    consent_type: ConsentType
    authorized: bool = field(default=True, init=False)


@dataclass(frozen=True)
class AccessDenied:
    """Access refused."""

    reason: DenialReason
    authorized: bool = field(default=False, init=False)


Decision = Union[AccessGranted, AccessDenied]


@dataclass
class DocumentListing:
    """Documents per category for which consent holds."""

    documents: Dict[DocumentCategory, List[Dict[str, Any]]]
    consents: Dict[DocumentCategory, bool]
    authorized: bool = field(default=True, init=False)


def access_action(accessor_type: AccessorType, suffix: str) -> str:
    """Audit action name, e.g. ``LAW_FIRM_ACCESS_FULL_ACCESS``."""
    return f"{_ACTION_PREFIXES[accessor_type]}_{suffix}"


class AuthorizationEngine:
    """Decides whether a law firm or provider may see a patient's document."""

    def __init__(
        self,
        session: AsyncSession,
        crypto_box: CryptoBox,
        auditor: Optional[AccessAuditor] = None,
    ):
        """Initialize engine with a session, encryption service and auditor."""
        self.consents = ConsentStore(session)
        self.documents = DocumentRepository(session)
        self.crypto_box = crypto_box
        self.auditor = auditor

    async def authorize(
        self,
        accessor_type: Union[AccessorType, str],
        accessor_id: int,
        patient_id: int,
        document_type: Union[DocumentCategory, str],
        document_id: int,
        context: Optional[RequestContext] = None,
    ) -> Decision:
        """
        Decide access to one document.

        Args:
            accessor_type: Law firm or medical provider
            accessor_id: Accessor entity id
            patient_id: Owner of the document
            document_type: Category of the document
            document_id: Document row id
            context: Request origin for the audit entry

        Returns:
            AccessGranted or AccessDenied
        """
        accessor_type = AccessorType(accessor_type)
        category = DocumentCategory(document_type)

        decision = await self._decide(
            accessor_type, accessor_id, patient_id, category, document_id
        )

        if isinstance(decision, AccessGranted):
            action = access_action(
                accessor_type, f"ACCESS_{decision.consent_type.value}"
            )
            logger.info(
                "document_access_granted",
                accessor_type=accessor_type.value,
                accessor_id=accessor_id,
                patient_id=patient_id,
                document_type=category.value,
                document_id=document_id,
                consent_type=decision.consent_type.value,
            )
        else:
            action = access_action(accessor_type, "ACCESS_DENIED")
            logger.warning(
                "document_access_denied",
                accessor_type=accessor_type.value,
                accessor_id=accessor_id,
                patient_id=patient_id,
                document_type=category.value,
                document_id=document_id,
                reason=decision.reason.name,
            )

        if self.auditor is not None:
            await self.auditor.log_access(
                AccessEntry(
                    actor_id=accessor_id,
                    actor_type=accessor_type.value,
                    document_type=category.value,
                    document_id=document_id,
                    patient_id=patient_id,
                    action=action,
                    access_reason=action,
                    success=decision.authorized,
                    failure_reason=(
                        None
                        if isinstance(decision, AccessGranted)
                        else decision.reason.value
                    ),
                ),
                context,
            )
        return decision

    async def _decide(
        self,
        accessor_type: AccessorType,
        accessor_id: int,
        patient_id: int,
        category: DocumentCategory,
        document_id: int,
    ) -> Decision:
        if not await self.consents.has_relationship(
            accessor_type, accessor_id, patient_id
        ):
            return AccessDenied(_RELATIONSHIP_DENIALS[accessor_type])

        consent = await self.consents.find_matching_consent(
            patient_id, accessor_type, accessor_id, category
        )
        if consent is None:
            return AccessDenied(DenialReason.NO_ACTIVE_CONSENT)

        document = await self.documents.get_for_accessor(
            category, document_id, patient_id, accessor_type
        )
        if document is None:
            return AccessDenied(DenialReason.DOCUMENT_NOT_ACCESSIBLE)

        return AccessGranted(
            document=document, consent_type=ConsentType(consent.consent_type)
        )

    async def list_accessible_documents(
        self,
        accessor_type: Union[AccessorType, str],
        accessor_id: int,
        patient_id: int,
        context: Optional[RequestContext] = None,
    ) -> Union[DocumentListing, AccessDenied]:
        """
        List every category the accessor holds consent for.

        The relationship is checked once; consent is then evaluated per
        category. Evidence rows are decrypted for display.
        """
        accessor_type = AccessorType(accessor_type)
        action = access_action(accessor_type, "LIST_DOCUMENTS")

        if not await self.consents.has_relationship(
            accessor_type, accessor_id, patient_id
        ):
            denial = AccessDenied(_RELATIONSHIP_DENIALS[accessor_type])
            await self._audit_listing(
                accessor_type, accessor_id, patient_id, action, denial, context
            )
            return denial

        documents: Dict[DocumentCategory, List[Dict[str, Any]]] = {}
        consents: Dict[DocumentCategory, bool] = {}
        for category in DocumentCategory:
            consent = await self.consents.find_matching_consent(
                patient_id, accessor_type, accessor_id, category
            )
            consents[category] = consent is not None
            if consent is None:
                documents[category] = []
                continue
            rows = await self.documents.list_for_accessor(
                category, patient_id, accessor_type
            )
            documents[category] = [self._listing_row(category, row) for row in rows]

        listing = DocumentListing(documents=documents, consents=consents)
        await self._audit_listing(
            accessor_type, accessor_id, patient_id, action, listing, context
        )
        return listing

    def _listing_row(
        self, category: DocumentCategory, row: DocumentMixin
    ) -> Dict[str, Any]:
        model = DOCUMENT_MODELS[category]
        raw = row.to_dict()
        if model is Evidence:
            decrypted = decrypt_row_fields(raw, model.phi_fields, self.crypto_box)
            columns = model.listing_columns + model.phi_fields
            return {name: decrypted.get(name) for name in columns}
        return {name: raw.get(name) for name in model.listing_columns}

    async def _audit_listing(
        self,
        accessor_type: AccessorType,
        accessor_id: int,
        patient_id: int,
        action: str,
        outcome: Union[DocumentListing, AccessDenied],
        context: Optional[RequestContext],
    ) -> None:
        if self.auditor is None:
            return
        details: Dict[str, Any] = {}
        if isinstance(outcome, DocumentListing):
            details["consents"] = {
                category.value: granted for category, granted in outcome.consents.items()
            }
        await self.auditor.log_access(
            AccessEntry(
                actor_id=accessor_id,
                actor_type=accessor_type.value,
                patient_id=patient_id,
                action=action,
                access_reason=action,
                success=outcome.authorized,
                failure_reason=(
                    outcome.reason.value if isinstance(outcome, AccessDenied) else None
                ),
                details=details,
            ),
            context,
        )

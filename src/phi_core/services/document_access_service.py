"""Document access for law firms and medical providers.

Wraps the authorization engine: the engine decides and audits, this service
decrypts granted rows and issues download URLs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from phi_core.audit.access_auditor import AccessAuditor, AccessEntry, RequestContext
from phi_core.config import Settings, get_settings
from phi_core.core.exceptions import IntegrityVerificationError
from phi_core.models.consent import ConsentType
from phi_core.models.documents import DOCUMENT_MODELS
from phi_core.models.enums import AccessorType, DocumentCategory
from phi_core.security.crypto_box import CryptoBox
from phi_core.security.phi_fields import decrypt_row_fields
from phi_core.services.authorization_engine import (
    AccessDenied,
    AuthorizationEngine,
    DocumentListing,
    access_action,
)
from phi_core.storage.base import DownloadUrl, StorageBackend, StorageType
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DocumentView:
    """A granted document, decrypted for display."""

    document: Dict[str, Any]
    consent_type: ConsentType
    download_url: Optional[DownloadUrl] = None
    authorized: bool = field(default=True, init=False)


class DocumentAccessService:
    """Serves patient documents to connected accessors."""

    def __init__(
        self,
        session: AsyncSession,
        crypto_box: CryptoBox,
        storage: Optional[StorageBackend] = None,
        auditor: Optional[AccessAuditor] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize access service."""
        self.settings = settings or get_settings()
        self.crypto_box = crypto_box
        self.storage = storage
        self.auditor = auditor
        self.engine = AuthorizationEngine(session, crypto_box, auditor)

    async def fetch_document(
        self,
        accessor_type: Union[AccessorType, str],
        accessor_id: int,
        patient_id: int,
        document_type: Union[DocumentCategory, str],
        document_id: int,
        context: Optional[RequestContext] = None,
    ) -> Union[DocumentView, AccessDenied]:
        """
        Authorize, then decrypt the document and issue a download URL.

        Returns:
            DocumentView on success, AccessDenied otherwise

        Raises:
            IntegrityVerificationError: if a stored PHI field fails its
                integrity check
        """
        decision = await self.engine.authorize(
            accessor_type, accessor_id, patient_id, document_type, document_id, context
        )
        if isinstance(decision, AccessDenied):
            return decision

        accessor_type = AccessorType(accessor_type)
        category = DocumentCategory(document_type)
        row = decision.document.to_dict()
        try:
            document = decrypt_row_fields(
                row, DOCUMENT_MODELS[category].phi_fields, self.crypto_box
            )
        except IntegrityVerificationError as e:
            await self._audit_integrity_failure(
                accessor_type, accessor_id, patient_id, category, document_id, e, context
            )
            raise

        download_url = None
        if self.storage is not None and row.get("storage_key"):
            download_url = await self.storage.generate_download_url(
                row["storage_key"],
                self.settings.download_url_ttl_seconds,
                filename=row.get("original_file_name"),
                storage_type=StorageType(row["storage_type"])
                if row.get("storage_type")
                else None,
            )

        return DocumentView(
            document=document,
            consent_type=decision.consent_type,
            download_url=download_url,
        )

    async def _audit_integrity_failure(
        self,
        accessor_type: AccessorType,
        accessor_id: int,
        patient_id: int,
        category: DocumentCategory,
        document_id: int,
        error: IntegrityVerificationError,
        context: Optional[RequestContext],
    ) -> None:
        # The granted decision is already on file; this records that nothing was served.
        if self.auditor is None:
            return
        action = access_action(accessor_type, "INTEGRITY_FAILURE")
        await self.auditor.log_access(
            AccessEntry(
                actor_id=accessor_id,
                actor_type=accessor_type.value,
                action=action,
                document_type=category.value,
                document_id=document_id,
                patient_id=patient_id,
                access_reason=action,
                success=False,
                failure_reason=str(error),
            ),
            context,
        )

    async def list_documents(
        self,
        accessor_type: Union[AccessorType, str],
        accessor_id: int,
        patient_id: int,
        context: Optional[RequestContext] = None,
    ) -> Union[DocumentListing, AccessDenied]:
        """Everything the accessor may see, by category."""
        listing = await self.engine.list_accessible_documents(
            accessor_type, accessor_id, patient_id, context
        )
        if isinstance(listing, DocumentListing):
            logger.info(
                "documents_listed",
                accessor_type=AccessorType(accessor_type).value,
                accessor_id=accessor_id,
                patient_id=patient_id,
                counts={
                    category.value: len(rows)
                    for category, rows in listing.documents.items()
                },
            )
        return listing

"""
Document upload orchestration.

Validate, store, record, notify, audit. Rejected uploads are audited with
their hash and reasons and never reach storage.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from phi_core.audit.access_auditor import AccessAuditor, AccessEntry, RequestContext
from phi_core.config import Settings, get_settings
from phi_core.models.documents import DOCUMENT_MODELS, DocumentMixin, Evidence
from phi_core.models.enums import DocumentCategory
from phi_core.repositories.consent_store import ConsentStore
from phi_core.repositories.document_repository import DocumentRepository
from phi_core.security.crypto_box import CryptoBox
from phi_core.security.phi_fields import ENCRYPTED_SUFFIX
from phi_core.services.content_validator import ContentValidator
from phi_core.services.document_classification import (
    category_code_for,
    is_auto_approved_for_provider,
)
from phi_core.services.notification_service import DocumentNotifier
from phi_core.storage.base import StorageBackend
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)

UPLOAD_ACTIONS = {
    DocumentCategory.MEDICAL_RECORDS: "UPLOAD_MEDICAL_RECORD",
    DocumentCategory.MEDICAL_BILLING: "UPLOAD_MEDICAL_BILL",
    DocumentCategory.EVIDENCE: "UPLOAD_EVIDENCE",
}
UPLOAD_REJECTED_ACTION = "UPLOAD_REJECTED"

# Columns the service fills in itself
_SYSTEM_COLUMNS = frozenset(
    {
        "id",
        "user_id",
        "file_name",
        "original_file_name",
        "file_size",
        "mime_type",
        "file_hash",
        "storage_key",
        "storage_type",
        "uploaded_by",
        "uploaded_by_role",
        "uploaded_at",
        "accessible_by_medical_provider",
    }
)


@dataclass
class UploadRequest:
    """One file plus the descriptive fields of its document row."""

    patient_id: int
    category: DocumentCategory
    data: bytes
    filename: str
    mime_type: str
    uploaded_by: int
    uploaded_by_role: str = "client"
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UploadResult:
    """Outcome of an upload."""

    accepted: bool
    file_hash: str
    document: Optional[DocumentMixin] = None
    errors: List[str] = field(default_factory=list)


class DocumentUploadService:
    """Accepts patient documents into storage and the document tables."""

    def __init__(
        self,
        session: AsyncSession,
        crypto_box: CryptoBox,
        storage: StorageBackend,
        auditor: Optional[AccessAuditor] = None,
        notifier: Optional[DocumentNotifier] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize upload service."""
        self.settings = settings or get_settings()
        self.crypto_box = crypto_box
        self.storage = storage
        self.auditor = auditor
        self.notifier = notifier
        self.validator = ContentValidator(scan_bytes=self.settings.content_scan_bytes)
        self.documents = DocumentRepository(session)
        self.consents = ConsentStore(session)

    async def upload(
        self, request: UploadRequest, context: Optional[RequestContext] = None
    ) -> UploadResult:
        """
        Validate and persist one upload.

        Args:
            request: File bytes, owner and descriptive fields
            context: Request origin for the audit entry

        Returns:
            UploadResult; rejected uploads carry the validation errors
        """
        category = DocumentCategory(request.category)
        model: Any = DOCUMENT_MODELS[category]
        self._check_fields(model, request.fields)

        errors = self._check_limits(request)
        validation = self.validator.validate(
            request.data, request.mime_type, request.filename
        )
        errors.extend(validation.errors)

        if errors:
            await self._audit_rejection(
                request, category, validation.file_hash, errors, context
            )
            return UploadResult(
                accepted=False, file_hash=validation.file_hash, errors=errors
            )

        stored = await self.storage.upload(
            request.data,
            request.patient_id,
            category,
            validation.secure_filename,
            request.mime_type,
        )

        try:
            row = self._build_row(
                model,
                request,
                validation.file_hash,
                stored.key,
                stored.storage_type.value,
            )
            document = await self.documents.add(row)
        except Exception:
            await self.storage.delete(stored.key, stored.storage_type)
            raise

        logger.info(
            "document_uploaded",
            document_type=category.value,
            document_id=document.id,
            patient_id=request.patient_id,
            file_hash=validation.file_hash,
        )

        await self._notify(request, category, document)
        await self._audit_upload(
            request, category, document, validation.file_hash, context
        )
        return UploadResult(
            accepted=True, file_hash=validation.file_hash, document=document
        )

    def _check_limits(self, request: UploadRequest) -> List[str]:
        errors = []
        if len(request.data) == 0:
            errors.append("File is empty")
        if len(request.data) > self.settings.max_upload_bytes:
            errors.append(
                f"File exceeds maximum size of {self.settings.max_upload_bytes} bytes"
            )
        allowed = {mime.lower() for mime in self.settings.allowed_upload_mime_types}
        if (request.mime_type or "").lower() not in allowed:
            errors.append(f"File type {request.mime_type} is not allowed")
        return errors

    @staticmethod
    def _check_fields(model: Any, fields: Dict[str, Any]) -> None:
        columns = set(model.__table__.columns.keys())
        allowed = (columns - _SYSTEM_COLUMNS) | set(model.phi_fields)
        allowed -= {f"{name}{ENCRYPTED_SUFFIX}" for name in model.phi_fields}
        unknown = set(fields) - allowed
        if unknown:
            names = ", ".join(sorted(unknown))
            raise ValueError(f"Unknown fields for {model.__tablename__}: {names}")

    def _build_row(
        self,
        model: Any,
        request: UploadRequest,
        file_hash: str,
        storage_key: str,
        storage_type: str,
    ) -> DocumentMixin:
        values = {
            name: value
            for name, value in request.fields.items()
            if name not in model.phi_fields
        }
        phi = {name: request.fields.get(name) for name in model.phi_fields}
        if model is Evidence and not phi["title"]:
            phi["title"] = request.filename
        # PHI goes only into the encrypted twin
        for name, value in phi.items():
            values[f"{name}{ENCRYPTED_SUFFIX}"] = self.crypto_box.encrypt(value)

        if model is Evidence:
            evidence_type = values.get("evidence_type") or "Document"
            values["evidence_type"] = evidence_type
            values["category_code"] = values.get("category_code") or category_code_for(
                evidence_type
            )
            values["accessible_by_medical_provider"] = is_auto_approved_for_provider(
                evidence_type, values["category_code"]
            )

        return model(
            user_id=request.patient_id,
            file_name=storage_key.rsplit("/", 1)[-1],
            original_file_name=request.filename,
            file_size=len(request.data),
            mime_type=request.mime_type,
            file_hash=file_hash,
            storage_key=storage_key,
            storage_type=storage_type,
            uploaded_by=request.uploaded_by,
            uploaded_by_role=request.uploaded_by_role,
            **values,
        )

    async def _notify(
        self, request: UploadRequest, category: DocumentCategory, document: DocumentMixin
    ) -> None:
        if self.notifier is None:
            return
        law_firm_id = await self.consents.get_connected_law_firm(request.patient_id)
        if law_firm_id is None:
            return
        try:
            await self.notifier.create_document_notification(
                patient_id=request.patient_id,
                accessor_id=law_firm_id,
                document_type=category,
                document_id=document.id,
                uploaded_by=request.uploaded_by,
                uploaded_by_role=request.uploaded_by_role,
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "document_notification_failed",
                document_type=category.value,
                document_id=document.id,
                error=str(e),
            )

    async def _audit_upload(
        self,
        request: UploadRequest,
        category: DocumentCategory,
        document: DocumentMixin,
        file_hash: str,
        context: Optional[RequestContext],
    ) -> None:
        if self.auditor is None:
            return
        await self.auditor.log_access(
            AccessEntry(
                actor_id=request.uploaded_by,
                actor_type=request.uploaded_by_role,
                action=UPLOAD_ACTIONS[category],
                document_type=category.value,
                document_id=document.id,
                patient_id=request.patient_id,
                access_reason=UPLOAD_ACTIONS[category],
                details={
                    "file_name": request.filename,
                    "file_size": len(request.data),
                    "file_hash": file_hash,
                    "mime_type": request.mime_type,
                },
            ),
            context,
        )

    async def _audit_rejection(
        self,
        request: UploadRequest,
        category: DocumentCategory,
        file_hash: str,
        errors: List[str],
        context: Optional[RequestContext],
    ) -> None:
        logger.warning(
            "document_upload_rejected",
            document_type=category.value,
            patient_id=request.patient_id,
            file_hash=file_hash,
            reasons=errors,
        )
        if self.auditor is None:
            return
        await self.auditor.log_access(
            AccessEntry(
                actor_id=request.uploaded_by,
                actor_type=request.uploaded_by_role,
                action=UPLOAD_REJECTED_ACTION,
                document_type=category.value,
                patient_id=request.patient_id,
                access_reason=UPLOAD_REJECTED_ACTION,
                success=False,
                failure_reason="; ".join(errors),
                details={
                    "file_hash": file_hash,
                    "reasons": errors,
                    "file_size": len(request.data),
                    "mime_type": request.mime_type,
                },
            ),
            context,
        )

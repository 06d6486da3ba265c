"""Document notification collaborator.

Delivery (push, email, in-app inbox) lives outside this package. The upload
service only needs somewhere to announce a new document.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from phi_core.models.enums import DocumentCategory
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)


class DocumentNotifier(ABC):
    """Announces new documents to the accessor connected to a patient."""

    @abstractmethod
    async def create_document_notification(
        self,
        patient_id: int,
        accessor_id: int,
        document_type: DocumentCategory,
        document_id: int,
        uploaded_by: int,
        uploaded_by_role: str,
    ) -> None:
        """Record one unread notification."""


class LoggingDocumentNotifier(DocumentNotifier):
    """Keeps notifications in memory and logs them; for local runs and tests."""

    def __init__(self) -> None:
        """Initialize notifier."""
        self.sent: List[Dict[str, Any]] = []

    async def create_document_notification(
        self,
        patient_id: int,
        accessor_id: int,
        document_type: DocumentCategory,
        document_id: int,
        uploaded_by: int,
        uploaded_by_role: str,
    ) -> None:
        """Record one unread notification."""
        notification = {
            "patient_id": patient_id,
            "accessor_id": accessor_id,
            "document_type": DocumentCategory(document_type).value,
            "document_id": document_id,
            "uploaded_by": uploaded_by,
            "uploaded_by_role": uploaded_by_role,
            "status": "unread",
        }
        self.sent.append(notification)
        logger.info(
            "document_notification_created",
            patient_id=patient_id,
            accessor_id=accessor_id,
            document_type=notification["document_type"],
            document_id=document_id,
        )

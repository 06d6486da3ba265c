"""Document row access, one table per ``DocumentCategory``."""

from typing import Any, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from phi_core.models.documents import DOCUMENT_MODELS, DocumentMixin, Evidence
from phi_core.models.enums import AccessorType, DocumentCategory

LAW_FIRM_ROLE = "lawfirm"


class DocumentRepository:
    """Fetches patient-owned documents with visibility filtering."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_for_accessor(
        self,
        category: DocumentCategory,
        document_id: int,
        patient_id: int,
        accessor_type: AccessorType,
    ) -> Optional[DocumentMixin]:
        """
        Fetch one document owned by ``patient_id`` and visible to the accessor.

        Law firms need ``accessible_by_law_firm``. Providers have no
        per-document gate on single fetch; their access is bounded by consent.
        """
        model: Any = DOCUMENT_MODELS[category]
        stmt = select(model).where(
            model.id == document_id,
            model.user_id == patient_id,
        )
        if accessor_type is AccessorType.LAWFIRM:
            stmt = stmt.where(model.accessible_by_law_firm.is_(True))
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_accessor(
        self,
        category: DocumentCategory,
        patient_id: int,
        accessor_type: AccessorType,
    ) -> List[DocumentMixin]:
        """
        List a patient's documents in one category visible to the accessor.

        Providers only see evidence flagged for them, and never see medical
        records or bills a law firm uploaded.
        """
        model: Any = DOCUMENT_MODELS[category]
        stmt = select(model).where(model.user_id == patient_id)

        if accessor_type is AccessorType.LAWFIRM:
            stmt = stmt.where(model.accessible_by_law_firm.is_(True))
        elif model is Evidence:
            stmt = stmt.where(Evidence.accessible_by_medical_provider.is_(True))
        else:
            stmt = stmt.where(
                or_(
                    model.uploaded_by_role.is_(None),
                    model.uploaded_by_role != LAW_FIRM_ROLE,
                )
            )

        stmt = stmt.order_by(model.uploaded_at.desc(), model.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, document: DocumentMixin) -> DocumentMixin:
        """Persist a new document row."""
        self.session.add(document)
        await self.session.flush()
        return document

"""Relationship and consent queries.

Nothing here is cached: a revocation or a deleted relationship is visible
to the next authorization check.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, delete, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from phi_core.audit.access_auditor import AccessAuditor, AccessEntry, RequestContext
from phi_core.core.exceptions import ConsentError
from phi_core.models.base import as_utc_naive, utcnow
from phi_core.models.consent import (
    CONSENT_TYPE_CATEGORIES,
    ConsentRecord,
    ConsentScope,
    ConsentStatus,
    ConsentType,
)
from phi_core.models.enums import AccessorType, DocumentCategory
from phi_core.models.relationships import (
    LawFirmClient,
    MedicalProviderPatient,
    RelationshipStatus,
)
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScopeGrant:
    """One category granted by a CUSTOM consent."""

    data_type: DocumentCategory
    can_view: bool = True
    can_edit: bool = False


class ConsentStore:
    """Reads and writes relationship, consent and scope rows."""

    def __init__(
        self, session: AsyncSession, auditor: Optional[AccessAuditor] = None
    ):
        """Initialize store with database session and optional auditor."""
        self.session = session
        self.auditor = auditor

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def has_relationship(
        self, accessor_type: AccessorType, accessor_id: int, patient_id: int
    ) -> bool:
        """Check that the accessor is linked to the patient."""
        if accessor_type is AccessorType.LAWFIRM:
            stmt = select(LawFirmClient.id).where(
                LawFirmClient.law_firm_id == accessor_id,
                LawFirmClient.client_id == patient_id,
            )
        else:
            stmt = select(MedicalProviderPatient.id).where(
                MedicalProviderPatient.medical_provider_id == accessor_id,
                MedicalProviderPatient.patient_id == patient_id,
                MedicalProviderPatient.status == RelationshipStatus.ACTIVE,
            )
        result = await self.session.execute(stmt.limit(1))
        return result.first() is not None

    async def link_accessor(
        self, accessor_type: AccessorType, accessor_id: int, patient_id: int
    ) -> None:
        """Create the relationship row for an accepted invite."""
        if accessor_type is AccessorType.LAWFIRM:
            row = LawFirmClient(law_firm_id=accessor_id, client_id=patient_id)
        else:
            row = MedicalProviderPatient(
                medical_provider_id=accessor_id,
                patient_id=patient_id,
                status=RelationshipStatus.ACTIVE,
            )
        self.session.add(row)
        await self.session.flush()
        logger.info(
            "relationship_created",
            accessor_type=accessor_type.value,
            accessor_id=accessor_id,
            patient_id=patient_id,
        )

    async def unlink_accessor(
        self, accessor_type: AccessorType, accessor_id: int, patient_id: int
    ) -> int:
        """Delete the relationship row. Returns the number of rows removed."""
        if accessor_type is AccessorType.LAWFIRM:
            stmt = delete(LawFirmClient).where(
                LawFirmClient.law_firm_id == accessor_id,
                LawFirmClient.client_id == patient_id,
            )
        else:
            stmt = delete(MedicalProviderPatient).where(
                MedicalProviderPatient.medical_provider_id == accessor_id,
                MedicalProviderPatient.patient_id == patient_id,
            )
        result = await self.session.execute(stmt)
        logger.info(
            "relationship_removed",
            accessor_type=accessor_type.value,
            accessor_id=accessor_id,
            patient_id=patient_id,
            rows=result.rowcount,
        )
        return int(result.rowcount or 0)

    async def get_connected_law_firm(self, patient_id: int) -> Optional[int]:
        """The law firm a patient is a client of, if any."""
        stmt = (
            select(LawFirmClient.law_firm_id)
            .where(LawFirmClient.client_id == patient_id)
            .order_by(LawFirmClient.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Consent checks
    # ------------------------------------------------------------------

    async def find_matching_consent(
        self,
        patient_id: int,
        accessor_type: AccessorType,
        accessor_id: int,
        category: DocumentCategory,
        now: Optional[datetime] = None,
    ) -> Optional[ConsentRecord]:
        """
        Find one usable consent covering ``category``.

        A consent is usable when it is active and not past ``expires_at``.
        It covers the category by type, or, for CUSTOM, through a viewable
        scope row. Grants are additive, so any match is sufficient.

        Returns:
            The matching consent with the lowest id, or None
        """
        now = as_utc_naive(now) or utcnow()
        covering_types = [
            consent_type
            for consent_type, categories in CONSENT_TYPE_CATEGORIES.items()
            if category in categories
        ]
        custom_scope = exists().where(
            ConsentScope.consent_id == ConsentRecord.id,
            ConsentScope.data_type == category.value,
            ConsentScope.can_view.is_(True),
        )

        stmt = (
            select(ConsentRecord)
            .where(
                ConsentRecord.patient_id == patient_id,
                ConsentRecord.granted_to_type == accessor_type,
                ConsentRecord.granted_to_id == accessor_id,
                ConsentRecord.status == ConsentStatus.ACTIVE,
                or_(
                    ConsentRecord.expires_at.is_(None),
                    ConsentRecord.expires_at > now,
                ),
                or_(
                    ConsentRecord.consent_type.in_(covering_types),
                    and_(
                        ConsentRecord.consent_type == ConsentType.CUSTOM,
                        custom_scope,
                    ),
                ),
            )
            .order_by(ConsentRecord.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # ------------------------------------------------------------------
    # Consent mutations
    # ------------------------------------------------------------------

    async def grant_consent(
        self,
        patient_id: int,
        accessor_type: AccessorType,
        accessor_id: int,
        consent_type: ConsentType,
        expires_at: Optional[datetime] = None,
        scopes: Optional[Sequence[ScopeGrant]] = None,
        consent_method: str = "electronic",
        ip_address: Optional[str] = None,
        signature_data: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> ConsentRecord:
        """
        Record a consent and its scopes in one flush.

        An aware ``expires_at`` is stored as naive UTC.

        Raises:
            ConsentError: if a CUSTOM consent has no scopes
        """
        scopes = list(scopes or [])
        if consent_type is ConsentType.CUSTOM and not scopes:
            raise ConsentError("CUSTOM consent requires at least one scope")

        consent = ConsentRecord(
            patient_id=patient_id,
            granted_to_type=accessor_type,
            granted_to_id=accessor_id,
            consent_type=consent_type,
            status=ConsentStatus.ACTIVE,
            expires_at=as_utc_naive(expires_at),
            consent_method=consent_method,
            ip_address=ip_address,
            signature_data=signature_data,
        )
        consent.scopes = (
            [self._scope_row(scope) for scope in scopes]
            if consent_type is ConsentType.CUSTOM
            else []
        )

        self.session.add(consent)
        try:
            await self.session.flush()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "consent_granted",
            consent_id=consent.id,
            patient_id=patient_id,
            accessor_type=accessor_type.value,
            accessor_id=accessor_id,
            consent_type=consent_type.value,
        )
        await self._audit_consent(
            "CONSENT_GRANTED",
            consent,
            {
                "expires_at": (
                    consent.expires_at.isoformat() if consent.expires_at else None
                ),
                "scopes": [scope.data_type for scope in consent.scopes],
            },
            context,
        )
        return consent

    async def _audit_consent(
        self,
        action: str,
        consent: ConsentRecord,
        details: Dict[str, Any],
        context: Optional[RequestContext],
    ) -> None:
        if self.auditor is None:
            return
        await self.auditor.log_access(
            AccessEntry(
                actor_id=consent.patient_id,
                actor_type="client",
                action=action,
                patient_id=consent.patient_id,
                access_reason=action,
                details={
                    "entity_type": "ConsentRecord",
                    "consent_id": consent.id,
                    "granted_to_type": AccessorType(consent.granted_to_type).value,
                    "granted_to_id": consent.granted_to_id,
                    "consent_type": ConsentType(consent.consent_type).value,
                    **details,
                },
            ),
            context,
        )

    @staticmethod
    def _scope_row(scope: ScopeGrant) -> ConsentScope:
        try:
            data_type = DocumentCategory(scope.data_type)
        except ValueError as e:
            raise ConsentError(f"Unknown consent scope {scope.data_type!r}") from e
        return ConsentScope(
            data_type=data_type.value,
            can_view=scope.can_view,
            can_edit=scope.can_edit,
        )

    async def revoke_consent(
        self,
        consent_id: int,
        reason: Optional[str] = None,
        patient_id: Optional[int] = None,
        context: Optional[RequestContext] = None,
    ) -> ConsentRecord:
        """
        Revoke a consent; takes effect for the next authorization check.

        Args:
            consent_id: Consent to revoke
            reason: Free-text revocation reason
            patient_id: When given, the consent must belong to this patient
            context: Request origin for the audit entry

        Raises:
            ConsentError: if the consent does not exist or is not the patient's
        """
        consent = await self.session.get(ConsentRecord, consent_id)
        if consent is None or (
            patient_id is not None and consent.patient_id != patient_id
        ):
            raise ConsentError(f"Consent {consent_id} not found")

        now = utcnow()
        consent.status = ConsentStatus.REVOKED
        consent.revoked_at = now
        consent.revoked_reason = reason
        consent.updated_at = now
        await self.session.flush()

        logger.info("consent_revoked", consent_id=consent_id)
        await self._audit_consent(
            "CONSENT_REVOKED", consent, {"reason": reason}, context
        )
        return consent

    async def expire_old_consents(self, now: Optional[datetime] = None) -> int:
        """Mark active consents past their expiry as expired."""
        now = as_utc_naive(now) or utcnow()
        stmt = (
            update(ConsentRecord)
            .where(
                ConsentRecord.status == ConsentStatus.ACTIVE,
                ConsentRecord.expires_at.is_not(None),
                ConsentRecord.expires_at <= now,
            )
            .values(status=ConsentStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        count = int(result.rowcount or 0)
        if count:
            logger.info("consents_expired", count=count)
        return count

    # ------------------------------------------------------------------
    # Consent listings
    # ------------------------------------------------------------------

    async def get_patient_consents(
        self, patient_id: int, status: Optional[ConsentStatus] = None
    ) -> List[ConsentRecord]:
        """All consents a patient has granted, newest first."""
        stmt = select(ConsentRecord).where(ConsentRecord.patient_id == patient_id)
        if status is not None:
            stmt = stmt.where(ConsentRecord.status == status)
        stmt = stmt.order_by(ConsentRecord.created_at.desc(), ConsentRecord.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_granted_consents(
        self,
        accessor_type: AccessorType,
        accessor_id: int,
        status: Optional[ConsentStatus] = ConsentStatus.ACTIVE,
    ) -> List[ConsentRecord]:
        """All consents granted to one accessor, newest first."""
        stmt = select(ConsentRecord).where(
            ConsentRecord.granted_to_type == accessor_type,
            ConsentRecord.granted_to_id == accessor_id,
        )
        if status is not None:
            stmt = stmt.where(ConsentRecord.status == status)
        stmt = stmt.order_by(ConsentRecord.created_at.desc(), ConsentRecord.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_consent_details(self, consent_id: int) -> Optional[ConsentRecord]:
        """Get one consent with its scopes loaded."""
        result = await self.session.execute(
            select(ConsentRecord).where(ConsentRecord.id == consent_id)
        )
        return result.scalars().first()

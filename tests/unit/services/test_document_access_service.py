"""Tests for serving authorized documents to accessors."""

from urllib.parse import urlparse

import pytest
import pytest_asyncio

from phi_core.core.exceptions import IntegrityVerificationError
from phi_core.models.consent import ConsentType
from phi_core.models.enums import AccessorType, DocumentCategory
from phi_core.services.authorization_engine import (
    AccessDenied,
    DenialReason,
    DocumentListing,
)
from phi_core.services.document_access_service import (
    DocumentAccessService,
    DocumentView,
)

LAW_FIRM = AccessorType.LAWFIRM
RECORDS = DocumentCategory.MEDICAL_RECORDS
EVIDENCE = DocumentCategory.EVIDENCE

PATIENT = 1
FIRM = 10


@pytest.fixture
def access_service(session, crypto_box, storage, auditor, settings):
    """Access service wired to the test database and storage."""
    return DocumentAccessService(
        session, crypto_box, storage=storage, auditor=auditor, settings=settings
    )


@pytest_asyncio.fixture
async def firm_with_full_access(consent_store):
    """Connected law firm holding FULL_ACCESS."""
    await consent_store.link_accessor(LAW_FIRM, FIRM, PATIENT)
    await consent_store.grant_consent(PATIENT, LAW_FIRM, FIRM, ConsentType.FULL_ACCESS)


@pytest.mark.hipaa_required
class TestFetchDocument:
    """Authorize, decrypt, issue URL."""

    @pytest.mark.asyncio
    @pytest.mark.phi_encryption
    async def test_granted_document_is_decrypted(
        self, access_service, firm_with_full_access, make_document
    ):
        """Encrypted sub-fields come back as plaintext under logical names."""
        document = await make_document(
            RECORDS,
            PATIENT,
            facility_name="Mercy General",
            diagnosis="Concussion",
            storage_key="medical-records/user_1_123_ab.pdf",
            storage_type="local",
            original_file_name="er.pdf",
        )

        view = await access_service.fetch_document(
            LAW_FIRM, FIRM, PATIENT, RECORDS, document.id
        )

        assert isinstance(view, DocumentView)
        assert view.authorized is True
        assert view.consent_type is ConsentType.FULL_ACCESS
        assert view.document["facility_name"] == "Mercy General"
        assert view.document["diagnosis"] == "Concussion"
        assert view.document["provider_name"] is None
        assert "diagnosis_encrypted" not in view.document

        parsed = urlparse(view.download_url.url)
        assert parsed.path == "/uploads/medical-records/user_1_123_ab.pdf"
        assert "filename=er.pdf" in parsed.query

    @pytest.mark.asyncio
    async def test_legacy_plaintext_row(
        self, access_service, firm_with_full_access, make_document, session
    ):
        """Rows written before encryption still display."""
        document = await make_document(EVIDENCE, PATIENT)
        document.title = "Legacy title"
        document.location = "Old Town"
        await session.flush()

        view = await access_service.fetch_document(
            LAW_FIRM, FIRM, PATIENT, EVIDENCE, document.id
        )

        assert view.document["title"] == "Legacy title"
        assert view.document["location"] == "Old Town"
        assert view.download_url is None

    @pytest.mark.asyncio
    async def test_denial_passes_through(self, access_service, make_document):
        """Denied requests return the engine's decision."""
        document = await make_document(RECORDS, PATIENT)

        result = await access_service.fetch_document(
            LAW_FIRM, FIRM, PATIENT, RECORDS, document.id
        )

        assert isinstance(result, AccessDenied)
        assert result.reason is DenialReason.NOT_LAW_FIRM_CLIENT

    @pytest.mark.asyncio
    @pytest.mark.phi_encryption
    async def test_tampered_field_raises(
        self, access_service, firm_with_full_access, make_document, session
    ):
        """Integrity failures are never shown as data."""
        document = await make_document(RECORDS, PATIENT, diagnosis="Concussion")
        iv, tag, ct = document.diagnosis_encrypted.split(":")
        document.diagnosis_encrypted = f"{iv}:{tag}:{'1' if ct[0] == '0' else '0'}{ct[1:]}"
        await session.flush()

        with pytest.raises(IntegrityVerificationError):
            await access_service.fetch_document(
                LAW_FIRM, FIRM, PATIENT, RECORDS, document.id
            )

    @pytest.mark.asyncio
    @pytest.mark.audit_required
    @pytest.mark.phi_encryption
    async def test_tampered_field_is_audited_as_failure(
        self, access_service, firm_with_full_access, make_document, session, auditor
    ):
        """A granted fetch that fails decryption is recorded as failed."""
        document = await make_document(RECORDS, PATIENT, diagnosis="Concussion")
        iv, tag, ct = document.diagnosis_encrypted.split(":")
        document.diagnosis_encrypted = f"{iv}:{'0' * len(tag)}:{ct}"
        await session.flush()

        with pytest.raises(IntegrityVerificationError):
            await access_service.fetch_document(
                LAW_FIRM, FIRM, PATIENT, RECORDS, document.id
            )

        logs = await auditor.get_phi_access_logs(PATIENT)
        assert [log.action for log in logs] == [
            "LAW_FIRM_ACCESS_INTEGRITY_FAILURE",
            "LAW_FIRM_ACCESS_FULL_ACCESS",
        ]
        failure = logs[0]
        assert failure.success is False
        assert failure.status == "DENIED"
        assert failure.document_id == document.id
        assert failure.failure_reason == "PHI data integrity verification failed"

    @pytest.mark.asyncio
    @pytest.mark.audit_required
    async def test_fetch_is_audited(
        self, access_service, firm_with_full_access, make_document, auditor
    ):
        """The engine's audit row is written once."""
        document = await make_document(RECORDS, PATIENT)

        await access_service.fetch_document(LAW_FIRM, FIRM, PATIENT, RECORDS, document.id)

        logs = await auditor.get_phi_access_logs(PATIENT)
        assert [log.action for log in logs] == ["LAW_FIRM_ACCESS_FULL_ACCESS"]


class TestListDocuments:
    """Listings through the service."""

    @pytest.mark.asyncio
    async def test_list_documents(
        self, access_service, firm_with_full_access, make_document
    ):
        """All consented categories, evidence decrypted."""
        await make_document(EVIDENCE, PATIENT, title="Scene photo")

        listing = await access_service.list_documents(LAW_FIRM, FIRM, PATIENT)

        assert isinstance(listing, DocumentListing)
        assert all(listing.consents.values())
        assert listing.documents[EVIDENCE][0]["title"] == "Scene photo"

    @pytest.mark.asyncio
    async def test_list_documents_denied(self, access_service):
        """No relationship, no listing."""
        result = await access_service.list_documents("lawfirm", FIRM, PATIENT)
        assert result.reason is DenialReason.NOT_LAW_FIRM_CLIENT

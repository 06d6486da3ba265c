"""Test configuration for the CaseCompass PHI core.

Store-backed tests run against an in-memory SQLite database shared by every
session of a test, so audit rows written through the auditor's own sessions
are visible to the test's session.
"""

import os

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Set the key BEFORE any settings are loaded
TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
os.environ.setdefault("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from phi_core.audit.access_auditor import AccessAuditor  # noqa: E402
from phi_core.config import Settings, get_settings  # noqa: E402
from phi_core.core.database import (  # noqa: E402
    create_session_factory,
    drop_async_db,
    init_async_db,
)
from phi_core.models.documents import DOCUMENT_MODELS  # noqa: E402
from phi_core.repositories.consent_store import ConsentStore  # noqa: E402
from phi_core.security.crypto_box import CryptoBox  # noqa: E402
from phi_core.storage.local_backend import LocalStorageBackend  # noqa: E402


# Compliance markers - register custom markers
def pytest_configure(config):
    """Register custom markers for compliance."""
    config.addinivalue_line(
        "markers", "hipaa_required: mark test as requiring HIPAA compliance"
    )
    config.addinivalue_line(
        "markers", "phi_encryption: mark test as requiring PHI encryption"
    )
    config.addinivalue_line(
        "markers", "audit_required: mark test as requiring audit logging"
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees the environment as it set it."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings for tests."""
    return Settings(
        encryption_key=TEST_ENCRYPTION_KEY,
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
def crypto_box():
    """Encryption service with the test key."""
    return CryptoBox(TEST_ENCRYPTION_KEY)


@pytest_asyncio.fixture
async def engine():
    """In-memory database with all tables."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_async_db(test_engine)
    yield test_engine
    await drop_async_db(test_engine)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test database."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """Database session for a test."""
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def auditor(session_factory):
    """Auditor writing to the test database."""
    return AccessAuditor(session_factory)


@pytest.fixture
def storage(tmp_path):
    """Local storage under a temporary directory."""
    return LocalStorageBackend(
        {"base_path": str(tmp_path / "uploads"), "signing_key": "test-signing-key"}
    )


@pytest.fixture
def make_document(session, crypto_box):
    """Insert a document row; PHI keyword arguments are stored encrypted."""

    async def _make(category, patient_id, **values):
        model = DOCUMENT_MODELS[category]
        phi = {name: values.pop(name) for name in model.phi_fields if name in values}
        values.setdefault("file_name", "stored.pdf")
        document = model(user_id=patient_id, **values)
        for name, value in phi.items():
            setattr(document, f"{name}_encrypted", crypto_box.encrypt(value))
        session.add(document)
        await session.flush()
        return document

    return _make


@pytest.fixture
def consent_store(session):
    """Consent store on the test session."""
    return ConsentStore(session)

"""Repository layer for data access.

Repositories take an ``AsyncSession`` so the caller controls the
transaction boundary.
"""

from phi_core.repositories.consent_store import ConsentStore, ScopeGrant
from phi_core.repositories.document_repository import DocumentRepository

__all__ = ["ConsentStore", "DocumentRepository", "ScopeGrant"]

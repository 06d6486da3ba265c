"""PHI core test suite.

This test suite enforces:
- PHI sub-fields stored only as AES-256-GCM ciphertext
- Relationship, consent and visibility checks before any document access
- Complete audit trails for all PHI access
"""

__compliance__ = {
    "hipaa": "2024",
    "encryption": "AES-256-GCM",
}

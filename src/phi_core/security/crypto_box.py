"""Field-level encryption for PHI.

Values are encrypted with AES-256-GCM under a single process-wide key and
stored as ``iv_hex:authTag_hex:ciphertext_hex``. Every call draws a fresh
16-byte IV. A value that fails tag verification is never returned.
"""

import hashlib
import re
import secrets
from typing import Any, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from phi_core.core.exceptions import (
    ConfigurationError,
    DecryptionError,
    EncryptedFieldFormatError,
    IntegrityVerificationError,
)
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


class CryptoBox:
    """AES-256-GCM encryption, search hashing and token generation.

    Construct once at process start and pass the instance to every
    consumer that reads or writes PHI fields.
    """

    algorithm = "AES-256-GCM"

    def __init__(self, key_hex: Optional[str]) -> None:
        """Initialize with a hex-encoded 256-bit key.

        Raises:
            ConfigurationError: if the key is absent or malformed
        """
        if not self.validate_key(key_hex):
            logger.critical("encryption_key_invalid")
            raise ConfigurationError(
                "Encryption key must be exactly 64 hex characters (32 bytes) "
                "for AES-256"
            )
        self._aesgcm = AESGCM(bytes.fromhex(key_hex))  # type: ignore[arg-type]

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "CryptoBox":
        """Build the process-wide instance from application settings."""
        if settings is None:
            from phi_core.config import (  # pylint: disable=import-outside-toplevel
                get_settings,
            )

            settings = get_settings()
        return cls(settings.encryption_key)

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """
        Encrypt a PHI value.

        Args:
            plaintext: Value to encrypt

        Returns:
            ``iv:authTag:ciphertext`` hex string, or None for None/empty input
        """
        if plaintext is None or plaintext == "":
            return None

        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: Optional[str]) -> Optional[str]:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Args:
            encrypted: ``iv:authTag:ciphertext`` hex string

        Returns:
            Plaintext, or None for None/empty input

        Raises:
            EncryptedFieldFormatError: if the value is not in wire format
            IntegrityVerificationError: if the authentication tag does not verify
        """
        if encrypted is None or encrypted == "":
            return None

        iv, tag, ciphertext = self._parse(encrypted)

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.critical(
                "phi_integrity_failure",
                detail="authentication tag mismatch, possible tampering",
            )
            raise IntegrityVerificationError(
                "PHI data integrity verification failed"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted PHI is not valid UTF-8") from e

    @staticmethod
    def _parse(encrypted: str) -> Tuple[bytes, bytes, bytes]:
        parts = encrypted.split(":")
        if len(parts) != 3:
            raise EncryptedFieldFormatError(
                "Invalid encrypted data format - expected iv:authTag:ciphertext"
            )
        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise EncryptedFieldFormatError(
                "Invalid encrypted data format - components must be hex"
            ) from e
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise EncryptedFieldFormatError(
                f"Invalid encrypted data format - iv and authTag must be "
                f"{IV_LENGTH} bytes"
            )
        return iv, tag, ciphertext

    @staticmethod
    def hash(data: Optional[str]) -> Optional[str]:
        """Lower-case then SHA-256 a value for equality search.

        Never use the result for authorization decisions.
        """
        if not data:
            return None
        return hashlib.sha256(data.lower().encode("utf-8")).hexdigest()

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        """Generate a random hex token of ``length`` bytes."""
        return secrets.token_hex(length)

    @staticmethod
    def validate_key(key_hex: Optional[str]) -> bool:
        """Check that a key is exactly 64 hex characters."""
        if not key_hex or not isinstance(key_hex, str):
            return False
        return bool(_KEY_PATTERN.fullmatch(key_hex))

    @staticmethod
    def generate_key() -> str:
        """Generate a new 256-bit key (hex-encoded) for rotation tooling."""
        return secrets.token_bytes(KEY_LENGTH).hex()

"""Core Exceptions Module.

Authorization denials and upload rejections are results, not exceptions.
Only the conditions below are raised.
"""


class PHICoreError(Exception):
    """Base exception for all PHI core errors."""


class ConfigurationError(PHICoreError):
    """Raised when configuration is invalid or missing."""


class DecryptionError(PHICoreError):
    """Raised when an encrypted field cannot be decrypted."""


class EncryptedFieldFormatError(DecryptionError):
    """Raised when an encrypted field is not ``iv:authTag:ciphertext`` hex."""


class IntegrityVerificationError(DecryptionError):
    """Raised when the GCM authentication tag does not verify.

    Either the stored value was tampered with or corrupted, or it was
    encrypted under a different key. Both are security incidents.
    """


class StorageError(PHICoreError):
    """Raised when storage operations fail."""


class ConsentError(PHICoreError):
    """Raised when a consent mutation is invalid."""

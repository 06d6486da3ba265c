"""Upload content validation.

A first filter in front of storage: checks that the bytes look like the
declared MIME type and that no script or markup is smuggled into the head
of the file. It is not a format parser.
"""

import hashlib
import os
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from phi_core.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCAN_BYTES = 8 * 1024

OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_SIGNATURE = b"PK\x03\x04"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
HEIC_BRANDS = (b"heic", b"mif1")


def _has_prefix(*signatures: bytes) -> Callable[[bytes], bool]:
    def check(data: bytes) -> bool:
        return any(data.startswith(signature) for signature in signatures)

    return check


def _is_heic(data: bytes) -> bool:
    # ISO BMFF: 4-byte box size, "ftyp", then the major brand
    return len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in HEIC_BRANDS


# Magic numbers per declared MIME type. Types not listed here are not checked.
FILE_SIGNATURES: Dict[str, Callable[[bytes], bool]] = {
    "image/jpeg": _has_prefix(b"\xff\xd8\xff"),
    "image/jpg": _has_prefix(b"\xff\xd8\xff"),
    "image/png": _has_prefix(PNG_SIGNATURE),
    "image/heic": _is_heic,
    "application/pdf": _has_prefix(b"%PDF"),
    "application/msword": _has_prefix(OLE_SIGNATURE),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (
        _has_prefix(ZIP_SIGNATURE)
    ),
}

DANGEROUS_PATTERNS: List[Tuple[Pattern[bytes], str]] = [
    (re.compile(rb"<script", re.IGNORECASE), "Script tag found"),
    (re.compile(rb"<html", re.IGNORECASE), "HTML markup found"),
    (re.compile(rb"<iframe", re.IGNORECASE), "Iframe tag found"),
    (re.compile(rb"<\?php", re.IGNORECASE), "PHP open tag found"),
    (re.compile(rb"<%"), "Server-side template tag found"),
    (re.compile(rb"eval\s*\(", re.IGNORECASE), "Eval call found"),
    (re.compile(rb"document\.", re.IGNORECASE), "Document object reference found"),
    (re.compile(rb"window\.", re.IGNORECASE), "Window object reference found"),
    (re.compile(rb"onload\s*=", re.IGNORECASE), "Inline onload handler found"),
    (re.compile(rb"onerror\s*=", re.IGNORECASE), "Inline onerror handler found"),
    (re.compile(rb"javascript:", re.IGNORECASE), "javascript: URI found"),
    (re.compile(rb"data:text/html", re.IGNORECASE), "data:text/html URI found"),
]


@dataclass
class ContentValidationResult:
    """Result of content validation."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    file_hash: str = ""
    secure_filename: str = ""


class ContentValidator:
    """Signature and dangerous-content checks for uploaded bytes."""

    def __init__(self, scan_bytes: int = DEFAULT_SCAN_BYTES):
        """Initialize validator; only the first ``scan_bytes`` are scanned."""
        self.scan_bytes = scan_bytes

    def validate(
        self, data: bytes, declared_mime_type: str, filename: str
    ) -> ContentValidationResult:
        """
        Validate uploaded content.

        Args:
            data: Raw file bytes
            declared_mime_type: MIME type claimed by the client
            filename: Client-supplied filename, used only for its extension

        Returns:
            ContentValidationResult; ``valid`` is true iff no errors
        """
        errors: List[str] = []

        signature_error = self._check_signature(data, declared_mime_type)
        if signature_error:
            errors.append(signature_error)

        errors.extend(self._check_dangerous_content(data))

        result = ContentValidationResult(
            valid=not errors,
            errors=errors,
            file_hash=self.calculate_file_hash(data),
            secure_filename=self.generate_secure_filename(filename),
        )
        if not result.valid:
            logger.warning(
                "content_validation_failed",
                declared_mime_type=declared_mime_type,
                file_hash=result.file_hash,
                errors=errors,
            )
        return result

    def _check_signature(self, data: bytes, declared_mime_type: str) -> Optional[str]:
        check = FILE_SIGNATURES.get((declared_mime_type or "").lower())
        if check is None:
            return None
        if not check(data):
            return f"File content does not match declared type {declared_mime_type}"
        return None

    def _check_dangerous_content(self, data: bytes) -> List[str]:
        head = data[: self.scan_bytes]
        return [message for pattern, message in DANGEROUS_PATTERNS if pattern.search(head)]

    @staticmethod
    def calculate_file_hash(data: bytes) -> str:
        """SHA-256 of the raw bytes, hex-encoded."""
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def generate_secure_filename(original_filename: str) -> str:
        """Timestamp plus random hex plus the original extension."""
        extension = os.path.splitext(original_filename or "")[1].lower()
        if not re.fullmatch(r"\.[a-z0-9]{1,10}", extension):
            extension = ""
        timestamp = int(time.time() * 1000)
        return f"{timestamp}_{secrets.token_hex(8)}{extension}"

"""Read-time policy for PHI columns during the dual-write migration.

Each encrypted column ``<name>_encrypted`` may have a plaintext twin
``<name>`` left over from before encryption. Readers prefer the encrypted
twin and fall back to the plaintext twin only when it is absent.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from phi_core.security.crypto_box import CryptoBox

ENCRYPTED_SUFFIX = "_encrypted"


def read_phi_field(
    encrypted: Optional[str], plaintext: Optional[str], box: CryptoBox
) -> Optional[str]:
    """Return the display value of one PHI attribute."""
    if encrypted:
        return box.decrypt(encrypted)
    return plaintext


def decrypt_row_fields(
    row: Mapping[str, Any], field_names: Iterable[str], box: CryptoBox
) -> Dict[str, Any]:
    """
    Copy a row, replacing each named attribute with its display value.

    Args:
        row: Column name to value mapping
        field_names: Logical attribute names (without the encrypted suffix)
        box: Encryption service

    Returns:
        A new dict; the ``*_encrypted`` columns are dropped
    """
    result = dict(row)
    for name in field_names:
        encrypted_column = f"{name}{ENCRYPTED_SUFFIX}"
        result[name] = read_phi_field(
            row.get(encrypted_column), row.get(name), box
        )
        result.pop(encrypted_column, None)
    return result

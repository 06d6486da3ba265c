"""Security primitives for PHI protection."""

from phi_core.security.crypto_box import CryptoBox

__all__ = ["CryptoBox"]

"""Key generation tool for the PHI encryption key.

Rotation orchestration is not handled here; this only produces and checks
key material.
"""

import argparse
import sys
from typing import List, Optional

from phi_core.security.crypto_box import CryptoBox


def build_parser() -> argparse.ArgumentParser:
    """Command line parser for ``phi-core-keygen``."""
    parser = argparse.ArgumentParser(
        prog="phi-core-keygen",
        description="Generate or check an AES-256 key for PHI field encryption",
    )
    parser.add_argument(
        "--check",
        metavar="KEY",
        help="Validate an existing key instead of generating one",
    )
    parser.add_argument(
        "--env",
        action="store_true",
        help="Print as an ENCRYPTION_KEY=... line for a .env file",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    if args.check is not None:
        if CryptoBox.validate_key(args.check):
            print("Key is valid: 64 hex characters (256 bits)")
            return 0
        print(
            "Key is invalid: expected exactly 64 hex characters (256 bits)",
            file=sys.stderr,
        )
        return 1

    key = CryptoBox.generate_key()
    print(f"ENCRYPTION_KEY={key}" if args.env else key)
    return 0


if __name__ == "__main__":
    sys.exit(main())

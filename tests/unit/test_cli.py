"""Tests for the key generation command."""

from phi_core.cli import main
from phi_core.security.crypto_box import CryptoBox


class TestKeygen:
    """phi-core-keygen."""

    def test_generates_valid_key(self, capsys):
        """Default output is a bare key."""
        assert main([]) == 0
        key = capsys.readouterr().out.strip()
        assert CryptoBox.validate_key(key)

    def test_env_line(self, capsys):
        """--env prints a .env line."""
        assert main(["--env"]) == 0
        line = capsys.readouterr().out.strip()
        assert line.startswith("ENCRYPTION_KEY=")
        assert CryptoBox.validate_key(line.split("=", 1)[1])

    def test_check_valid_key(self, capsys):
        """--check accepts a 64 hex character key."""
        assert main(["--check", "ab" * 32]) == 0

    def test_check_invalid_key(self, capsys):
        """--check rejects anything else."""
        assert main(["--check", "not-a-key"]) == 1
        assert "invalid" in capsys.readouterr().err

"""Tests for structured logging setup."""

import pytest
import structlog

from phi_core.config import Settings
from phi_core.utils import logging as phi_logging

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4


@pytest.fixture
def restore_structlog():
    """Put structlog back to its defaults after the test."""
    yield
    structlog.reset_defaults()


def test_setup_logging_from_settings_uses_configured_values(monkeypatch):
    """Level and format come from settings."""
    calls = []
    monkeypatch.setattr(
        phi_logging, "setup_logging", lambda level, fmt: calls.append((level, fmt))
    )

    phi_logging.setup_logging_from_settings(
        Settings(encryption_key=TEST_ENCRYPTION_KEY, log_level="DEBUG", log_format="json")
    )

    assert calls == [("DEBUG", "json")]


def test_setup_logging_from_settings_defaults_to_loaded_settings(monkeypatch):
    """Without explicit settings the environment is read."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    monkeypatch.setenv("LOG_FORMAT", "json")
    calls = []
    monkeypatch.setattr(
        phi_logging, "setup_logging", lambda level, fmt: calls.append((level, fmt))
    )

    phi_logging.setup_logging_from_settings()

    assert calls == [("ERROR", "json")]


def test_setup_logging_installs_renderer(restore_structlog):
    """The chosen renderer ends the processor chain."""
    phi_logging.setup_logging("WARNING", "json")

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert structlog.stdlib.filter_by_level in processors

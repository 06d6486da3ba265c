"""Configuration module for the PHI core."""

from phi_core.config.base import Settings
from phi_core.config.loader import get_settings

__all__ = ["Settings", "get_settings"]

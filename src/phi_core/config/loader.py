"""Configuration loader."""

from functools import lru_cache

from pydantic import ValidationError

from phi_core.config.base import Settings
from phi_core.core.exceptions import ConfigurationError


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        ConfigurationError: if required settings are missing or malformed
    """
    try:
        return Settings()
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise ConfigurationError(f"Invalid configuration: {fields}") from e

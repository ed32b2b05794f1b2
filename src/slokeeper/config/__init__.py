"""slokeeper configuration (Pydantic settings, SLOKEEPER_ environment prefix)."""

from slokeeper.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

"""Repository settings."""

from .models import RepositorySettings, validate_settings
from .io import load_settings, save_settings

__all__ = [
    "RepositorySettings",
    "validate_settings",
    "load_settings",
    "save_settings",
]

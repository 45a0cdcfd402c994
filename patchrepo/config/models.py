from __future__ import annotations

from typing import Any, Dict, Optional, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _BaseConfigModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class RepositorySettings(_BaseConfigModel):
    storage_dir: str = "patch_sets"
    file_extension: str = ".json"
    patch_search_limit: int = Field(default=50, ge=1)
    patch_set_search_limit: int = Field(default=20, ge=1)
    audit_limit: int = Field(default=50, ge=1)
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    log_json: bool = False
    templates_path: Optional[str] = None

    @field_validator("file_extension")
    @classmethod
    def _extension_has_dot(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2:
            raise ValueError("file_extension must start with '.'")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level


def validate_settings(payload: Dict[str, Any]) -> RepositorySettings:
    return cast(RepositorySettings, RepositorySettings.model_validate(payload))

"""Settings I/O utilities."""

from __future__ import annotations

import json
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import RepositorySettings, validate_settings

logger = logging.getLogger(__name__)

ENV_STORAGE_DIR = "PATCHREPO_STORAGE_DIR"
ENV_LOG_LEVEL = "PATCHREPO_LOG_LEVEL"
ENV_LOG_JSON = "PATCHREPO_LOG_JSON"

_YAML_SUFFIXES = (".yaml", ".yml")


def _parse_settings_file(path: Path, raw: str) -> Any:
    if path.suffix.lower() in _YAML_SUFFIXES:
        return yaml.safe_load(raw)
    return json.loads(raw)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    storage_dir = os.environ.get(ENV_STORAGE_DIR)
    if storage_dir:
        data["storage_dir"] = storage_dir
    log_level = os.environ.get(ENV_LOG_LEVEL)
    if log_level:
        data["log_level"] = log_level
    log_json = os.environ.get(ENV_LOG_JSON)
    if log_json is not None:
        data["log_json"] = log_json.strip().lower() in ("1", "true", "yes", "on")
    return data


def load_settings(config_path: Optional[Union[str, Path]] = None) -> RepositorySettings:
    """Load settings from a JSON or YAML file.

    A missing file yields defaults. Environment variables override file values.

    Raises:
        ConfigurationError: if the file cannot be parsed or fails validation
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            try:
                parsed = _parse_settings_file(path, path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
                raise ConfigurationError(f"Cannot read settings: {exc}", file_path=str(path)) from exc
            if parsed is None:
                parsed = {}
            if not isinstance(parsed, dict):
                raise ConfigurationError("Settings file must contain a mapping", file_path=str(path))
            data = dict(parsed)
        else:
            logger.debug("Settings file %s not found, using defaults", path)

    data = _apply_env_overrides(data)
    try:
        return validate_settings(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid settings: {exc}",
            "VALIDATION_ERROR",
            str(config_path) if config_path else None,
        ) from exc


def save_settings(settings: RepositorySettings, config_path: Union[str, Path]) -> Path:
    path = Path(config_path)
    payload = settings.model_dump()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() in _YAML_SUFFIXES:
            path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
        else:
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot write settings: {exc}", file_path=str(path)) from exc
    return path

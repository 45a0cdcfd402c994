"""Patch templates - step-by-step guides for common patching scenarios.

Templates are read from a YAML catalog. The bundled catalog lives in
``data/templates.yaml``; a custom one can be passed to :func:`load_templates`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..exceptions import ConfigurationError
from .models import new_id

DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parent / "data" / "templates.yaml"

# Stable ids for catalog entries that do not declare one
_TEMPLATE_NAMESPACE = uuid.UUID("6f0b6d1e-52c4-4d36-9a59-5b7f8a0e2c11")


class TemplateCategory(str, Enum):
    SECURITY = "Security"
    PERFORMANCE = "Performance"
    DEBUGGING = "Debugging"
    COMPATIBILITY = "Compatibility"
    CUSTOMIZATION = "Customization"
    REVERSE_ENGINEERING = "Reverse Engineering"

    @property
    def icon(self) -> str:
        return _CATEGORY_ICONS[self]


_CATEGORY_ICONS = {
    TemplateCategory.SECURITY: "lock.shield",
    TemplateCategory.PERFORMANCE: "speedometer",
    TemplateCategory.DEBUGGING: "ant",
    TemplateCategory.COMPATIBILITY: "checkmark.seal",
    TemplateCategory.CUSTOMIZATION: "slider.horizontal.3",
    TemplateCategory.REVERSE_ENGINEERING: "wrench.and.screwdriver",
}


class TemplateDifficulty(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


@dataclass(frozen=True)
class TemplateInstruction:
    """A single step of a template."""

    step: int
    title: str
    detail: str
    id: str = field(default_factory=new_id)
    arm64_pattern: Optional[str] = None
    example: Optional[str] = None


@dataclass(frozen=True)
class PatchTemplate:
    """A named recipe for a common patching scenario."""

    name: str
    description: str
    category: TemplateCategory
    difficulty: TemplateDifficulty
    icon: str
    instructions: Tuple[TemplateInstruction, ...]
    id: str = field(default_factory=new_id)
    tags: Tuple[str, ...] = ()


def _stable_id(*parts: str) -> str:
    return str(uuid.uuid5(_TEMPLATE_NAMESPACE, "/".join(parts)))


def _instruction_from_dict(template_name: str, data: Dict[str, Any]) -> TemplateInstruction:
    step = int(data["step"])
    return TemplateInstruction(
        id=str(data.get("id") or _stable_id(template_name, str(step))),
        step=step,
        title=str(data["title"]),
        detail=str(data["detail"]),
        arm64_pattern=data.get("arm64_pattern"),
        example=data.get("example"),
    )


def template_from_dict(data: Dict[str, Any]) -> PatchTemplate:
    name = str(data["name"])
    category = TemplateCategory(data["category"])
    instructions = sorted(
        (_instruction_from_dict(name, item) for item in data.get("instructions") or []),
        key=lambda instruction: instruction.step,
    )
    return PatchTemplate(
        id=str(data.get("id") or _stable_id(name)),
        name=name,
        description=str(data.get("description", "")),
        category=category,
        difficulty=TemplateDifficulty(data.get("difficulty", TemplateDifficulty.BEGINNER.value)),
        icon=str(data.get("icon") or category.icon),
        instructions=tuple(instructions),
        tags=tuple(str(tag) for tag in data.get("tags") or []),
    )


def load_templates(path: Optional[Union[str, Path]] = None) -> List[PatchTemplate]:
    """Read a YAML template catalog.

    The document is either a list of templates or a mapping with a
    ``templates`` list.

    Raises:
        ConfigurationError: if the file is missing or malformed
    """
    catalog_path = Path(path) if path else DEFAULT_TEMPLATES_PATH
    try:
        raw = catalog_path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Cannot read template catalog: {exc}", "TEMPLATE_ERROR", str(catalog_path)
        ) from exc

    if isinstance(data, dict):
        data = data.get("templates")
    if not isinstance(data, list):
        raise ConfigurationError(
            "Template catalog must contain a list of templates", "TEMPLATE_ERROR", str(catalog_path)
        )

    try:
        return [template_from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid template entry: {exc}", "TEMPLATE_ERROR", str(catalog_path)
        ) from exc


class TemplateCatalog:
    """Read-only lookup over a list of templates."""

    def __init__(self, templates: List[PatchTemplate]):
        self._templates: Dict[str, PatchTemplate] = {t.id: t for t in templates}

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "TemplateCatalog":
        return cls(load_templates(path))

    def __len__(self) -> int:
        return len(self._templates)

    def all(self) -> List[PatchTemplate]:
        return list(self._templates.values())

    def get(self, template_id: str) -> Optional[PatchTemplate]:
        return self._templates.get(template_id)

    def by_category(self, category: Union[TemplateCategory, str]) -> List[PatchTemplate]:
        category = TemplateCategory(category)
        return [t for t in self._templates.values() if t.category == category]

    def search(self, query: str) -> List[PatchTemplate]:
        """Case-insensitive match on name, description and tags; empty query matches nothing."""
        if not query:
            return []
        needle = query.casefold()
        return [
            t for t in self._templates.values()
            if needle in t.name.casefold()
            or needle in t.description.casefold()
            or any(needle in tag.casefold() for tag in t.tags)
        ]

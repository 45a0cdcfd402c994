"""Patch repository core.

Features:
- Patch / PatchSet / AuditEntry value model
- Validation of byte lengths and target identity
- Serialized, audited, write-through PatchStore
- One-file-per-set JSON storage
- Hex helpers and patch templates
"""

from .models import (
    AuditEntry,
    AuditEvent,
    Patch,
    PatchSet,
    PatchSetStatus,
    PatchStatus,
)
from .validation import validate_patch, validate_patch_set
from .codec import decode_patch_set, encode_patch_set
from .storage import PatchSetStorage
from .store import PatchStore, StoreStatistics, normalize_target_path
from .hexutil import format_hex_bytes, hex_dump, parse_hex_bytes, parse_offset
from .templates import (
    PatchTemplate,
    TemplateCatalog,
    TemplateCategory,
    TemplateDifficulty,
    TemplateInstruction,
    load_templates,
)

__all__ = [
    # Model
    "AuditEntry",
    "AuditEvent",
    "Patch",
    "PatchSet",
    "PatchSetStatus",
    "PatchStatus",
    # Validation
    "validate_patch",
    "validate_patch_set",
    # Persistence
    "decode_patch_set",
    "encode_patch_set",
    "PatchSetStorage",
    # Store
    "PatchStore",
    "StoreStatistics",
    "normalize_target_path",
    # Hex
    "format_hex_bytes",
    "hex_dump",
    "parse_hex_bytes",
    "parse_offset",
    # Templates
    "PatchTemplate",
    "TemplateCatalog",
    "TemplateCategory",
    "TemplateDifficulty",
    "TemplateInstruction",
    "load_templates",
]

"""Patch set data model.

Patch sets, patches and audit entries are immutable values. The store
changes them by building a replacement with :func:`dataclasses.replace`
and swapping it into its cache.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple, Union

from .hexutil import parse_hex_bytes, parse_offset


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class PatchStatus(str, Enum):
    """Verification state of a single patch."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    APPLIED = "applied"


class PatchSetStatus(str, Enum):
    """Lifecycle state of a patch set."""

    DRAFT = "draft"
    READY = "ready"
    APPLIED = "applied"
    VERIFIED = "verified"
    FAILED = "failed"


class AuditEvent(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    APPLIED = "applied"
    VERIFIED = "verified"
    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass(frozen=True)
class AuditEntry:
    """One immutable record of a change to a patch set or its patches."""

    event: AuditEvent
    details: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)
    user: Optional[str] = None
    patch_id: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass(frozen=True)
class Patch:
    """A fixed-length byte substitution at ``file_offset``."""

    name: str
    file_offset: int
    original_bytes: bytes
    patched_bytes: bytes
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    enabled: bool = True
    status: PatchStatus = PatchStatus.PENDING
    verification_message: Optional[str] = None
    expected_uuid: Optional[str] = None
    expected_architecture: Optional[str] = None
    tags: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", tuple(self.tags))

    @classmethod
    def create(
        cls,
        name: str,
        offset: Union[int, str],
        original: Union[bytes, str],
        patched: Union[bytes, str],
        *,
        description: Optional[str] = None,
        expected_uuid: Optional[str] = None,
        expected_architecture: Optional[str] = None,
        tags: Iterable[str] = (),
    ) -> "Patch":
        """Build a patch from raw values or hex strings.

        Args:
            name: Display name
            offset: File offset as int or hex text (``"0x1000"``)
            original: Bytes currently at the offset, raw or hex text
            patched: Replacement bytes, raw or hex text
        """
        now = utc_now()
        return cls(
            name=name,
            file_offset=parse_offset(offset) if isinstance(offset, str) else int(offset),
            original_bytes=parse_hex_bytes(original) if isinstance(original, str) else bytes(original),
            patched_bytes=parse_hex_bytes(patched) if isinstance(patched, str) else bytes(patched),
            description=description,
            expected_uuid=expected_uuid,
            expected_architecture=expected_architecture,
            tags=tuple(tags),
            created_at=now,
            updated_at=now,
        )

    @property
    def size(self) -> int:
        return len(self.patched_bytes)


@dataclass(frozen=True)
class PatchSet:
    """Named, auditable collection of patches targeting one binary."""

    name: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    author: Optional[str] = None
    patches: Tuple[Patch, ...] = ()
    status: PatchSetStatus = PatchSetStatus.DRAFT
    target_path: Optional[str] = None
    target_uuid: Optional[str] = None
    target_architecture: Optional[str] = None
    tags: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    audit_log: Tuple[AuditEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "patches", tuple(self.patches))
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "audit_log", tuple(self.audit_log))

    @classmethod
    def new(cls, name: str, description: Optional[str] = None,
            author: Optional[str] = None) -> "PatchSet":
        now = utc_now()
        return cls(
            name=name,
            description=description,
            author=author,
            created_at=now,
            updated_at=now,
        )

    def patch_index(self, patch_id: str) -> Optional[int]:
        for index, patch in enumerate(self.patches):
            if patch.id == patch_id:
                return index
        return None

    def find_patch(self, patch_id: str) -> Optional[Patch]:
        index = self.patch_index(patch_id)
        return None if index is None else self.patches[index]

    def enabled_patches(self) -> Tuple[Patch, ...]:
        return tuple(patch for patch in self.patches if patch.enabled)

"""Audit log helpers."""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Optional

from .models import AuditEntry, AuditEvent, PatchSet, utc_now

PATCH_SET_ID_KEY = "patchSetID"
PATCH_ID_KEY = "patchID"


def make_audit_entry(
    patch_set: PatchSet,
    event: AuditEvent,
    details: str,
    *,
    patch_id: Optional[str] = None,
    metadata: Optional[Mapping[str, str]] = None,
    user: Optional[str] = None,
) -> AuditEntry:
    """Build an entry whose metadata always names the owning set."""
    merged = dict(metadata or {})
    merged[PATCH_SET_ID_KEY] = patch_set.id
    if patch_id is not None:
        merged[PATCH_ID_KEY] = patch_id

    return AuditEntry(
        event=event,
        details=details,
        timestamp=utc_now(),
        user=user,
        patch_id=patch_id,
        metadata=merged,
    )


def record_audit(
    patch_set: PatchSet,
    event: AuditEvent,
    details: str,
    *,
    patch_id: Optional[str] = None,
    metadata: Optional[Mapping[str, str]] = None,
    user: Optional[str] = None,
) -> PatchSet:
    """Return a copy of ``patch_set`` with one more audit entry and a fresh ``updated_at``."""
    entry = make_audit_entry(
        patch_set,
        event,
        details,
        patch_id=patch_id,
        metadata=metadata,
        user=user,
    )
    return replace(
        patch_set,
        audit_log=patch_set.audit_log + (entry,),
        updated_at=entry.timestamp,
    )

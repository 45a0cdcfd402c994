"""Canonical JSON encoding of patch sets.

The layout uses camelCase keys, omits unset optional fields, stores bytes as
base64 and timestamps as ISO-8601 UTC. Keys are sorted so two encodings of
the same patch set are byte-identical.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema

from ..exceptions import PatchSetDecodeError
from .models import AuditEntry, AuditEvent, Patch, PatchSet, PatchSetStatus, PatchStatus

SCHEMA_PATH = Path(__file__).resolve().parent / "data" / "patch_set.schema.json"


@lru_cache(maxsize=1)
def _load_schema() -> Dict[str, Any]:
    with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(text: str) -> datetime:
    raw = text.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _decode_bytes(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def _put_optional(payload: Dict[str, Any], key: str, value: Optional[Any]) -> None:
    if value is not None:
        payload[key] = value


# =====================================================================================================
# Encoding
# =====================================================================================================

def audit_entry_to_dict(entry: AuditEntry) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": entry.id,
        "timestamp": format_timestamp(entry.timestamp),
        "event": entry.event.value,
        "details": entry.details,
        "metadata": dict(entry.metadata),
    }
    _put_optional(payload, "user", entry.user)
    _put_optional(payload, "patchID", entry.patch_id)
    return payload


def patch_to_dict(patch: Patch) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": patch.id,
        "name": patch.name,
        "fileOffset": patch.file_offset,
        "originalBytes": _encode_bytes(patch.original_bytes),
        "patchedBytes": _encode_bytes(patch.patched_bytes),
        "enabled": patch.enabled,
        "status": patch.status.value,
        "tags": list(patch.tags),
        "createdAt": format_timestamp(patch.created_at),
        "updatedAt": format_timestamp(patch.updated_at),
    }
    _put_optional(payload, "description", patch.description)
    _put_optional(payload, "verificationMessage", patch.verification_message)
    _put_optional(payload, "expectedUUID", patch.expected_uuid)
    _put_optional(payload, "expectedArchitecture", patch.expected_architecture)
    return payload


def patch_set_to_dict(patch_set: PatchSet) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": patch_set.id,
        "name": patch_set.name,
        "patches": [patch_to_dict(patch) for patch in patch_set.patches],
        "status": patch_set.status.value,
        "tags": list(patch_set.tags),
        "createdAt": format_timestamp(patch_set.created_at),
        "updatedAt": format_timestamp(patch_set.updated_at),
        "auditLog": [audit_entry_to_dict(entry) for entry in patch_set.audit_log],
    }
    _put_optional(payload, "description", patch_set.description)
    _put_optional(payload, "author", patch_set.author)
    _put_optional(payload, "targetPath", patch_set.target_path)
    _put_optional(payload, "targetUUID", patch_set.target_uuid)
    _put_optional(payload, "targetArchitecture", patch_set.target_architecture)
    return payload


def encode_patch_set(patch_set: PatchSet) -> bytes:
    """Serialize ``patch_set`` to canonical, human-readable JSON bytes."""
    text = json.dumps(patch_set_to_dict(patch_set), indent=2, sort_keys=True, ensure_ascii=False)
    return text.encode("utf-8")


# =====================================================================================================
# Decoding
# =====================================================================================================

def audit_entry_from_dict(data: Dict[str, Any]) -> AuditEntry:
    return AuditEntry(
        id=data["id"],
        timestamp=parse_timestamp(data["timestamp"]),
        user=data.get("user"),
        event=AuditEvent(data["event"]),
        patch_id=data.get("patchID"),
        details=data["details"],
        metadata=dict(data.get("metadata", {})),
    )


def patch_from_dict(data: Dict[str, Any]) -> Patch:
    return Patch(
        id=data["id"],
        name=data["name"],
        description=data.get("description"),
        file_offset=int(data["fileOffset"]),
        original_bytes=_decode_bytes(data["originalBytes"]),
        patched_bytes=_decode_bytes(data["patchedBytes"]),
        enabled=bool(data["enabled"]),
        status=PatchStatus(data["status"]),
        verification_message=data.get("verificationMessage"),
        expected_uuid=data.get("expectedUUID"),
        expected_architecture=data.get("expectedArchitecture"),
        tags=tuple(data.get("tags", [])),
        created_at=parse_timestamp(data["createdAt"]),
        updated_at=parse_timestamp(data["updatedAt"]),
    )


def patch_set_from_dict(data: Dict[str, Any]) -> PatchSet:
    return PatchSet(
        id=data["id"],
        name=data["name"],
        description=data.get("description"),
        author=data.get("author"),
        patches=tuple(patch_from_dict(item) for item in data.get("patches", [])),
        status=PatchSetStatus(data["status"]),
        target_path=data.get("targetPath"),
        target_uuid=data.get("targetUUID"),
        target_architecture=data.get("targetArchitecture"),
        tags=tuple(data.get("tags", [])),
        created_at=parse_timestamp(data["createdAt"]),
        updated_at=parse_timestamp(data["updatedAt"]),
        audit_log=tuple(audit_entry_from_dict(item) for item in data.get("auditLog", [])),
    )


def decode_patch_set(data: Union[bytes, str], source: Optional[str] = None) -> PatchSet:
    """Parse and schema-check a serialized patch set.

    Args:
        data: JSON document as bytes or text
        source: Optional file path, reported in errors

    Raises:
        PatchSetDecodeError: on malformed JSON, schema violations or bad values
    """
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PatchSetDecodeError(f"Malformed patch set document: {exc}", source) from exc

    try:
        jsonschema.validate(instance=payload, schema=_load_schema())
    except jsonschema.ValidationError as exc:
        path = "/".join(str(part) for part in exc.absolute_path)
        raise PatchSetDecodeError(
            f"Patch set document does not match schema: {exc.message}",
            source,
            {"json_path": path},
        ) from exc

    try:
        return patch_set_from_dict(payload)
    except (binascii.Error, ValueError, KeyError, TypeError) as exc:
        raise PatchSetDecodeError(f"Invalid patch set value: {exc}", source) from exc

"""Structural validation of patch sets and patches.

Validators are pure: they raise :class:`InvalidEntityError` for the first
rule that fails and never touch the store.
"""

from __future__ import annotations

from ..exceptions import PATCH, PATCH_SET, InvalidEntityError
from .hexutil import MAX_OFFSET
from .models import Patch, PatchSet


def validate_patch_set(patch_set: PatchSet) -> None:
    if not patch_set.name.strip():
        raise InvalidEntityError(PATCH_SET, "Name cannot be empty")
    if not patch_set.patches:
        return

    seen = set()
    for patch in patch_set.patches:
        if patch.id in seen:
            raise InvalidEntityError(
                PATCH_SET,
                "Patch IDs must be unique within a patch set",
                {"patch_id": patch.id},
            )
        seen.add(patch.id)

    for patch in patch_set.patches:
        validate_patch(patch, patch_set)


def validate_patch(patch: Patch, patch_set: PatchSet) -> None:
    """Check ``patch`` on its own and against the target of ``patch_set``."""
    if not patch.name.strip():
        raise InvalidEntityError(PATCH, "Patch name cannot be empty")
    if not patch.patched_bytes:
        raise InvalidEntityError(PATCH, "Patched bytes cannot be empty")
    if not patch.original_bytes:
        raise InvalidEntityError(PATCH, "Original bytes cannot be empty")
    if len(patch.original_bytes) != len(patch.patched_bytes):
        raise InvalidEntityError(PATCH, "Original and patched bytes must be the same length")
    if (
        patch.expected_uuid is not None
        and patch_set.target_uuid is not None
        and patch.expected_uuid != patch_set.target_uuid
    ):
        raise InvalidEntityError(PATCH, "Patch target UUID mismatch")
    if (
        patch.expected_architecture is not None
        and patch_set.target_architecture is not None
        and patch.expected_architecture != patch_set.target_architecture
    ):
        raise InvalidEntityError(PATCH, "Patch target architecture mismatch")
    if not 0 <= patch.file_offset <= MAX_OFFSET:
        raise InvalidEntityError(PATCH, "File offset must fit in an unsigned 64-bit integer")

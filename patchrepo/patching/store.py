"""Patch Store - authoritative in-memory cache of patch sets.

Every public operation, reads included, runs while holding one re-entrant
lock, so at most one operation is in flight and readers never observe a
half-applied write. Mutations build a new :class:`PatchSet`, validate it,
append an audit entry, write it to disk and only then swap it into the
cache; a failure at any step leaves the cache untouched.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..exceptions import (
    PATCH,
    PATCH_SET,
    DuplicateEntityError,
    NotFoundError,
    StoreClosedError,
)
from ..logging_config import LoggingTimer
from .audit import record_audit
from .codec import decode_patch_set, encode_patch_set
from .models import (
    AuditEntry,
    AuditEvent,
    Patch,
    PatchSet,
    PatchSetStatus,
    PatchStatus,
    utc_now,
)
from .storage import PatchSetStorage
from .validation import validate_patch, validate_patch_set

logger = logging.getLogger(__name__)

DEFAULT_PATCH_SEARCH_LIMIT = 50
DEFAULT_PATCH_SET_SEARCH_LIMIT = 20
DEFAULT_AUDIT_LIMIT = 50


@dataclass(frozen=True)
class StoreStatistics:
    """Aggregate counts over all cached patch sets."""

    total_patch_sets: int = 0
    total_patches: int = 0
    enabled_patches: int = 0
    verified_patches: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalPatchSets": self.total_patch_sets,
            "totalPatches": self.total_patches,
            "enabledPatches": self.enabled_patches,
            "verifiedPatches": self.verified_patches,
        }


def normalize_target_path(path: str) -> str:
    """Collapse ``.``/``..`` segments and make ``path`` absolute."""
    return os.path.normpath(os.path.abspath(path))


def _text_matches(needle: str, name: str, description: Optional[str], tags: Iterable[str]) -> bool:
    if needle in name.casefold():
        return True
    if description and needle in description.casefold():
        return True
    return any(needle in tag.casefold() for tag in tags)


class PatchStore:
    """Single gatekeeper for patch set mutations.

    Features:
    - Idempotent load of all persisted records
    - Validated, audited, write-through mutations
    - Search, statistics and audit queries over a consistent snapshot
    - Export/import of single patch sets
    """

    def __init__(self, storage: PatchSetStorage, *,
                 patch_search_limit: int = DEFAULT_PATCH_SEARCH_LIMIT,
                 patch_set_search_limit: int = DEFAULT_PATCH_SET_SEARCH_LIMIT,
                 audit_limit: int = DEFAULT_AUDIT_LIMIT):
        """Initialize the store.

        Args:
            storage: Persistence layer the store writes through to
            patch_search_limit: Default cap for :meth:`search_patches`
            patch_set_search_limit: Default cap for :meth:`search_patch_sets`
            audit_limit: Default cap for :meth:`recent_audit`
        """
        self._storage = storage
        self._patch_search_limit = patch_search_limit
        self._patch_set_search_limit = patch_set_search_limit
        self._audit_limit = audit_limit
        self._lock = threading.RLock()
        self._patch_sets: Dict[str, PatchSet] = {}
        self._loaded = False
        self._closed = False

    @property
    def storage(self) -> PatchSetStorage:
        return self._storage

    def __enter__(self) -> "PatchStore":
        self.load_all()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load_all(self) -> int:
        """Populate the cache from storage on first call.

        Returns:
            Number of patch sets loaded by this call (0 when already loaded)
        """
        with self._lock:
            if self._closed:
                raise StoreClosedError()
            if self._loaded:
                return 0
            return self._load_locked()

    def close(self) -> None:
        """Drop the cache; later calls raise :class:`StoreClosedError`."""
        with self._lock:
            if self._closed:
                return
            self._patch_sets.clear()
            self._closed = True
            logger.debug("Patch store closed (%s)", self._storage.directory)

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._loaded

    def _load_locked(self) -> int:
        with LoggingTimer("store.load_all"):
            self._storage.ensure_directory()
            records = self._storage.load_all()
            for patch_set in records:
                self._patch_sets[patch_set.id] = patch_set
        self._loaded = True
        logger.info("Loaded %d patch sets from %s", len(records), self._storage.directory)
        return len(records)

    def _ready(self) -> None:
        if self._closed:
            raise StoreClosedError()
        if not self._loaded:
            self._load_locked()

    # ------------------------------------------------------------------
    # Internal helpers (lock must be held)
    # ------------------------------------------------------------------

    def _require_set(self, set_id: str) -> PatchSet:
        patch_set = self._patch_sets.get(set_id)
        if patch_set is None:
            raise NotFoundError(PATCH_SET, set_id)
        return patch_set

    def _require_patch(self, patch_set: PatchSet, patch_id: str) -> Tuple[int, Patch]:
        index = patch_set.patch_index(patch_id)
        if index is None:
            raise NotFoundError(PATCH, patch_id, {"patch_set_id": patch_set.id})
        return index, patch_set.patches[index]

    def _commit(self, patch_set: PatchSet) -> PatchSet:
        self._storage.write(patch_set)
        self._patch_sets[patch_set.id] = patch_set
        return patch_set

    @staticmethod
    def _replace_patch(patch_set: PatchSet, index: int, patch: Patch) -> PatchSet:
        patches = list(patch_set.patches)
        patches[index] = patch
        return replace(patch_set, patches=tuple(patches))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_all(self) -> List[PatchSet]:
        """All patch sets, most recently updated first."""
        with self._lock:
            self._ready()
            return sorted(self._patch_sets.values(), key=lambda s: s.updated_at, reverse=True)

    def get(self, set_id: str) -> Optional[PatchSet]:
        with self._lock:
            self._ready()
            return self._patch_sets.get(set_id)

    def search_patches(self, query: str, limit: Optional[int] = None) -> List[Patch]:
        """Case-insensitive substring search over patch name, description and tags.

        An empty query matches nothing.
        """
        if limit is None:
            limit = self._patch_search_limit
        if not query or limit <= 0:
            return []
        needle = query.casefold()
        with self._lock:
            self._ready()
            results: List[Patch] = []
            for patch_set in self._patch_sets.values():
                for patch in patch_set.patches:
                    if _text_matches(needle, patch.name, patch.description, patch.tags):
                        results.append(patch)
                        if len(results) >= limit:
                            return results
            return results

    def search_patch_sets(self, query: str, limit: Optional[int] = None) -> List[PatchSet]:
        """Like :meth:`search_patches` but over sets, newest first."""
        if limit is None:
            limit = self._patch_set_search_limit
        if not query:
            return []
        needle = query.casefold()
        with self._lock:
            self._ready()
            matches = [
                patch_set for patch_set in self._patch_sets.values()
                if _text_matches(needle, patch_set.name, patch_set.description, patch_set.tags)
            ]
        matches.sort(key=lambda s: s.updated_at, reverse=True)
        return matches[:max(limit, 0)]

    def recent_audit(self, limit: Optional[int] = None) -> List[AuditEntry]:
        if limit is None:
            limit = self._audit_limit
        with self._lock:
            self._ready()
            entries = [entry for patch_set in self._patch_sets.values() for entry in patch_set.audit_log]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:max(limit, 0)]

    def statistics(self) -> StoreStatistics:
        with self._lock:
            self._ready()
            patches = [patch for patch_set in self._patch_sets.values() for patch in patch_set.patches]
            return StoreStatistics(
                total_patch_sets=len(self._patch_sets),
                total_patches=len(patches),
                enabled_patches=sum(1 for p in patches if p.enabled),
                verified_patches=sum(1 for p in patches if p.status == PatchStatus.VERIFIED),
            )

    def find_by_target(self, path: str) -> List[PatchSet]:
        """Patch sets whose target path names the same file as ``path``."""
        wanted = normalize_target_path(path)
        with self._lock:
            self._ready()
            matches = [
                patch_set for patch_set in self._patch_sets.values()
                if patch_set.target_path and normalize_target_path(patch_set.target_path) == wanted
            ]
        matches.sort(key=lambda s: s.updated_at, reverse=True)
        return matches

    # ------------------------------------------------------------------
    # Patch set mutations
    # ------------------------------------------------------------------

    def create(self, name: str, description: Optional[str] = None,
               author: Optional[str] = None) -> PatchSet:
        return self.add(PatchSet.new(name, description=description, author=author))

    def add(self, patch_set: PatchSet) -> PatchSet:
        """Insert a new patch set.

        Raises:
            DuplicateEntityError: if a set with the same id exists
            InvalidEntityError: if validation fails
        """
        with self._lock:
            self._ready()
            if patch_set.id in self._patch_sets:
                raise DuplicateEntityError(PATCH_SET, patch_set.id)
            validate_patch_set(patch_set)
            new_set = record_audit(patch_set, AuditEvent.CREATED, f"Patch set {patch_set.name} created")
            committed = self._commit(new_set)
            logger.info("Created patch set %s (%s)", committed.name, committed.id)
            return committed

    def update(self, patch_set: PatchSet) -> PatchSet:
        """Replace a patch set wholesale.

        ``created_at`` and the audit history are carried over from the
        cached version; any changes the caller made to them are ignored.
        """
        with self._lock:
            self._ready()
            existing = self._require_set(patch_set.id)
            validate_patch_set(patch_set)
            new_set = replace(
                patch_set,
                created_at=existing.created_at,
                audit_log=existing.audit_log,
                updated_at=utc_now(),
            )
            new_set = record_audit(new_set, AuditEvent.UPDATED, f"Patch set {new_set.name} updated")
            return self._commit(new_set)

    def delete(self, set_id: str) -> None:
        with self._lock:
            self._ready()
            existing = self._require_set(set_id)
            self._storage.delete(set_id)
            del self._patch_sets[set_id]
            logger.info("Deleted patch set %s (%s)", existing.name, set_id)

    def set_patch_set_status(self, status: Union[PatchSetStatus, str], set_id: str,
                             message: Optional[str] = None) -> PatchSet:
        """Change the status of a set.

        No-op when the status is unchanged and no message is given.
        """
        status = PatchSetStatus(status)
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            if patch_set.status == status and message is None:
                return patch_set

            new_set = replace(patch_set, status=status)
            new_set = record_audit(
                new_set,
                AuditEvent.UPDATED,
                f"Patch set {new_set.name} status changed to {status.value}",
                metadata={} if message is None else {"message": message},
            )
            return self._commit(new_set)

    # ------------------------------------------------------------------
    # Patch mutations
    # ------------------------------------------------------------------

    def add_patch(self, patch: Patch, set_id: str) -> PatchSet:
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            if patch_set.patch_index(patch.id) is not None:
                raise DuplicateEntityError(PATCH, patch.id, {"patch_set_id": set_id})
            validate_patch(patch, patch_set)

            new_set = replace(patch_set, patches=patch_set.patches + (patch,))
            new_set = record_audit(
                new_set,
                AuditEvent.CREATED,
                f"Patch {patch.name} created",
                patch_id=patch.id,
            )
            return self._commit(new_set)

    def update_patch(self, patch: Patch, set_id: str) -> PatchSet:
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            index, _ = self._require_patch(patch_set, patch.id)
            validate_patch(patch, patch_set)

            new_set = self._replace_patch(patch_set, index, patch)
            new_set = record_audit(
                new_set,
                AuditEvent.UPDATED,
                f"Patch {patch.name} updated",
                patch_id=patch.id,
            )
            return self._commit(new_set)

    def delete_patch(self, patch_id: str, set_id: str) -> PatchSet:
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            index, removed = self._require_patch(patch_set, patch_id)

            new_set = replace(patch_set, patches=patch_set.patches[:index] + patch_set.patches[index + 1:])
            new_set = record_audit(
                new_set,
                AuditEvent.DELETED,
                f"Patch {removed.name} deleted",
                patch_id=removed.id,
            )
            return self._commit(new_set)

    def set_patch_enabled(self, enabled: bool, patch_id: str, set_id: str,
                          user: Optional[str] = None) -> PatchSet:
        """Enable or disable a patch; no-op if it is already in that state."""
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            index, patch = self._require_patch(patch_set, patch_id)
            if patch.enabled == enabled:
                return patch_set

            patch = replace(patch, enabled=enabled, updated_at=utc_now())
            new_set = self._replace_patch(patch_set, index, patch)
            new_set = record_audit(
                new_set,
                AuditEvent.UPDATED,
                f"Patch {patch.name} {'enabled' if enabled else 'disabled'}",
                patch_id=patch_id,
                user=user,
            )
            return self._commit(new_set)

    def set_patch_status(self, status: Union[PatchStatus, str], patch_id: str, set_id: str,
                         message: Optional[str] = None) -> PatchSet:
        """Record a verification result; always audited, even if unchanged."""
        status = PatchStatus(status)
        with self._lock:
            self._ready()
            patch_set = self._require_set(set_id)
            index, patch = self._require_patch(patch_set, patch_id)

            patch = replace(patch, status=status, verification_message=message, updated_at=utc_now())
            new_set = self._replace_patch(patch_set, index, patch)
            new_set = record_audit(
                new_set,
                AuditEvent.UPDATED,
                f"Patch {patch.name} status changed to {status.value}",
                patch_id=patch_id,
                metadata={} if message is None else {"message": message},
            )
            return self._commit(new_set)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export(self, set_id: str) -> bytes:
        """Canonical JSON bytes of one patch set."""
        with self._lock:
            self._ready()
            return encode_patch_set(self._require_set(set_id))

    def import_bytes(self, data: Union[bytes, str]) -> PatchSet:
        """Decode an exported patch set and insert it via :meth:`add`.

        Raises:
            PatchSetDecodeError: if ``data`` is not a valid patch set document
        """
        patch_set = decode_patch_set(data)
        return self.add(patch_set)

"""One-file-per-patch-set storage.

Each patch set lives in ``<directory>/<id><extension>``. Writes go to a
``.part`` sibling first and are moved into place with :func:`os.replace`, so
a reader never sees a half-written record.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from ..exceptions import PatchSetDecodeError, PersistenceError
from ..logging_config import LoggingTimer
from .codec import decode_patch_set, encode_patch_set
from .models import PatchSet

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".json"


class PatchSetStorage:
    """Durable storage for patch set records."""

    def __init__(self, directory: Union[str, Path], extension: str = DEFAULT_EXTENSION):
        """Initialize storage.

        Args:
            directory: Directory holding the records (created lazily)
            extension: File extension of record files, including the dot
        """
        if not extension.startswith("."):
            raise ValueError(f"extension must start with '.': {extension!r}")
        self.directory = Path(directory)
        self.extension = extension

    def ensure_directory(self) -> Path:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(
                f"Cannot create storage directory: {exc}",
                str(self.directory),
                "mkdir",
            ) from exc
        return self.directory

    def path_for(self, set_id: str) -> Path:
        return self.directory / f"{set_id}{self.extension}"

    def write(self, patch_set: PatchSet) -> Path:
        """Atomically replace the record of ``patch_set``."""
        self.ensure_directory()
        payload = encode_patch_set(patch_set)
        dst = self.path_for(patch_set.id)
        tmp = dst.with_name(dst.name + ".part")

        with LoggingTimer("storage.write"):
            try:
                with open(tmp, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(str(tmp), str(dst))
            except OSError as exc:
                raise PersistenceError(
                    f"Failed to write patch set {patch_set.id}: {exc}",
                    str(dst),
                    "write",
                ) from exc
            finally:
                if tmp.exists():
                    try:
                        tmp.unlink()
                    except OSError as exc:
                        logger.debug("Failed to remove temp file %s: %s", tmp, exc)

        logger.debug("Persisted patch set %s (%d bytes)", patch_set.id, len(payload))
        return dst

    def delete(self, set_id: str) -> bool:
        """Remove the record of ``set_id``; returns False if there was none."""
        path = self.path_for(set_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise PersistenceError(
                f"Failed to delete patch set {set_id}: {exc}",
                str(path),
                "delete",
            ) from exc
        logger.debug("Deleted patch set record %s", path)
        return True

    def read(self, set_id: str) -> Optional[PatchSet]:
        path = self.path_for(set_id)
        if not path.exists():
            return None
        return decode_patch_set(path.read_bytes(), str(path))

    def load_all(self) -> List[PatchSet]:
        """Decode every record in the directory.

        Unreadable or corrupt records are logged and skipped.
        """
        if not self.directory.is_dir():
            return []

        loaded: List[PatchSet] = []
        for path in sorted(self.directory.iterdir()):
            if not path.name.endswith(self.extension) or not path.is_file():
                continue
            try:
                loaded.append(decode_patch_set(path.read_bytes(), str(path)))
            except (OSError, PatchSetDecodeError) as exc:
                logger.error("Skipping unreadable patch set record %s: %s", path, exc)
        return loaded

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure repo root on path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_configure() -> None:
    """Ensure pytest base temp directory exists for CI runs."""

    base_temp = ROOT / "temp" / "pytest"
    base_temp.mkdir(parents=True, exist_ok=True)


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "patch_sets"


@pytest.fixture
def store(storage_dir):
    from patchrepo.patching import PatchSetStorage, PatchStore

    patch_store = PatchStore(PatchSetStorage(storage_dir))
    patch_store.load_all()
    yield patch_store
    patch_store.close()


@pytest.fixture
def make_patch():
    from patchrepo.patching import Patch

    def _make(name="NOP check", offset=0x1000, original=b"\x00\x01", patched=b"\x01\x00", **kwargs):
        return Patch(
            name=name,
            file_offset=offset,
            original_bytes=original,
            patched_bytes=patched,
            **kwargs,
        )

    return _make

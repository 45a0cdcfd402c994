"""Composition root: builds the patch store from settings.

Callers create one store here at startup and hand it to whatever needs it;
there is no module-level store instance.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from ..config import RepositorySettings, load_settings
from ..logging_config import setup_logging
from ..patching.storage import PatchSetStorage
from ..patching.store import PatchStore
from ..patching.templates import TemplateCatalog

logger = logging.getLogger(__name__)


def create_store(settings: Optional[RepositorySettings] = None, *,
                 configure_logging: bool = False) -> PatchStore:
    """Create and load a :class:`PatchStore`.

    Args:
        settings: Repository settings (defaults when omitted)
        configure_logging: Install the repository log handlers first
    """
    settings = settings or RepositorySettings()
    if configure_logging:
        setup_logging(
            log_level=settings.log_level,
            log_dir=settings.log_dir,
            enable_file_logging=settings.log_dir is not None,
            structured_json=settings.log_json,
        )

    storage = PatchSetStorage(Path(settings.storage_dir), settings.file_extension)
    store = PatchStore(
        storage,
        patch_search_limit=settings.patch_search_limit,
        patch_set_search_limit=settings.patch_set_search_limit,
        audit_limit=settings.audit_limit,
    )
    store.load_all()
    return store


def open_repository(config_path: Optional[Union[str, Path]] = None, *,
                    configure_logging: bool = True) -> PatchStore:
    """Load settings from ``config_path`` and create the store."""
    settings = load_settings(config_path)
    store = create_store(settings, configure_logging=configure_logging)
    logger.info("Patch repository ready at %s", store.storage.directory)
    return store


def create_template_catalog(settings: Optional[RepositorySettings] = None) -> TemplateCatalog:
    settings = settings or RepositorySettings()
    return TemplateCatalog.from_file(settings.templates_path)

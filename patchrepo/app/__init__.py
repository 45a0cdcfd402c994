"""Application wiring."""

from .bootstrap import create_store, create_template_catalog, open_repository

__all__ = ["create_store", "create_template_catalog", "open_repository"]

#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""
Patch Repository - Consolidated Exception Classes

All exception classes raised by the repository live here so callers can
catch one hierarchy regardless of which layer failed.
"""

from datetime import datetime
from typing import Dict, Any, Optional


class BaseError(Exception):
    """Base class for all project-specific errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_code = error_code or "ERROR"
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Converts the exception to a dictionary for structured logging."""
        return {
            'error_code': self.error_code,
            'message': str(self),
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }


# =====================================================================================================
# Store errors
# =====================================================================================================

PATCH_SET = "patch_set"
PATCH = "patch"

_ENTITY_LABELS = {
    PATCH_SET: "patch set",
    PATCH: "patch",
}


class PatchRepositoryError(BaseError):
    """Base class for errors raised by the patch store."""

    recovery_suggestion = ""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code or "REPOSITORY_ERROR", details)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.recovery_suggestion:
            payload['recovery_suggestion'] = self.recovery_suggestion
        return payload


class DuplicateEntityError(PatchRepositoryError):
    """Raised when a patch set or patch id is already taken."""

    def __init__(self, entity: str, entity_id: str,
                 details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        self.entity_id = entity_id
        dup_details = details or {}
        dup_details['entity'] = entity
        dup_details['entity_id'] = str(entity_id)
        label = _ENTITY_LABELS.get(entity, entity)
        if entity == PATCH:
            message = "A patch with this ID already exists in the patch set"
        else:
            message = f"A {label} with this ID already exists"
        self.recovery_suggestion = (
            f"Use a different {label} ID or update the existing {label}"
        )
        super().__init__(message, "DUPLICATE_ENTITY", dup_details)


class NotFoundError(PatchRepositoryError):
    """Raised when a referenced patch set or patch does not exist."""

    def __init__(self, entity: str, entity_id: str,
                 details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        self.entity_id = entity_id
        nf_details = details or {}
        nf_details['entity'] = entity
        nf_details['entity_id'] = str(entity_id)
        if entity == PATCH:
            message = "The requested patch could not be found in the patch set"
            self.recovery_suggestion = "Verify the patch ID and patch set ID are correct"
        else:
            message = "The requested patch set could not be found"
            self.recovery_suggestion = "Verify the patch set ID and ensure it has been loaded"
        super().__init__(message, "NOT_FOUND", nf_details)


class InvalidEntityError(PatchRepositoryError):
    """Raised when validation rejects a patch set or patch.

    ``reason`` carries the first failing rule only.
    """

    recovery_suggestion = "Check the validation error details and correct the issue"

    def __init__(self, entity: str, reason: str,
                 details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        self.reason = reason
        inv_details = details or {}
        inv_details['entity'] = entity
        inv_details['reason'] = reason
        label = "Invalid patch" if entity == PATCH else "Invalid patch set"
        super().__init__(f"{label}: {reason}", "INVALID_ENTITY", inv_details)


class StoreClosedError(PatchRepositoryError):
    """Raised when a closed store is used."""

    recovery_suggestion = "Create a new store from the composition root"

    def __init__(self, message: str = "The patch store has been closed"):
        super().__init__(message, "STORE_CLOSED")


# =====================================================================================================
# Configuration -related errors
# =====================================================================================================

class ConfigurationError(BaseError):
    """Raised when a settings file or template catalog is invalid."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        config_details = details or {}
        if file_path:
            config_details['file_path'] = str(file_path)
        super().__init__(message, error_code or "CONFIG_ERROR", config_details)


# =====================================================================================================
# IO and data -related errors
# =====================================================================================================

class DataError(BaseError):
    """Base class for data-related errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code or "DATA_ERROR", details)


class PatchSetDecodeError(DataError):
    """Raised when a serialized patch set cannot be decoded."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        decode_details = details or {}
        if file_path:
            decode_details['file_path'] = str(file_path)
        super().__init__(message, "DECODE_ERROR", decode_details)


class PersistenceError(DataError):
    """Raised when a patch set record cannot be written or removed."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 operation: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        file_details = details or {}
        if file_path:
            file_details['file_path'] = str(file_path)
        if operation:
            file_details['operation'] = operation
        super().__init__(message, "PERSISTENCE_ERROR", file_details)

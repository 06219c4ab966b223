"""Exception hierarchy for the settings cache and sync tracking core."""
from __future__ import annotations

from typing import Optional


class SyncCoreError(Exception):
    """Base class for every error raised or reported by the core."""


class BusyError(SyncCoreError):
    """A mutation is already in flight for the entity."""

    def __init__(self, entity_id: str):
        super().__init__(f"A settings change for {entity_id!r} is still in progress")
        self.entity_id = entity_id


class MutationFailedError(SyncCoreError):
    """The authoritative write failed; local state was rolled back."""

    def __init__(self, entity_id: str, key: str, reason: str):
        super().__init__(f"Could not update {key!r} for {entity_id!r}: {reason}")
        self.entity_id = entity_id
        self.key = key
        self.reason = reason


class LoadFailedError(SyncCoreError):
    """The authoritative fetch failed; any cached copy may be stale."""

    def __init__(self, entity_id: str, reason: str):
        super().__init__(f"Could not load settings for {entity_id!r}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


class EntityNotLoadedError(SyncCoreError, LookupError):
    def __init__(self, entity_id: str):
        super().__init__(f"Settings for {entity_id!r} have not been loaded")
        self.entity_id = entity_id


class SettingValidationError(SyncCoreError, ValueError):
    pass


class BackendError(SyncCoreError):
    """Transport or server failure reported by the finance backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


__all__ = [
    "BackendError",
    "BusyError",
    "EntityNotLoadedError",
    "LoadFailedError",
    "MutationFailedError",
    "SettingValidationError",
    "SyncCoreError",
]

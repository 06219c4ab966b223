"""Data model of the settings cache and sync tracker."""
from .cached_settings import CachedSettings
from .outcome import Outcome, OutcomeKind
from .settings import (
    GROUP_SETTINGS_SCHEMA,
    PendingMutation,
    SettingField,
    SettingsRecord,
    SettingsSchema,
    Source,
)
from .sync_job import SyncEvent, SyncJob, SyncStats, SyncStatus

__all__ = [
    "CachedSettings",
    "GROUP_SETTINGS_SCHEMA",
    "Outcome",
    "OutcomeKind",
    "PendingMutation",
    "SettingField",
    "SettingsRecord",
    "SettingsSchema",
    "Source",
    "SyncEvent",
    "SyncJob",
    "SyncStats",
    "SyncStatus",
]

"""Settings records, their schema and in-flight mutations."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from core.errors import SettingValidationError
from utils.datetime_utils import utc_now

SettingValue = Union[bool, int, float]


class Source(str, enum.Enum):
    """Provenance of the values currently held for an entity."""

    AUTHORITATIVE = "authoritative"
    CACHED = "cached"
    OPTIMISTIC = "optimistic"


def _freeze(fields: Mapping[str, SettingValue]) -> Mapping[str, SettingValue]:
    return MappingProxyType(dict(fields))


@dataclass(frozen=True)
class SettingsRecord:
    entity_id: str
    fields: Mapping[str, SettingValue]
    revision: int = 0
    source: Source = Source.CACHED
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", _freeze(self.fields))

    def with_fields(self, fields: Mapping[str, SettingValue], **changes: Any) -> "SettingsRecord":
        return replace(self, fields=_freeze(fields), updated_at=utc_now(), **changes)

    def with_source(self, source: Source, **changes: Any) -> "SettingsRecord":
        return replace(self, source=source, updated_at=utc_now(), **changes)

    def as_dict(self) -> Dict[str, SettingValue]:
        return dict(self.fields)


@dataclass(frozen=True)
class PendingMutation:
    entity_id: str
    key: str
    proposed_value: SettingValue
    previous_snapshot: Mapping[str, SettingValue]
    previous_source: Source
    started_at: datetime = field(default_factory=utc_now)


# ----------------------------------------------------------------------
# Schema

BOOL = "bool"
NUMBER = "number"


@dataclass(frozen=True)
class SettingField:
    key: str
    kind: str
    default: SettingValue
    label: str = ""
    description: str = ""

    def accepts(self, value: Any) -> bool:
        if self.kind == BOOL:
            return isinstance(value, bool)
        # bool is an int subclass but never a valid number setting
        return isinstance(value, (int, float)) and not isinstance(value, bool)


class SettingsSchema:
    """Closed set of known setting keys with typed defaults."""

    def __init__(self, fields: Iterable[SettingField]):
        self._fields: Dict[str, SettingField] = {}
        for item in fields:
            if item.kind not in (BOOL, NUMBER):
                raise ValueError(f"Unsupported setting kind: {item.kind}")
            if not item.accepts(item.default):
                raise ValueError(f"Default for {item.key!r} does not match kind {item.kind}")
            self._fields[item.key] = item

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __iter__(self):
        return iter(self._fields.values())

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._fields)

    def field(self, key: str) -> SettingField:
        try:
            return self._fields[key]
        except KeyError:
            raise SettingValidationError(f"Unknown setting: {key}") from None

    def defaults(self) -> Dict[str, SettingValue]:
        return {key: item.default for key, item in self._fields.items()}

    def validate_value(self, key: str, value: Any) -> SettingValue:
        item = self.field(key)
        if not item.accepts(value):
            raise SettingValidationError(
                f"Setting {key!r} expects a {item.kind} value, got {type(value).__name__}"
            )
        return value

    def coerce(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, SettingValue]:
        """Build a complete field mapping from an untrusted payload."""

        result = self.defaults()
        if not isinstance(payload, Mapping):
            return result
        for key, item in self._fields.items():
            if key in payload and item.accepts(payload[key]):
                result[key] = payload[key]
        return result


GROUP_SETTINGS_SCHEMA = SettingsSchema(
    [
        SettingField(
            "hideEmptyAccounts",
            BOOL,
            False,
            "Hide Empty Accounts",
            "Hide accounts with zero or near-zero balances",
        ),
        SettingField(
            "autoArchiveInactive",
            BOOL,
            False,
            "Auto-Archive Inactive",
            "Automatically archive accounts with no activity for 90+ days",
        ),
        SettingField(
            "lockBalances",
            BOOL,
            False,
            "Lock Balance Display",
            "Require authentication to view account balances",
        ),
        SettingField(
            "enableNotifications",
            BOOL,
            True,
            "Enable Notifications",
            "Receive alerts about balance changes and account activity",
        ),
        SettingField(
            "shareWithFamily",
            BOOL,
            False,
            "Share with Family",
            "Allow family members to view this group's summary",
        ),
        SettingField(
            "requireApproval",
            BOOL,
            False,
            "Require Approval",
            "Require approval for transactions above $1,000",
        ),
    ]
)


__all__ = [
    "BOOL",
    "GROUP_SETTINGS_SCHEMA",
    "NUMBER",
    "PendingMutation",
    "SettingField",
    "SettingValue",
    "SettingsRecord",
    "SettingsSchema",
    "Source",
]

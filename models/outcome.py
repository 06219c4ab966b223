"""Result values returned by every mutating operation of the core."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from core.errors import SyncCoreError
from models.settings import SettingsRecord


class OutcomeKind(str, enum.Enum):
    CONFIRMED = "confirmed"
    BUSY = "busy"
    MUTATION_FAILED = "mutation_failed"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    DEFERRED = "deferred"
    REMOVED = "removed"
    SYNC_REQUESTED = "sync_requested"
    SYNC_REQUEST_FAILED = "sync_request_failed"
    SUPERSEDED = "superseded"


_OK_KINDS = frozenset(
    {
        OutcomeKind.CONFIRMED,
        OutcomeKind.LOADED,
        OutcomeKind.DEFERRED,
        OutcomeKind.REMOVED,
        OutcomeKind.SYNC_REQUESTED,
        OutcomeKind.SUPERSEDED,
    }
)


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    key: str
    record: Optional[SettingsRecord] = None
    error: Optional[SyncCoreError] = None

    @property
    def ok(self) -> bool:
        return self.kind in _OK_KINDS

    @property
    def reason(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def raise_for_error(self) -> "Outcome":
        if self.error is not None:
            raise self.error
        return self


__all__ = ["Outcome", "OutcomeKind"]

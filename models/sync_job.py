"""Sync job state for wallets and bank accounts."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


class SyncStatus(str, enum.Enum):
    IDLE = "idle"
    QUEUED = "queued"
    SYNCING = "syncing"
    SYNCING_ASSETS = "syncing_assets"
    SYNCING_TRANSACTIONS = "syncing_transactions"
    SYNCING_NFTS = "syncing_nfts"
    SYNCING_DEFI = "syncing_defi"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def parse(cls, value: object) -> Optional["SyncStatus"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


SYNC_PHASES = frozenset(
    {
        SyncStatus.SYNCING_ASSETS,
        SyncStatus.SYNCING_TRANSACTIONS,
        SyncStatus.SYNCING_NFTS,
        SyncStatus.SYNCING_DEFI,
    }
)
ACTIVE_STATUSES = frozenset({SyncStatus.QUEUED, SyncStatus.SYNCING} | SYNC_PHASES)
TERMINAL_STATUSES = frozenset({SyncStatus.COMPLETED, SyncStatus.FAILED})

# Forward edges of the state graph. Events outside these edges are still
# applied, but progress never moves backwards.
SUCCESSORS = {
    SyncStatus.IDLE: frozenset({SyncStatus.QUEUED}),
    SyncStatus.QUEUED: frozenset({SyncStatus.SYNCING}),
    SyncStatus.SYNCING: SYNC_PHASES | TERMINAL_STATUSES,
    SyncStatus.COMPLETED: frozenset({SyncStatus.QUEUED}),
    SyncStatus.FAILED: frozenset({SyncStatus.QUEUED}),
}
for _phase in SYNC_PHASES:
    SUCCESSORS[_phase] = (SYNC_PHASES - {_phase}) | TERMINAL_STATUSES

STATUS_LABELS = {
    SyncStatus.IDLE: "Idle",
    SyncStatus.QUEUED: "Queued",
    SyncStatus.SYNCING: "Syncing",
    SyncStatus.SYNCING_ASSETS: "Syncing Assets",
    SyncStatus.SYNCING_TRANSACTIONS: "Syncing Transactions",
    SyncStatus.SYNCING_NFTS: "Syncing NFTs",
    SyncStatus.SYNCING_DEFI: "Syncing DeFi",
    SyncStatus.COMPLETED: "Completed",
    SyncStatus.FAILED: "Failed",
}


def is_successor(current: SyncStatus, nxt: SyncStatus) -> bool:
    return nxt in SUCCESSORS.get(current, frozenset())


@dataclass(frozen=True)
class SyncJob:
    """Immutable snapshot of one account/wallet synchronisation."""

    job_key: str
    status: SyncStatus = SyncStatus.IDLE
    progress: int = 0
    message: Optional[str] = None
    last_event_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    generation: int = 0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    synced_data: Tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def same_state(self, other: "SyncJob") -> bool:
        """Compare everything except the bookkeeping timestamps."""

        return (
            self.status,
            self.progress,
            self.message,
            self.generation,
            self.error,
            self.synced_data,
        ) == (
            other.status,
            other.progress,
            other.message,
            other.generation,
            other.error,
            other.synced_data,
        )


@dataclass(frozen=True)
class SyncEvent:
    """One inbound status update from the external sync source."""

    job_key: str
    status: SyncStatus
    progress: Optional[int] = None
    message: Optional[str] = None
    generation: Optional[int] = None
    error: Optional[str] = None
    occurred_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    synced_data: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        status = SyncStatus.parse(self.status)
        if status is None:
            raise ValueError(f"Unknown sync status: {self.status!r}")
        object.__setattr__(self, "status", status)
        if self.synced_data is not None and not isinstance(self.synced_data, tuple):
            object.__setattr__(self, "synced_data", tuple(self.synced_data))


@dataclass(frozen=True)
class SyncStats:
    total: int = 0
    syncing: int = 0
    completed: int = 0
    failed: int = 0
    idle: int = 0
    last_completed_at: Optional[datetime] = None
    average_progress: int = 0

    @property
    def is_syncing(self) -> bool:
        return self.syncing > 0


__all__ = [
    "ACTIVE_STATUSES",
    "STATUS_LABELS",
    "SYNC_PHASES",
    "SyncEvent",
    "SyncJob",
    "SyncStats",
    "SyncStatus",
    "TERMINAL_STATUSES",
    "is_successor",
]

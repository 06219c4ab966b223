"""Translate backend sync messages into :class:`SyncEvent` values and pump them."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, AsyncIterable, Callable, Dict, Mapping, Optional, Protocol

from core.log import get_logger
from core.settings import SYNC
from models.sync_job import SyncEvent, SyncStatus
from utils.datetime_utils import ensure_utc, parse_rfc3339, utc_now

logger = get_logger("sync_events")

# Bank sync phases reported by the backend, mapped to tracker statuses.
BANK_STATUS_MAP = {
    "syncing_bank": SyncStatus.SYNCING,
    "syncing_balance": SyncStatus.SYNCING,
    "syncing_transactions": SyncStatus.SYNCING_TRANSACTIONS,
    "completed_bank": SyncStatus.COMPLETED,
    "failed_bank": SyncStatus.FAILED,
}

# Legacy one-message-per-phase bank events: (status, default progress, default message)
LEGACY_BANK_EVENTS = {
    "syncing_bank": (SyncStatus.SYNCING, 10, "Starting bank account sync..."),
    "syncing_transactions_bank": (SyncStatus.SYNCING_TRANSACTIONS, 50, "Syncing bank transactions..."),
    "completed_bank": (SyncStatus.COMPLETED, None, None),
    "failed_bank": (SyncStatus.FAILED, None, None),
}

CONTROL_MESSAGES = frozenset({"connection_established", "heartbeat"})


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _timestamp(payload: Mapping[str, Any], *names: str) -> Optional[datetime]:
    for name in names:
        value = payload.get(name)
        if isinstance(value, str):
            parsed = parse_rfc3339(value)
            if parsed:
                return parsed
    return None


def _synced_data(payload: Mapping[str, Any]):
    value = payload.get("syncedData")
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return None


def decode_message(payload: Mapping[str, Any]) -> Optional[SyncEvent]:
    """Return the event carried by ``payload`` or ``None`` for control/invalid messages."""

    kind = payload.get("type")
    if kind in CONTROL_MESSAGES:
        return None

    generation = _int_or_none(payload.get("generation"))
    common: Dict[str, Any] = dict(
        generation=generation,
        occurred_at=_timestamp(payload, "timestamp", "completedAt"),
        # startedAt is the run start and repeats on every progress message
        started_at=_timestamp(payload, "startedAt"),
        synced_data=_synced_data(payload),
    )

    if kind == "wallet_sync_progress":
        wallet_id = payload.get("walletId")
        status = SyncStatus.parse(payload.get("status"))
        progress = _int_or_none(payload.get("progress"))
        if not wallet_id or status is None or status is SyncStatus.IDLE or progress is None:
            logger.warning("Invalid wallet_sync_progress message: %s", dict(payload))
            return None
        return SyncEvent(
            job_key=str(wallet_id),
            status=status,
            progress=progress,
            message=payload.get("message"),
            error=payload.get("error"),
            **common,
        )

    if kind == "wallet_sync_completed":
        wallet_id = payload.get("walletId")
        if not wallet_id:
            logger.warning("Invalid wallet_sync_completed message: %s", dict(payload))
            return None
        return SyncEvent(job_key=str(wallet_id), status=SyncStatus.COMPLETED, progress=100, **common)

    if kind == "wallet_sync_failed":
        wallet_id = payload.get("walletId")
        if not wallet_id:
            logger.warning("Invalid wallet_sync_failed message: %s", dict(payload))
            return None
        return SyncEvent(
            job_key=str(wallet_id),
            status=SyncStatus.FAILED,
            error=payload.get("error") or "Unknown error",
            **common,
        )

    if kind == "sync_progress":
        account_id = payload.get("accountId")
        raw_status = payload.get("status")
        if not account_id or not raw_status:
            logger.warning("Invalid sync_progress message: %s", dict(payload))
            return None
        status = BANK_STATUS_MAP.get(raw_status) or SyncStatus.parse(raw_status)
        if status is None or status is SyncStatus.IDLE:
            logger.warning("Unknown bank sync status %r for %s", raw_status, account_id)
            return None
        if status is SyncStatus.FAILED:
            return SyncEvent(
                job_key=str(account_id),
                status=status,
                error=payload.get("message") or "Bank sync failed",
                **common,
            )
        if status is SyncStatus.COMPLETED:
            return SyncEvent(job_key=str(account_id), status=status, progress=100, **common)
        return SyncEvent(
            job_key=str(account_id),
            status=status,
            progress=_int_or_none(payload.get("progress")) or 0,
            message=payload.get("message") or "Syncing bank account...",
            **common,
        )

    if kind in LEGACY_BANK_EVENTS:
        account_id = payload.get("accountId")
        if not account_id:
            return None
        status, default_progress, default_message = LEGACY_BANK_EVENTS[kind]
        if status is SyncStatus.FAILED:
            return SyncEvent(
                job_key=str(account_id),
                status=status,
                error=payload.get("error") or "Unknown error occurred",
                **common,
            )
        if status is SyncStatus.COMPLETED:
            return SyncEvent(job_key=str(account_id), status=status, progress=100, **common)
        return SyncEvent(
            job_key=str(account_id),
            status=status,
            progress=_int_or_none(payload.get("progress")) or default_progress,
            message=payload.get("message") or default_message,
            **common,
        )

    logger.debug("Ignoring sync message of type %r", kind)
    return None


class EventSink(Protocol):
    def apply_event(self, event: SyncEvent) -> Any:
        ...


class SyncEventPump:
    """Feed decoded messages from an async source into an event sink.

    The pump tracks connection health the way the dashboard badge needs it:
    ``connected`` flips on the first message, heartbeats refresh
    ``last_heartbeat_at`` and a failing source is recorded in ``last_error``.
    """

    def __init__(
        self,
        sink: EventSink,
        source: AsyncIterable[Mapping[str, Any]],
        *,
        heartbeat_timeout: timedelta = timedelta(seconds=SYNC.heartbeat_timeout_sec),
        clock: Callable[[], datetime] = utc_now,
        on_status: Optional[Callable[[], None]] = None,
    ):
        self.sink = sink
        self.source = source
        self.heartbeat_timeout = heartbeat_timeout
        self._clock = clock
        self.on_status = on_status
        self.connected = False
        self.last_heartbeat_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.applied = 0

    async def run(self) -> None:
        try:
            async for payload in self.source:
                self._handle(payload)
        except Exception as exc:
            self.last_error = str(exc) or exc.__class__.__name__
            logger.warning("Sync event stream stopped: %s", self.last_error)
        finally:
            self.connected = False
            self._notify()

    def _notify(self) -> None:
        if self.on_status is not None:
            self.on_status()

    def _handle(self, payload: Mapping[str, Any]) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring non-object sync message: %r", payload)
            return
        if not self.connected:
            self.connected = True
            self.last_error = None
            self._notify()
        kind = payload.get("type")
        if kind in CONTROL_MESSAGES:
            self.last_heartbeat_at = self._clock()
            return
        event = decode_message(payload)
        if event is None:
            return
        self.sink.apply_event(event)
        self.applied += 1

    def heartbeat_expired(self, now: Optional[datetime] = None) -> bool:
        if self.last_heartbeat_at is None:
            return False
        current = ensure_utc(now) or self._clock()
        return current - self.last_heartbeat_at > self.heartbeat_timeout


__all__ = ["BANK_STATUS_MAP", "SyncEventPump", "decode_message"]

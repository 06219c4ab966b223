"""Optimistic settings changes with exact rollback."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from core.errors import BusyError, EntityNotLoadedError, MutationFailedError
from core.log import get_logger
from models.outcome import Outcome, OutcomeKind
from models.settings import PendingMutation, SettingsRecord, SettingValue, Source
from services.observers import Subscribers
from storage.cache import PersistentCache

WriteResult = Union[SettingsRecord, Mapping[str, Any], None]
SettleHook = Callable[[str, Outcome], None]


class SettingsWriter(Protocol):
    async def write_settings(self, entity_id: str, key: str, value: SettingValue) -> WriteResult:
        ...


class OptimisticMutationCoordinator:
    """Owns the live :class:`SettingsRecord` of every loaded entity.

    A change is shown and cached immediately, then confirmed or rolled back
    once the authoritative write settles. Only one mutation per entity may be
    in flight; further requests get a ``BUSY`` outcome until it settles.
    """

    def __init__(self, cache: PersistentCache, writer: SettingsWriter):
        self.cache = cache
        self.writer = writer
        self.schema = cache.schema
        self.logger = get_logger("mutations")
        self.subscribers: Subscribers[SettingsRecord] = Subscribers(self.logger)
        self._records: Dict[str, SettingsRecord] = {}
        self._pending: Dict[str, PendingMutation] = {}
        self._settle_hooks: List[SettleHook] = []

    # ------------------------------------------------------------------
    # Read side
    def get(self, entity_id: str) -> Optional[SettingsRecord]:
        return self._records.get(entity_id)

    def snapshot(self, entity_id: str) -> SettingsRecord:
        record = self._records.get(entity_id)
        if record is None:
            raise EntityNotLoadedError(entity_id)
        return record

    def is_loaded(self, entity_id: str) -> bool:
        return entity_id in self._records

    def is_busy(self, entity_id: str) -> bool:
        return entity_id in self._pending

    def pending(self, entity_id: str) -> Optional[PendingMutation]:
        return self._pending.get(entity_id)

    def add_settle_hook(self, hook: SettleHook) -> None:
        self._settle_hooks.append(hook)

    # ------------------------------------------------------------------
    # Record lifecycle
    def install(self, record: SettingsRecord) -> SettingsRecord:
        """Make ``record`` the live value for its entity and cache it."""

        if self.is_busy(record.entity_id):
            raise BusyError(record.entity_id)
        record = record.with_fields(self.schema.coerce(record.fields))
        self._commit(record)
        return record

    def drop(self, entity_id: str) -> None:
        if self.is_busy(entity_id):
            raise BusyError(entity_id)
        self._records.pop(entity_id, None)
        self.cache.delete(entity_id)

    # ------------------------------------------------------------------
    # Mutation protocol
    async def propose(self, entity_id: str, key: str, value: SettingValue) -> Outcome:
        current = self.snapshot(entity_id)
        self.schema.validate_value(key, value)

        if self.is_busy(entity_id):
            self.logger.info("Rejecting change of %s on %s: mutation in flight", key, entity_id)
            return Outcome(OutcomeKind.BUSY, entity_id, record=current, error=BusyError(entity_id))

        pending = PendingMutation(
            entity_id=entity_id,
            key=key,
            proposed_value=value,
            previous_snapshot=current.fields,
            previous_source=current.source,
        )
        fields = current.as_dict()
        fields[key] = value
        self._pending[entity_id] = pending
        try:
            self._commit(current.with_fields(fields, source=Source.OPTIMISTIC))
        except Exception:
            self._pending.pop(entity_id, None)
            self._records[entity_id] = current
            raise

        try:
            response = await self.writer.write_settings(entity_id, key, value)
        except asyncio.CancelledError:
            self._rollback(pending, "cancelled")
            raise
        except Exception as exc:
            outcome = self._rollback(pending, str(exc) or exc.__class__.__name__)
        else:
            outcome = self._confirm(pending, response)

        for hook in list(self._settle_hooks):
            hook(entity_id, outcome)
        return outcome

    def _confirm(self, pending: PendingMutation, response: WriteResult) -> Outcome:
        entity_id = pending.entity_id
        current = self._records[entity_id]
        if response is None:
            # Silent success confirms the optimistic value.
            fields = current.as_dict()
        elif isinstance(response, SettingsRecord):
            fields = self.schema.coerce(response.fields)
        else:
            fields = self.schema.coerce(response)

        record = current.with_fields(
            fields,
            source=Source.AUTHORITATIVE,
            revision=current.revision + 1,
        )
        try:
            self._commit(record)
        finally:
            self._pending.pop(entity_id, None)
        self.logger.info(
            "Confirmed %s=%r on %s (revision %s)",
            pending.key,
            record.fields.get(pending.key),
            entity_id,
            record.revision,
        )
        return Outcome(OutcomeKind.CONFIRMED, entity_id, record=record)

    def _rollback(self, pending: PendingMutation, reason: str) -> Outcome:
        entity_id = pending.entity_id
        current = self._records[entity_id]
        source = (
            Source.AUTHORITATIVE
            if pending.previous_source is Source.AUTHORITATIVE
            else Source.CACHED
        )
        record = current.with_fields(pending.previous_snapshot, source=source)
        try:
            self._commit(record)
        finally:
            self._pending.pop(entity_id, None)
        self.logger.warning(
            "Write of %s on %s failed, rolled back: %s", pending.key, entity_id, reason
        )
        error = MutationFailedError(entity_id, pending.key, reason)
        return Outcome(OutcomeKind.MUTATION_FAILED, entity_id, record=record, error=error)

    def _commit(self, record: SettingsRecord) -> None:
        self._records[record.entity_id] = record
        self.cache.write(record.entity_id, record)
        self.subscribers.emit(record.entity_id, record)


__all__ = ["OptimisticMutationCoordinator", "SettingsWriter", "WriteResult"]

"""Seam between the settings cache, the sync tracker and the outside world."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union

from core.errors import BackendError, BusyError, LoadFailedError
from core.log import get_logger
from models.outcome import Outcome, OutcomeKind
from models.settings import SettingsRecord, SettingValue, Source
from models.sync_job import SyncEvent, SyncJob, SyncStatus
from services.mutations import OptimisticMutationCoordinator, SettingsWriter
from services.sync_tracker import ApplyResult, SyncJobTracker
from storage.cache import PersistentCache

FetchResult = Union[SettingsRecord, Mapping[str, Any]]


class SettingsBackend(SettingsWriter, Protocol):
    async def fetch_settings(self, entity_id: str) -> FetchResult:
        ...


class ConsistencyCoordinator:
    """Public face of the core for UI code.

    Settings are served cache-first and refreshed from the backend in the
    background. A refresh that lands while a change is in flight is held
    back until the change settles: after a rollback it is applied, after a
    confirmation it is dropped because the write result is newer. A fetch
    that was sent before a change got confirmed is dropped the same way,
    even when it answers after the change has settled.
    """

    def __init__(
        self,
        backend: SettingsBackend,
        cache: PersistentCache,
        tracker: Optional[SyncJobTracker] = None,
    ):
        self.backend = backend
        self.cache = cache
        self.tracker = tracker or SyncJobTracker()
        self.mutations = OptimisticMutationCoordinator(cache, backend)
        self.mutations.add_settle_hook(self._on_mutation_settled)
        self.logger = get_logger("consistency")
        self._refreshes: Dict[str, asyncio.Task] = {}
        self._deferred: Dict[str, Dict[str, SettingValue]] = {}
        self._stale: Dict[str, str] = {}
        # confirmed writes per entity; a fetch sent before the latest one is outdated
        self._confirmed: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Settings
    async def load_entity(self, entity_id: str) -> SettingsRecord:
        live = self.mutations.get(entity_id)
        if live is not None:
            self._schedule_refresh(entity_id)
            return live

        cached = self.cache.read(entity_id)
        if cached is not None:
            record = self.mutations.install(cached.with_source(Source.CACHED))
            self._schedule_refresh(entity_id)
            return record

        confirmed = self._confirmed.get(entity_id, 0)
        try:
            fetched = await self.backend.fetch_settings(entity_id)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            self.logger.warning("Initial load of %s failed: %s", entity_id, reason)
            raise LoadFailedError(entity_id, reason) from exc
        # another caller may have loaded the entity while we were waiting
        live = self.mutations.get(entity_id)
        if live is not None:
            self._adopt(entity_id, fetched, confirmed)
            return self.mutations.snapshot(entity_id)
        record = SettingsRecord(
            entity_id=entity_id,
            fields=self._fields_of(fetched),
            revision=1,
            source=Source.AUTHORITATIVE,
        )
        self._stale.pop(entity_id, None)
        return self.mutations.install(record)

    async def refresh(self, entity_id: str) -> Outcome:
        """Fetch the authoritative value and reconcile it with the live record."""

        confirmed = self._confirmed.get(entity_id, 0)
        try:
            fetched = await self.backend.fetch_settings(entity_id)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            self._stale[entity_id] = reason
            self.logger.warning("Refresh of %s failed, keeping cached copy: %s", entity_id, reason)
            return Outcome(
                OutcomeKind.LOAD_FAILED,
                entity_id,
                record=self.mutations.get(entity_id),
                error=LoadFailedError(entity_id, reason),
            )
        return self._adopt(entity_id, fetched, confirmed)

    async def wait_refresh(self, entity_id: str) -> Optional[Outcome]:
        task = self._refreshes.get(entity_id)
        if task is None:
            return None
        return await task

    def is_stale(self, entity_id: str) -> bool:
        return entity_id in self._stale

    def _schedule_refresh(self, entity_id: str) -> asyncio.Task:
        task = self._refreshes.get(entity_id)
        if task is not None and not task.done():
            return task
        task = asyncio.get_running_loop().create_task(self.refresh(entity_id))
        self._refreshes[entity_id] = task
        return task

    def _adopt(self, entity_id: str, fetched: FetchResult, confirmed_before: int) -> Outcome:
        fields = self._fields_of(fetched)
        current = self.mutations.get(entity_id)
        if current is None:
            # entity was removed while the fetch was in flight
            return Outcome(OutcomeKind.REMOVED, entity_id)
        self._stale.pop(entity_id, None)
        if self._confirmed.get(entity_id, 0) != confirmed_before:
            self.logger.info("Dropping refresh of %s sent before a confirmed write", entity_id)
            return Outcome(OutcomeKind.SUPERSEDED, entity_id, record=current)
        if self.mutations.is_busy(entity_id):
            self._deferred[entity_id] = fields
            self.logger.info("Deferring refresh of %s until the pending change settles", entity_id)
            return Outcome(OutcomeKind.DEFERRED, entity_id, record=current)
        record = self.mutations.install(
            current.with_fields(
                fields,
                source=Source.AUTHORITATIVE,
                revision=current.revision + 1,
            )
        )
        return Outcome(OutcomeKind.LOADED, entity_id, record=record)

    def _on_mutation_settled(self, entity_id: str, outcome: Outcome) -> None:
        if outcome.kind is OutcomeKind.CONFIRMED:
            self._confirmed[entity_id] = self._confirmed.get(entity_id, 0) + 1
        deferred = self._deferred.pop(entity_id, None)
        if deferred is None:
            return
        if outcome.kind is OutcomeKind.CONFIRMED:
            self.logger.info("Dropping deferred refresh of %s superseded by a confirmed write", entity_id)
            return
        current = self.mutations.snapshot(entity_id)
        self.mutations.install(
            current.with_fields(
                deferred,
                source=Source.AUTHORITATIVE,
                revision=current.revision + 1,
            )
        )
        self._stale.pop(entity_id, None)
        self.logger.info("Applied deferred refresh of %s after rollback", entity_id)

    def _fields_of(self, fetched: FetchResult) -> Dict[str, SettingValue]:
        if isinstance(fetched, SettingsRecord):
            return self.cache.schema.coerce(fetched.fields)
        return self.cache.schema.coerce(fetched)

    def remove_entity(self, entity_id: str) -> Outcome:
        """Forget a deleted entity: live record, cache row and its sync badge."""

        if self.mutations.is_busy(entity_id):
            return Outcome(
                OutcomeKind.BUSY,
                entity_id,
                record=self.mutations.get(entity_id),
                error=BusyError(entity_id),
            )
        self.mutations.drop(entity_id)
        self._deferred.pop(entity_id, None)
        self._stale.pop(entity_id, None)
        task = self._refreshes.pop(entity_id, None)
        if task is not None and not task.done():
            task.cancel()
        if entity_id in self.tracker:
            self.tracker.reset(entity_id)
        return Outcome(OutcomeKind.REMOVED, entity_id)

    # ------------------------------------------------------------------
    # Sync jobs
    def apply_event(self, event: SyncEvent) -> ApplyResult:
        return self.tracker.apply(event)

    async def request_sync(self, job_key: str) -> Outcome:
        """Start a new sync run on user request."""

        job = self.tracker.snapshot(job_key)
        if job.is_active:
            return Outcome(OutcomeKind.BUSY, job_key, error=BusyError(job_key))
        trigger = getattr(self.backend, "trigger_sync", None)
        if trigger is not None:
            try:
                await trigger(job_key)
            except BackendError as exc:
                self.logger.warning("Sync request for %s failed: %s", job_key, exc)
                return Outcome(OutcomeKind.SYNC_REQUEST_FAILED, job_key, error=exc)
        generation = job.generation + 1 if job.is_terminal else None
        self.tracker.apply(SyncEvent(job_key=job_key, status=SyncStatus.QUEUED, generation=generation))
        return Outcome(OutcomeKind.SYNC_REQUESTED, job_key)

    # ------------------------------------------------------------------
    # UI-facing read side
    def get_settings_snapshot(self, entity_id: str) -> SettingsRecord:
        return self.mutations.snapshot(entity_id)

    async def propose_setting_change(self, entity_id: str, key: str, value: SettingValue) -> Outcome:
        return await self.mutations.propose(entity_id, key, value)

    def get_sync_job_snapshot(self, job_key: str) -> SyncJob:
        return self.tracker.snapshot(job_key)

    def subscribe_settings(self, callback: Callable[[SettingsRecord], None], entity_id: Optional[str] = None):
        return self.mutations.subscribers.subscribe(callback, entity_id)

    def subscribe_jobs(self, callback: Callable[[SyncJob], None], job_key: Optional[str] = None):
        return self.tracker.subscribe(callback, job_key)


__all__ = ["ConsistencyCoordinator", "SettingsBackend"]

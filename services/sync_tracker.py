"""Reactive map of wallet/bank sync jobs fed by an unreliable event stream."""
from __future__ import annotations

import enum
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from core.log import get_logger
from models.sync_job import SyncEvent, SyncJob, SyncStats, SyncStatus, is_successor
from services.observers import Subscribers
from utils.datetime_utils import ensure_utc, utc_now


class ApplyResult(str, enum.Enum):
    APPLIED = "applied"
    STALE = "stale"
    DUPLICATE = "duplicate"

    @property
    def changed(self) -> bool:
        return self is ApplyResult.APPLIED


def _clamp(progress: int) -> int:
    return max(0, min(100, int(progress)))


class SyncJobTracker:
    """Process-wide store of :class:`SyncJob` snapshots keyed by job key.

    Jobs are created lazily by the first event for a key and live for the
    session. They are never removed implicitly; :meth:`reset` puts a job back
    to ``idle`` when its owner leaves the view.

    Events are filtered so that what subscribers see stays monotonic:

    * events from an older generation are dropped;
    * terminal jobs only accept ``queued`` for a newer run;
    * within one generation progress never decreases.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._jobs: Dict[str, SyncJob] = {}
        self.logger = get_logger("sync_tracker")
        self.subscribers: Subscribers[SyncJob] = Subscribers(self.logger)

    # ------------------------------------------------------------------
    # Read side
    def snapshot(self, job_key: str) -> SyncJob:
        return self._jobs.get(job_key) or SyncJob(job_key=job_key)

    def snapshots(self) -> Dict[str, SyncJob]:
        return dict(self._jobs)

    def __contains__(self, job_key: object) -> bool:
        return job_key in self._jobs

    def subscribe(self, callback: Callable[[SyncJob], None], key: Optional[str] = None):
        return self.subscribers.subscribe(callback, key)

    def active_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.is_active)

    def stats(self) -> SyncStats:
        jobs = list(self._jobs.values())
        active = [job for job in jobs if job.is_active]
        completed = [job for job in jobs if job.status is SyncStatus.COMPLETED]
        finished_at = [job.completed_at for job in completed if job.completed_at]
        average = round(sum(job.progress for job in active) / len(active)) if active else 0
        return SyncStats(
            total=len(jobs),
            syncing=len(active),
            completed=len(completed),
            failed=sum(1 for job in jobs if job.status is SyncStatus.FAILED),
            idle=sum(1 for job in jobs if job.status is SyncStatus.IDLE),
            last_completed_at=max(finished_at) if finished_at else None,
            average_progress=average,
        )

    # ------------------------------------------------------------------
    # Write side
    def apply(self, event: SyncEvent) -> ApplyResult:
        current = self._jobs.get(event.job_key) or SyncJob(job_key=event.job_key)
        updated = self._transition(current, event)
        if updated is None:
            self.logger.debug(
                "Dropped stale %s event for %s (gen %s, tracked %s/%s)",
                event.status.value,
                event.job_key,
                event.generation,
                current.status.value,
                current.generation,
            )
            return ApplyResult.STALE
        if event.job_key in self._jobs and updated.same_state(current):
            return ApplyResult.DUPLICATE
        self._store(replace(updated, received_at=self._clock()))
        return ApplyResult.APPLIED

    def reset(self, job_key: str) -> SyncJob:
        """Return a job to ``idle``, keeping its generation so old events stay stale."""

        current = self._jobs.get(job_key)
        if current is None:
            return SyncJob(job_key=job_key)
        now = self._clock()
        job = SyncJob(job_key=job_key, generation=current.generation, last_event_at=now, received_at=now)
        self._store(job)
        return job

    def reset_all(self) -> None:
        for job_key in list(self._jobs):
            self.reset(job_key)

    def reset_stuck(self, max_age: timedelta, now: Optional[datetime] = None) -> List[str]:
        """Reset active jobs that have not received an event for ``max_age``.

        Measured on the local clock: server timestamps may be skewed and some
        messages carry the run start rather than the send time.
        """

        current_time = ensure_utc(now) or self._clock()
        stuck = [
            job.job_key
            for job in self._jobs.values()
            if job.is_active
            and job.received_at is not None
            and current_time - job.received_at > max_age
        ]
        for job_key in stuck:
            self.logger.warning("Resetting sync job %s stuck in %s", job_key, self._jobs[job_key].status.value)
            self.reset(job_key)
        return stuck

    # ------------------------------------------------------------------
    def _store(self, job: SyncJob) -> None:
        self._jobs[job.job_key] = job
        self.subscribers.emit(job.job_key, job)

    def _transition(self, job: SyncJob, event: SyncEvent) -> Optional[SyncJob]:
        """Return the job after ``event`` or ``None`` when the event is stale."""

        status = event.status
        if status is SyncStatus.IDLE:
            return None
        if event.generation is not None and event.generation < job.generation:
            return None

        now = self._clock()
        occurred = ensure_utc(event.occurred_at) or now
        newer_run = event.generation is not None and event.generation > job.generation

        if job.is_terminal:
            if status is not SyncStatus.QUEUED:
                return None
            if event.generation is not None and not newer_run:
                return None
            generation = event.generation if newer_run else job.generation + 1
            return self._start_run(job, event, generation, occurred)

        if newer_run:
            return self._start_run(job, event, event.generation, occurred)

        if status is SyncStatus.QUEUED:
            if job.status is SyncStatus.IDLE:
                return self._start_run(job, event, job.generation, occurred)
            # late duplicate of the run start; going back to queued would rewind the badge
            return None

        if not is_successor(job.status, status) and job.status is not SyncStatus.IDLE:
            self.logger.debug("Out-of-order %s -> %s for %s", job.status.value, status.value, job.job_key)

        return self._advance(job, event, occurred)

    def _start_run(
        self, job: SyncJob, event: SyncEvent, generation: int, occurred: datetime
    ) -> SyncJob:
        fresh = SyncJob(
            job_key=job.job_key,
            status=SyncStatus.QUEUED,
            progress=0,
            generation=generation,
            last_event_at=job.last_event_at,
            received_at=job.received_at,
        )
        if event.status is SyncStatus.QUEUED:
            return replace(
                fresh,
                message=event.message,
                progress=_clamp(event.progress) if event.progress is not None else 0,
                last_event_at=occurred,
            )
        return self._advance(fresh, event, occurred)

    def _advance(self, job: SyncJob, event: SyncEvent, occurred: datetime) -> SyncJob:
        status = event.status
        progress = job.progress
        if event.progress is not None:
            progress = max(progress, _clamp(event.progress))
        if status is SyncStatus.COMPLETED:
            progress = 100

        changes = dict(
            status=status,
            progress=progress,
            message=event.message if event.message is not None else job.message,
            last_event_at=occurred,
        )
        if status.is_active and job.started_at is None and status is not SyncStatus.QUEUED:
            changes["started_at"] = ensure_utc(event.started_at) or occurred
        if status.is_terminal:
            changes["completed_at"] = occurred
        if status is SyncStatus.FAILED:
            changes["error"] = event.error or event.message or job.error or "Sync failed"
        if event.synced_data is not None:
            changes["synced_data"] = event.synced_data
        return replace(job, **changes)


__all__ = ["ApplyResult", "SyncJobTracker"]

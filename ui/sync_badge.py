# ui/sync_badge.py
from __future__ import annotations

from typing import Callable, Optional

import flet as ft

from core.settings import UI
from models.sync_job import SyncJob, SyncStatus
from services.sync_tracker import SyncJobTracker
from utils.datetime_utils import format_elapsed, format_last_sync

STATUS_COLORS = {
    SyncStatus.IDLE: "#6B7280",
    SyncStatus.QUEUED: "#A16207",
    SyncStatus.COMPLETED: "#15803D",
    SyncStatus.FAILED: "#B91C1C",
}
ACTIVE_COLOR = "#1D4ED8"


def describe(job: SyncJob) -> str:
    """Secondary line under the badge label."""

    if job.status is SyncStatus.FAILED:
        return job.error or job.message or "Sync failed"
    if job.status is SyncStatus.COMPLETED:
        return "Synced " + format_last_sync(job.completed_at).lower()
    if job.is_active:
        text = job.message or "Syncing..."
        elapsed = format_elapsed(job.started_at)
        return f"{text} ({elapsed})" if elapsed else text
    return ""


class SyncBadge:
    """Read-only projection of one sync job: label, progress bar and detail text."""

    def __init__(
        self,
        tracker: SyncJobTracker,
        job_key: str,
        title: Optional[str] = None,
        on_change: Optional[Callable[[], None]] = None,
        on_sync: Optional[Callable[[str], None]] = None,
    ):
        self.job_key = job_key
        self.on_change = on_change
        self.on_sync = on_sync

        self.title = ft.Text(title or job_key, size=14, weight=ft.FontWeight.W_600)
        self.label = ft.Text("", size=12)
        self.percent = ft.Text("", size=12, color=UI.text_subtle)
        self.progress = ft.ProgressBar(value=0, width=UI.progress_bar_width, visible=False)
        self.detail = ft.Text("", size=12, color=UI.text_subtle)
        self.sync_button = ft.TextButton("Sync now", on_click=self._on_sync_click, visible=False)

        self.view = ft.Column(
            controls=[
                ft.Row([self.title, self.label, self.percent, self.sync_button], spacing=8),
                self.progress,
                self.detail,
            ],
            spacing=4,
        )
        self.render(tracker.snapshot(job_key))
        self._unsubscribe = tracker.subscribe(self._on_job, key=job_key)

    def _on_job(self, job: SyncJob) -> None:
        self.render(job)
        if self.on_change:
            self.on_change()

    def render(self, job: SyncJob) -> None:
        active = job.is_active
        self.label.value = job.status.label
        self.label.color = ACTIVE_COLOR if active else STATUS_COLORS.get(job.status, UI.text_subtle)
        self.percent.value = f"{job.progress}%" if active else ""
        self.progress.visible = active
        self.progress.value = job.progress / 100
        self.detail.value = describe(job)
        # a new run is only ever started by the user
        self.sync_button.visible = self.on_sync is not None and job.is_terminal

    def _on_sync_click(self, e) -> None:
        if self.on_sync:
            self.on_sync(self.job_key)

    def dispose(self) -> None:
        self._unsubscribe()


__all__ = ["SyncBadge", "describe"]

# ui/app_shell.py
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
from typing import Dict

import flet as ft

from core.log import get_logger
from core.settings import API, SYNC, UI
from models.sync_job import SyncJob
from services.consistency import ConsistencyCoordinator
from services.finance_api import FinanceApiClient
from services.sync_events import SyncEventPump
from services.sync_tracker import SyncJobTracker
from storage.cache import PersistentCache
from storage.config import load_config, update_config
from ui.group_settings import GroupSettingsPanel
from ui.sync_badge import SyncBadge

DEFAULT_GROUP_ID = "default"


class AppShell:
    """Owns the single tracker/coordinator pair for the lifetime of the window."""

    def __init__(self, page: ft.Page):
        self.page = page
        self.logger = get_logger("app")

        config = load_config()
        api_settings = replace(
            API,
            base_url=config.api_base_url or API.base_url,
            organization_id=config.organization_id or API.organization_id,
        )
        self.api = FinanceApiClient(api_settings)
        self.tracker = SyncJobTracker()
        self.coordinator = ConsistencyCoordinator(self.api, PersistentCache(), self.tracker)
        self.pump = SyncEventPump(
            self.coordinator, self.api.stream_events(), on_status=self._on_pump_status
        )

        group_id = config.last_group_id or DEFAULT_GROUP_ID
        self.settings_panel = self._make_panel(group_id)
        self.panel_host = ft.Container(self.settings_panel.view, expand=True)
        self.group_field = ft.TextField(
            label="Account group",
            value=group_id,
            dense=True,
            on_submit=self._on_group_submit,
        )

        self.badges: Dict[str, SyncBadge] = {}
        self.badge_list = ft.Column(spacing=12)
        self.connection_text = ft.Text("Connecting...", size=12, color=UI.text_subtle)
        self.tracker.subscribe(self._on_job)

        self.view = ft.Row(
            [
                ft.Column([ft.Container(self.group_field, padding=20), self.panel_host], expand=True),
                ft.VerticalDivider(width=1),
                ft.Container(
                    ft.Column(
                        [
                            ft.Text("Sync status", size=20, weight=ft.FontWeight.BOLD),
                            self.connection_text,
                            self.badge_list,
                        ],
                        spacing=12,
                    ),
                    width=320,
                    padding=20,
                ),
            ],
            expand=True,
        )

    def mount(self) -> None:
        self.page.add(self.view)
        self.page.run_task(self.settings_panel.load)
        self.page.run_task(self._run_pump)
        self.page.run_task(self._sweep_stuck_jobs)

    def _make_panel(self, group_id: str) -> GroupSettingsPanel:
        return GroupSettingsPanel(
            self.coordinator,
            group_id,
            run_task=self.page.run_task,
            on_change=self.page.update,
        )

    def _on_group_submit(self, e) -> None:
        value = (e.control.value or "").strip()
        if value:
            self.select_group(value)

    def select_group(self, group_id: str) -> None:
        """Show another account group and remember it for the next start."""

        if group_id == self.settings_panel.entity_id:
            return
        self.settings_panel.dispose()
        self.settings_panel = self._make_panel(group_id)
        self.panel_host.content = self.settings_panel.view
        update_config(last_group_id=group_id)
        self.logger.info("Switched to account group %s", group_id)
        self.page.run_task(self.settings_panel.load)
        self.page.update()

    def _on_job(self, job: SyncJob) -> None:
        # badges subscribe themselves once created
        if job.job_key in self.badges:
            return
        badge = SyncBadge(
            self.tracker,
            job.job_key,
            on_change=self.page.update,
            on_sync=self._on_sync_requested,
        )
        self.badges[job.job_key] = badge
        self.badge_list.controls.append(badge.view)
        self.page.update()

    def _on_sync_requested(self, job_key: str) -> None:
        self.page.run_task(self.request_sync, job_key)

    async def request_sync(self, job_key: str) -> None:
        outcome = await self.coordinator.request_sync(job_key)
        badge = self.badges.get(job_key)
        if not outcome.ok and badge is not None:
            badge.detail.value = outcome.reason or "Could not start sync"
        self.page.update()

    def _on_pump_status(self) -> None:
        if self.pump.connected:
            self.connection_text.value = "Live updates connected"
        elif self.pump.last_error:
            self.connection_text.value = f"Live updates unavailable: {self.pump.last_error}"
        else:
            self.connection_text.value = "Live updates disconnected"
        self.page.update()

    async def _run_pump(self) -> None:
        await self.pump.run()

    async def _sweep_stuck_jobs(self) -> None:
        max_age = timedelta(seconds=SYNC.stuck_after_sec)
        while True:
            await asyncio.sleep(SYNC.stuck_sweep_interval_sec)
            if self.tracker.reset_stuck(max_age):
                self.page.update()
            if self.pump.heartbeat_expired():
                self.connection_text.value = "Live updates stalled"
                self.page.update()

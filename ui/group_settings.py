# ui/group_settings.py
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import flet as ft

from core.errors import LoadFailedError
from core.settings import UI
from models.outcome import OutcomeKind
from models.settings import BOOL, SettingsRecord, Source
from services.consistency import ConsistencyCoordinator

TaskRunner = Callable[..., Any]


class GroupSettingsPanel:
    """Switches for one account group's settings.

    The switches always show the coordinator's snapshot: a failed change
    snaps back because the rollback re-renders the panel.
    """

    def __init__(
        self,
        coordinator: ConsistencyCoordinator,
        entity_id: str,
        run_task: TaskRunner,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.coordinator = coordinator
        self.entity_id = entity_id
        self.run_task = run_task
        self.on_change = on_change
        self.schema = coordinator.cache.schema

        self.switches: Dict[str, ft.Switch] = {}
        rows = []
        for item in self.schema:
            if item.kind != BOOL:
                continue
            switch = ft.Switch(value=bool(item.default), data=item.key, on_change=self._on_toggle)
            self.switches[item.key] = switch
            rows.append(
                ft.Row(
                    [
                        ft.Column(
                            [
                                ft.Text(item.label, size=14),
                                ft.Text(item.description, size=12, color=UI.text_subtle),
                            ],
                            spacing=2,
                            expand=True,
                        ),
                        switch,
                    ],
                    alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                )
            )

        self.status_text = ft.Text("", size=12, color=UI.text_subtle)
        self.error_text = ft.Text("", size=12, color=UI.error_text)
        self.view = ft.Container(
            content=ft.Column(
                [
                    ft.Text("Group settings", size=20, weight=ft.FontWeight.BOLD),
                    *rows,
                    self.status_text,
                    self.error_text,
                ],
                spacing=12,
            ),
            padding=20,
        )
        self._unsubscribe = coordinator.subscribe_settings(self._on_record, entity_id)

    def _on_record(self, record: SettingsRecord) -> None:
        self.render(record)
        self._changed()

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()

    def render(self, record: SettingsRecord) -> None:
        busy = record.source is Source.OPTIMISTIC
        for key, switch in self.switches.items():
            switch.value = bool(record.fields.get(key))
            switch.disabled = busy
        if busy:
            self.status_text.value = "Saving..."
        elif self.coordinator.is_stale(self.entity_id):
            self.status_text.value = "Showing saved settings; they may be out of date"
        else:
            self.status_text.value = ""

    async def load(self) -> None:
        try:
            record = await self.coordinator.load_entity(self.entity_id)
        except LoadFailedError as exc:
            self.error_text.value = str(exc)
        else:
            self.error_text.value = ""
            self.render(record)
            self._changed()
            await self.coordinator.wait_refresh(self.entity_id)
            self.render(self.coordinator.get_settings_snapshot(self.entity_id))
        self._changed()

    def _on_toggle(self, e) -> None:
        self.run_task(self.apply_change, e.control.data, bool(e.control.value))

    async def apply_change(self, key: str, value: bool) -> None:
        outcome = await self.coordinator.propose_setting_change(self.entity_id, key, value)
        if outcome.kind in (OutcomeKind.BUSY, OutcomeKind.MUTATION_FAILED):
            self.error_text.value = outcome.reason or "Could not save the change"
        else:
            self.error_text.value = ""
        # a refresh held back during the write may already have replaced outcome.record
        self.render(self.coordinator.get_settings_snapshot(self.entity_id))
        self._changed()

    def dispose(self) -> None:
        self._unsubscribe()


__all__ = ["GroupSettingsPanel"]

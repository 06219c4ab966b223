import asyncio
from types import SimpleNamespace

from core.errors import BackendError
from fakes import FakeBackend
from models import GROUP_SETTINGS_SCHEMA, SyncEvent
from services.consistency import ConsistencyCoordinator
from services.sync_tracker import SyncJobTracker
from storage.config import load_config
from ui.app_shell import AppShell
from ui.group_settings import GroupSettingsPanel
from ui.sync_badge import SyncBadge


def test_sync_badge_follows_tracker():
    tracker = SyncJobTracker()
    changes = []
    badge = SyncBadge(tracker, "w1", title="Main wallet", on_change=lambda: changes.append(1))

    assert badge.label.value == "Idle"
    assert not badge.progress.visible

    tracker.apply(SyncEvent(job_key="w1", status="syncing_assets", progress=40, generation=1))
    assert badge.label.value == "Syncing Assets"
    assert badge.percent.value == "40%"
    assert badge.progress.visible
    assert badge.progress.value == 0.4

    tracker.apply(SyncEvent(job_key="w1", status="completed", generation=1))
    assert badge.label.value == "Completed"
    assert badge.percent.value == ""
    assert not badge.progress.visible
    assert badge.detail.value == "Synced just now"
    assert len(changes) == 2

    badge.dispose()
    tracker.apply(SyncEvent(job_key="w1", status="queued", generation=2))
    assert badge.label.value == "Completed"


def test_sync_badge_shows_failure_reason():
    tracker = SyncJobTracker()
    badge = SyncBadge(tracker, "b1")

    tracker.apply(SyncEvent(job_key="b1", status="failed", error="Login required", generation=1))

    assert badge.label.value == "Failed"
    assert badge.detail.value == "Login required"


def _panel(cache, backend):
    coordinator = ConsistencyCoordinator(backend, cache)
    scheduled = []
    panel = GroupSettingsPanel(
        coordinator,
        "g1",
        run_task=lambda handler, *args: scheduled.append((handler, args)),
    )
    return panel, scheduled


def test_settings_panel_renders_loaded_values(cache):
    remote = GROUP_SETTINGS_SCHEMA.defaults()
    remote["requireApproval"] = True
    panel, _ = _panel(cache, FakeBackend({"g1": remote}))

    asyncio.run(panel.load())

    assert set(panel.switches) == set(GROUP_SETTINGS_SCHEMA.keys())
    assert panel.switches["requireApproval"].value is True
    assert panel.switches["enableNotifications"].value is True
    assert panel.error_text.value == ""


def test_settings_panel_reports_initial_load_failure(cache):
    backend = FakeBackend()
    backend.fetch_error = BackendError("Network unreachable")
    panel, _ = _panel(cache, backend)

    asyncio.run(panel.load())

    assert "Network unreachable" in panel.error_text.value


def test_toggle_schedules_change_and_failure_snaps_back(cache):
    backend = FakeBackend({"g1": GROUP_SETTINGS_SCHEMA.defaults()})
    panel, scheduled = _panel(cache, backend)
    asyncio.run(panel.load())

    switch = panel.switches["lockBalances"]
    switch.value = True
    panel._on_toggle(SimpleNamespace(control=switch))
    handler, args = scheduled[0]
    assert args == ("lockBalances", True)

    backend.write_error = BackendError("Request timed out")
    asyncio.run(handler(*args))

    assert switch.value is False
    assert not switch.disabled
    assert "Request timed out" in panel.error_text.value


def test_successful_toggle_clears_error(cache):
    backend = FakeBackend({"g1": GROUP_SETTINGS_SCHEMA.defaults()})
    panel, _ = _panel(cache, backend)
    asyncio.run(panel.load())
    panel.error_text.value = "old error"

    asyncio.run(panel.apply_change("hideEmptyAccounts", True))

    assert panel.switches["hideEmptyAccounts"].value is True
    assert panel.error_text.value == ""
    assert panel.status_text.value == ""


def test_sync_button_offered_only_for_finished_jobs():
    tracker = SyncJobTracker()
    requested = []
    badge = SyncBadge(tracker, "w1", on_sync=requested.append)

    tracker.apply(SyncEvent(job_key="w1", status="syncing", progress=10, generation=1))
    assert not badge.sync_button.visible

    tracker.apply(SyncEvent(job_key="w1", status="failed", error="RPC unavailable", generation=1))
    assert badge.sync_button.visible

    badge._on_sync_click(None)
    assert requested == ["w1"]


def test_sync_button_hidden_without_handler():
    tracker = SyncJobTracker()
    badge = SyncBadge(tracker, "w1")

    tracker.apply(SyncEvent(job_key="w1", status="completed", generation=1))

    assert not badge.sync_button.visible


class _Page:
    def __init__(self):
        self.tasks = []
        self.updates = 0

    def run_task(self, handler, *args):
        self.tasks.append((handler, args))

    def update(self):
        self.updates += 1

    def add(self, *controls):
        pass


def test_shell_connection_label_follows_pump():
    shell = AppShell(_Page())
    assert shell.connection_text.value == "Connecting..."

    shell.pump.connected = True
    shell._on_pump_status()
    assert shell.connection_text.value == "Live updates connected"

    shell.pump.connected = False
    shell.pump.last_error = "stream reset"
    shell._on_pump_status()
    assert shell.connection_text.value == "Live updates unavailable: stream reset"


def test_shell_remembers_selected_group():
    page = _Page()
    shell = AppShell(page)

    shell.select_group("g9")

    assert shell.settings_panel.entity_id == "g9"
    assert shell.panel_host.content is shell.settings_panel.view
    assert load_config().last_group_id == "g9"
    assert page.tasks[-1] == (shell.settings_panel.load, ())


def test_shell_sync_request_runs_on_page_loop():
    page = _Page()
    shell = AppShell(page)
    shell.tracker.apply(SyncEvent(job_key="w1", status="completed", generation=1))

    shell.badges["w1"]._on_sync_click(None)

    assert page.tasks[-1] == (shell.request_sync, ("w1",))

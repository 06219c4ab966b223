import asyncio

import pytest

from core.errors import BackendError, BusyError, EntityNotLoadedError, SettingValidationError
from fakes import FakeBackend, settle
from models import GROUP_SETTINGS_SCHEMA, OutcomeKind, SettingsRecord, Source
from services.mutations import OptimisticMutationCoordinator


def _remote(**overrides):
    fields = GROUP_SETTINGS_SCHEMA.defaults()
    fields.update(overrides)
    return fields


def _loaded(cache, backend, revision=4, source=Source.AUTHORITATIVE, **overrides):
    coordinator = OptimisticMutationCoordinator(cache, backend)
    coordinator.install(
        SettingsRecord(entity_id="g1", fields=_remote(**overrides), revision=revision, source=source)
    )
    return coordinator


def test_confirmed_change_takes_server_record(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    outcome = asyncio.run(coordinator.propose("g1", "hideEmptyAccounts", True))

    assert outcome.kind is OutcomeKind.CONFIRMED
    assert outcome.ok
    snapshot = coordinator.snapshot("g1")
    assert snapshot.fields == _remote(hideEmptyAccounts=True)
    assert snapshot.revision == 5
    assert snapshot.source is Source.AUTHORITATIVE
    assert not coordinator.is_busy("g1")
    assert backend.writes == [("g1", "hideEmptyAccounts", True)]


def test_server_values_win_over_proposed_ones(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def write_with_normalisation(entity_id, key, value):
        return _remote(hideEmptyAccounts=True, lockBalances=True)

    backend.write_settings = write_with_normalisation
    asyncio.run(coordinator.propose("g1", "hideEmptyAccounts", True))

    assert coordinator.snapshot("g1").fields["lockBalances"] is True


def test_optimistic_value_visible_while_write_in_flight(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def scenario():
        backend.write_gate = asyncio.Event()
        task = asyncio.create_task(coordinator.propose("g1", "autoArchiveInactive", True))
        await settle()

        during = coordinator.snapshot("g1")
        cached = cache.read("g1")
        busy = coordinator.is_busy("g1")
        pending = coordinator.pending("g1")

        backend.write_gate.set()
        outcome = await task
        return during, cached, busy, pending, outcome

    during, cached, busy, pending, outcome = asyncio.run(scenario())

    assert during.source is Source.OPTIMISTIC
    assert during.fields["autoArchiveInactive"] is True
    assert during.revision == 4
    assert cached.source is Source.OPTIMISTIC
    assert busy
    assert pending.key == "autoArchiveInactive"
    assert pending.previous_snapshot == _remote()
    assert outcome.kind is OutcomeKind.CONFIRMED


def test_failed_write_restores_previous_snapshot_exactly(cache):
    backend = FakeBackend({"g1": _remote()})
    backend.write_error = BackendError("Request timed out")
    coordinator = _loaded(cache, backend, hideEmptyAccounts=True, lockBalances=True)
    before = coordinator.snapshot("g1")

    outcome = asyncio.run(coordinator.propose("g1", "autoArchiveInactive", True))

    assert outcome.kind is OutcomeKind.MUTATION_FAILED
    assert not outcome.ok
    assert "timed out" in outcome.reason
    after = coordinator.snapshot("g1")
    assert after.fields == before.fields
    assert after.revision == before.revision
    assert after.source is Source.AUTHORITATIVE
    assert cache.read("g1").fields == before.fields
    assert not coordinator.is_busy("g1")


def test_rollback_of_cached_record_stays_cached(cache):
    backend = FakeBackend({"g1": _remote()})
    backend.write_error = RuntimeError("boom")
    coordinator = _loaded(cache, backend, source=Source.CACHED)

    outcome = asyncio.run(coordinator.propose("g1", "lockBalances", True))

    assert outcome.record.source is Source.CACHED
    assert coordinator.snapshot("g1").fields["lockBalances"] is False


def test_second_change_is_busy_and_leaves_snapshot_alone(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def scenario():
        backend.write_gate = asyncio.Event()
        first = asyncio.create_task(coordinator.propose("g1", "hideEmptyAccounts", True))
        await settle()
        optimistic = coordinator.snapshot("g1")
        second = await coordinator.propose("g1", "lockBalances", True)
        unchanged = coordinator.snapshot("g1")
        backend.write_gate.set()
        return optimistic, second, unchanged, await first

    optimistic, second, unchanged, first = asyncio.run(scenario())

    assert second.kind is OutcomeKind.BUSY
    assert isinstance(second.error, BusyError)
    assert unchanged is optimistic
    assert first.kind is OutcomeKind.CONFIRMED
    assert backend.writes == [("g1", "hideEmptyAccounts", True)]
    assert coordinator.snapshot("g1").fields["lockBalances"] is False


def test_silent_success_confirms_proposed_value(cache):
    backend = FakeBackend({"g1": _remote()})
    backend.silent_writes = True
    coordinator = _loaded(cache, backend)

    outcome = asyncio.run(coordinator.propose("g1", "enableNotifications", False))

    assert outcome.kind is OutcomeKind.CONFIRMED
    assert outcome.record.fields["enableNotifications"] is False
    assert outcome.record.source is Source.AUTHORITATIVE
    assert outcome.record.revision == 5


def test_cached_revision_never_decreases(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def scenario():
        seen = [cache.read("g1").revision]
        await coordinator.propose("g1", "hideEmptyAccounts", True)
        seen.append(cache.read("g1").revision)
        backend.write_error = BackendError("nope")
        await coordinator.propose("g1", "lockBalances", True)
        seen.append(cache.read("g1").revision)
        backend.write_error = None
        await coordinator.propose("g1", "lockBalances", True)
        seen.append(cache.read("g1").revision)
        return seen

    seen = asyncio.run(scenario())
    assert seen == sorted(seen)
    assert seen[-1] == 6


def test_subscribers_see_optimistic_then_confirmed(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)
    seen = []
    coordinator.subscribers.subscribe(lambda record: seen.append(record.source), key="g1")

    asyncio.run(coordinator.propose("g1", "hideEmptyAccounts", True))

    assert seen == [Source.OPTIMISTIC, Source.AUTHORITATIVE]


def test_cancelled_write_rolls_back(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def scenario():
        backend.write_gate = asyncio.Event()
        task = asyncio.create_task(coordinator.propose("g1", "hideEmptyAccounts", True))
        await settle()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert coordinator.snapshot("g1").fields["hideEmptyAccounts"] is False
    assert not coordinator.is_busy("g1")


def test_unknown_key_and_wrong_type_are_rejected(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    with pytest.raises(SettingValidationError):
        asyncio.run(coordinator.propose("g1", "darkMode", True))
    with pytest.raises(SettingValidationError):
        asyncio.run(coordinator.propose("g1", "hideEmptyAccounts", "yes"))
    assert backend.writes == []


def test_propose_on_unloaded_entity_raises(cache):
    coordinator = OptimisticMutationCoordinator(cache, FakeBackend())

    with pytest.raises(EntityNotLoadedError):
        asyncio.run(coordinator.propose("missing", "hideEmptyAccounts", True))


def test_install_and_drop_refused_while_busy(cache):
    backend = FakeBackend({"g1": _remote()})
    coordinator = _loaded(cache, backend)

    async def scenario():
        backend.write_gate = asyncio.Event()
        task = asyncio.create_task(coordinator.propose("g1", "hideEmptyAccounts", True))
        await settle()
        with pytest.raises(BusyError):
            coordinator.install(SettingsRecord(entity_id="g1", fields=_remote()))
        with pytest.raises(BusyError):
            coordinator.drop("g1")
        backend.write_gate.set()
        await task

    asyncio.run(scenario())
    coordinator.drop("g1")
    assert not coordinator.is_loaded("g1")
    assert cache.read("g1") is None

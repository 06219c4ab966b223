import json

import pytest

from core.errors import SettingValidationError
from models import CachedSettings, GROUP_SETTINGS_SCHEMA, SettingsRecord, Source
from models.settings import NUMBER, SettingField, SettingsSchema
from storage.cache import PersistentCache
from storage.db import session_factory_for


def _record(entity_id="g1", revision=3, source=Source.AUTHORITATIVE, **overrides):
    fields = GROUP_SETTINGS_SCHEMA.defaults()
    fields.update(overrides)
    return SettingsRecord(entity_id=entity_id, fields=fields, revision=revision, source=source)


def test_read_missing_entity_returns_none(cache):
    assert cache.read("unknown") is None


def test_write_then_read_keeps_fields_revision_and_source(cache):
    cache.write("g1", _record(hideEmptyAccounts=True))

    record = cache.read("g1")
    assert record.entity_id == "g1"
    assert record.fields["hideEmptyAccounts"] is True
    assert record.fields["enableNotifications"] is True
    assert record.revision == 3
    assert record.source is Source.AUTHORITATIVE


def test_write_overwrites_existing_row(cache):
    cache.write("g1", _record(revision=1))
    cache.write("g1", _record(revision=2, source=Source.OPTIMISTIC, lockBalances=True))

    record = cache.read("g1")
    assert record.revision == 2
    assert record.source is Source.OPTIMISTIC
    assert record.fields["lockBalances"] is True


def test_delete_removes_row_and_is_idempotent(cache):
    cache.write("g1", _record())
    cache.delete("g1")
    cache.delete("g1")
    assert cache.read("g1") is None


def test_write_rejects_mismatched_entity(cache):
    with pytest.raises(ValueError):
        cache.write("g2", _record(entity_id="g1"))


def test_read_drops_unknown_keys_and_mistyped_values(engine, cache):
    factory = session_factory_for(engine)
    with factory() as session:
        session.add(
            CachedSettings(
                entity_id="g1",
                fields_json=json.dumps(
                    {"hideEmptyAccounts": "yes", "lockBalances": True, "legacyFlag": 1}
                ),
                revision=4,
                source="authoritative",
            )
        )
        session.commit()

    record = cache.read("g1")
    assert set(record.fields) == set(GROUP_SETTINGS_SCHEMA.keys())
    assert record.fields["hideEmptyAccounts"] is False
    assert record.fields["lockBalances"] is True


def test_unreadable_row_reads_as_miss(engine, cache):
    factory = session_factory_for(engine)
    with factory() as session:
        session.add(CachedSettings(entity_id="g1", fields_json="{not json", revision=1))
        session.commit()

    assert cache.read("g1") is None


def test_record_fields_are_read_only():
    record = _record()
    with pytest.raises(TypeError):
        record.fields["hideEmptyAccounts"] = True


def test_schema_validation_rules():
    schema = SettingsSchema(
        [
            SettingField("hideEmptyAccounts", "bool", False),
            SettingField("dustThreshold", NUMBER, 1.0),
        ]
    )
    assert schema.validate_value("dustThreshold", 2) == 2
    assert schema.validate_value("hideEmptyAccounts", True) is True
    with pytest.raises(SettingValidationError):
        schema.validate_value("dustThreshold", True)
    with pytest.raises(SettingValidationError):
        schema.validate_value("hideEmptyAccounts", 1)
    with pytest.raises(SettingValidationError):
        schema.validate_value("nope", True)
    assert schema.coerce(None) == {"hideEmptyAccounts": False, "dustThreshold": 1.0}


def test_custom_schema_cache(engine):
    schema = SettingsSchema([SettingField("dustThreshold", NUMBER, 1.0)])
    cache = PersistentCache(session_factory_for(engine), schema=schema, schema_name="crypto_view")
    cache.write("w1", SettingsRecord(entity_id="w1", fields={"dustThreshold": 5}))

    assert cache.read("w1").fields == {"dustThreshold": 5}

"""Durable per-entity settings cache backed by SQLite."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session

from core.log import get_logger
from models.cached_settings import CachedSettings
from models.settings import GROUP_SETTINGS_SCHEMA, SettingsRecord, SettingsSchema, Source
from storage.db import get_session
from utils.datetime_utils import ensure_utc, utc_now


def _serialise_fields(fields) -> str:
    return json.dumps(dict(fields), ensure_ascii=False, sort_keys=True)


def _deserialise_fields(payload: Optional[str]) -> Optional[Dict[str, Any]]:
    if not payload:
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class PersistentCache:
    """Pure get/set/delete store for :class:`SettingsRecord` values.

    Rows are validated against ``schema`` on the way out, so a corrupt or
    outdated row never yields unknown keys or mistyped values. A row whose
    payload cannot be decoded at all reads as a cache miss.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = get_session,
        *,
        schema: SettingsSchema = GROUP_SETTINGS_SCHEMA,
        schema_name: str = "account_group",
    ):
        self._session_factory = session_factory
        self.schema = schema
        self.schema_name = schema_name
        self.logger = get_logger("cache")

    def read(self, entity_id: str) -> Optional[SettingsRecord]:
        with self._session_factory() as session:
            row = session.get(CachedSettings, entity_id)
            if row is None:
                return None
            raw = _deserialise_fields(row.fields_json)
            if raw is None:
                self.logger.warning("Discarding unreadable cache row for %s", entity_id)
                return None
            try:
                source = Source(row.source)
            except ValueError:
                source = Source.CACHED
            return SettingsRecord(
                entity_id=row.entity_id,
                fields=self.schema.coerce(raw),
                revision=max(0, int(row.revision or 0)),
                source=source,
                updated_at=ensure_utc(row.updated_at) or utc_now(),
            )

    def write(self, entity_id: str, record: SettingsRecord) -> None:
        if record.entity_id != entity_id:
            raise ValueError(f"Record for {record.entity_id!r} cannot be cached as {entity_id!r}")
        fields = self.schema.coerce(record.fields)
        with self._session_factory() as session:
            row = session.get(CachedSettings, entity_id)
            if row is None:
                row = CachedSettings(entity_id=entity_id, schema_name=self.schema_name)
            row.fields_json = _serialise_fields(fields)
            row.revision = record.revision
            row.source = record.source.value
            row.updated_at = record.updated_at
            session.add(row)
            session.commit()

    def delete(self, entity_id: str) -> None:
        with self._session_factory() as session:
            row = session.get(CachedSettings, entity_id)
            if row is not None:
                session.delete(row)
                session.commit()


__all__ = ["PersistentCache"]

"""SQLModel table backing the local settings cache."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

from utils.datetime_utils import utc_now


class CachedSettings(SQLModel, table=True):
    entity_id: str = Field(primary_key=True)
    schema_name: str = Field(default="account_group", index=True)
    fields_json: str = "{}"
    revision: int = Field(default=0)
    source: str = Field(default="cached")
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["CachedSettings"]

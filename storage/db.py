# moneymappr/storage/db.py
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from core.settings import CACHE_DB_PATH

# Ensure SQLModel metadata is populated
import models.cached_settings  # noqa: F401


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Return (and lazily create) the engine for the settings cache."""

    global _engine
    if _engine is None:
        CACHE_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(f"sqlite:///{CACHE_DB_PATH.as_posix()}", echo=False)
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(engine or get_engine())


def get_session() -> Session:
    return Session(get_engine())


def session_factory_for(engine: Engine) -> Callable[[], Session]:
    def factory() -> Session:
        return Session(engine)

    return factory

import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# keep data dir, cache db and log file out of the real user profile
os.environ.setdefault("MONEYMAPPR_DATA_DIR", tempfile.mkdtemp(prefix="moneymappr-tests-"))

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from storage.cache import PersistentCache
from storage.db import session_factory_for


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def cache(engine):
    return PersistentCache(session_factory_for(engine))

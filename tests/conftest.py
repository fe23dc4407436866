"""
Pytest config.

The app reads its settings at import time, so the environment is pinned here
before anything from ``patent_explorer`` is imported: development mode and a
throwaway SQLite file for the embedded store.
"""

import os
import tempfile
from pathlib import Path

import pytest

_DB_PATH = Path(tempfile.mkdtemp(prefix="patent-explorer-tests-")) / "test.db"

os.environ["APP_MODE"] = "development"
os.environ["LOCAL_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["USE_AWS_SECRETS"] = "false"
for _key in ("AI_GATEWAY_API_KEY", "OPENAI_API_KEY", "VALYU_API_KEY", "DAYTONA_API_KEY", "POLAR_ACCESS_TOKEN"):
    os.environ.pop(_key, None)

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402


@pytest.fixture(scope="session")
def sync_engine():
    # Plain sqlite driver on the same file, so fixtures can seed rows without an event loop
    engine = create_engine(f"sqlite:///{_DB_PATH}")
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def fresh_database(sync_engine):
    from patent_explorer.database import Base
    from patent_explorer import models  # noqa: F401

    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
    yield


@pytest.fixture
def db_session(sync_engine):
    with Session(sync_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from patent_explorer.main import app

    with TestClient(app) as test_client:
        yield test_client

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tictactoe_online.config import Settings
from tictactoe_online.store import create_store
from tictactoe_online.ui import app, get_settings, get_store


@pytest.fixture
def store():
    store = create_store("sqlite://")
    yield store
    store.engine.dispose()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: Settings(poll_interval_ms=250)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

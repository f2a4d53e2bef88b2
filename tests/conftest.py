from __future__ import annotations

import pytest

from repstack.config import get_config
from repstack.repository import EntityStore


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("REPSTACK_CONFIG", str(tmp_path / "missing.toml"))
    monkeypatch.setenv("REPSTACK_DATA_DIR", str(tmp_path / "data"))
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def store(tmp_path):
    entity_store = EntityStore.open(tmp_path / "store.db")
    yield entity_store
    entity_store.close()

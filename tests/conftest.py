from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from octetbucket.core.config import get_settings
from octetbucket.main import create_app
from octetbucket.storage.factory import build_blob_store
from octetbucket.storage.memory import InMemoryBlobStore


@pytest.fixture(autouse=True)
def _memory_store_settings(monkeypatch) -> None:
    # Every test gets a fresh in-process store and freshly read settings.
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("BLOB_STORE", "memory")
    monkeypatch.setenv("ENABLE_OTEL_TRACING", "false")
    get_settings.cache_clear()
    build_blob_store.cache_clear()

    yield

    build_blob_store.cache_clear()
    get_settings.cache_clear()


@pytest.fixture()
def store() -> InMemoryBlobStore:
    blob_store = build_blob_store()
    assert isinstance(blob_store, InMemoryBlobStore)
    return blob_store


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app())

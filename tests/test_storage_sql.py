from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from octetbucket.models import Base
from octetbucket.storage.base import BlobNotFoundError, BlobStoreUnavailableError, StoredBlob
from octetbucket.storage.sql import SqlBlobStore


def _record(key: str = "ba7816bf8f01", data: bytes = b"abc") -> StoredBlob:
    return StoredBlob(
        key=key,
        created=datetime(2026, 10, 19, 9, 30, tzinfo=UTC),
        remote_addr="198.51.100.7",
        user_agent="curl/8.5.0",
        file_name="abc.txt",
        content_type="text/plain",
        size=len(data),
        data=data,
    )


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


def test_put_get_exists_delete(session_factory) -> None:
    store = SqlBlobStore(session_factory=session_factory, namespace="Storage")
    assert store.exists(key="ba7816bf8f01") is False

    store.put(record=_record())
    assert store.exists(key="ba7816bf8f01") is True
    assert store.get(key="ba7816bf8f01") == _record()

    store.delete(key="ba7816bf8f01")
    assert store.exists(key="ba7816bf8f01") is False
    with pytest.raises(BlobNotFoundError):
        store.get(key="ba7816bf8f01")


def test_delete_of_missing_key_is_harmless(session_factory) -> None:
    store = SqlBlobStore(session_factory=session_factory, namespace="Storage")
    store.delete(key="000000000000")


def test_put_overwrites_existing_key(session_factory) -> None:
    store = SqlBlobStore(session_factory=session_factory, namespace="Storage")
    store.put(record=_record())
    replacement = _record(data=b"xyz")
    store.put(record=replacement)
    assert store.get(key="ba7816bf8f01").data == b"xyz"


def test_namespaces_are_isolated(session_factory) -> None:
    prod = SqlBlobStore(session_factory=session_factory, namespace="Storage")
    staging = SqlBlobStore(session_factory=session_factory, namespace="Staging")
    prod.put(record=_record())
    assert staging.exists(key="ba7816bf8f01") is False


def test_exists_selects_only_the_key(session_factory) -> None:
    store = SqlBlobStore(session_factory=session_factory, namespace="Storage")
    store.put(record=_record())

    engine = session_factory.kw["bind"]
    statements: list[str] = []

    def _capture(conn, cursor, statement, parameters, context, executemany) -> None:
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _capture)
    try:
        assert store.exists(key="ba7816bf8f01") is True
    finally:
        event.remove(engine, "before_cursor_execute", _capture)

    selects = [s for s in statements if s.lstrip().upper().startswith("SELECT")]
    assert len(selects) == 1
    assert "data" not in selects[0].split("FROM", 1)[0]


def test_unreachable_database_is_unavailable(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'missing-dir' / 'blobs.db'}")
    store = SqlBlobStore(session_factory=sessionmaker(bind=engine), namespace="Storage")
    with pytest.raises(BlobStoreUnavailableError):
        store.exists(key="ba7816bf8f01")


def test_concurrent_writers_of_one_key_both_succeed(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'blobs.db'}"
    writer_engine = create_engine(url)
    rival_engine = create_engine(url)
    Base.metadata.create_all(writer_engine)
    writer = SqlBlobStore(session_factory=sessionmaker(bind=writer_engine), namespace="Storage")
    rival = SqlBlobStore(session_factory=sessionmaker(bind=rival_engine), namespace="Storage")

    ours = _record()
    theirs = replace(ours, remote_addr="203.0.113.200", user_agent="other-client/2.0")
    assert writer.exists(key=ours.key) is False
    assert rival.exists(key=ours.key) is False

    fired: list[str] = []

    # The rival commits its row between our existence check and our insert.
    def _rival_commits_first(conn, cursor, statement, parameters, context, executemany) -> None:
        if not fired and statement.lstrip().upper().startswith("INSERT"):
            fired.append(statement)
            rival.put(record=theirs)

    event.listen(writer_engine, "before_cursor_execute", _rival_commits_first)
    try:
        writer.put(record=ours)
    finally:
        event.remove(writer_engine, "before_cursor_execute", _rival_commits_first)
        writer_engine.dispose()

    assert fired

    try:
        stored = rival.get(key=ours.key)
    finally:
        rival_engine.dispose()
    assert stored == ours

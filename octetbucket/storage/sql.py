from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from octetbucket.models.blob import StoredBlobRow
from octetbucket.storage.base import (
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    BlobStoreUnavailableError,
    StoredBlob,
)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _wrap_db_error(e: SQLAlchemyError) -> BlobStoreError:
    if isinstance(e, (OperationalError, InterfaceError)):
        return BlobStoreUnavailableError(str(e))
    return BlobStoreError(str(e))


_UPSERT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}
_UPDATED_COLUMNS = (
    "created",
    "remote_addr",
    "user_agent",
    "file_name",
    "content_type",
    "size",
    "data",
)


def _upsert(dialect_name: str, values: dict[str, Any]):
    # Concurrent writers of one key race on the primary key; the last one wins.
    insert = _UPSERT_INSERTS.get(dialect_name)
    if insert is None:
        raise BlobStoreError(f"unsupported database dialect: {dialect_name}")
    stmt = insert(StoredBlobRow).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[StoredBlobRow.namespace, StoredBlobRow.key],
        set_={name: stmt.excluded[name] for name in _UPDATED_COLUMNS},
    )


class SqlBlobStore(BlobStore):
    def __init__(self, *, session_factory: sessionmaker, namespace: str) -> None:
        self._session_factory = session_factory
        self._namespace = namespace

    def exists(self, *, key: str) -> bool:
        stmt = (
            select(StoredBlobRow.key)
            .where(StoredBlobRow.namespace == self._namespace, StoredBlobRow.key == key)
            .limit(1)
        )
        try:
            with self._session_factory() as session:
                found = session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _wrap_db_error(e) from e
        return found is not None

    def get(self, *, key: str) -> StoredBlob:
        try:
            with self._session_factory() as session:
                row = session.get(StoredBlobRow, (self._namespace, key))
        except SQLAlchemyError as e:
            raise _wrap_db_error(e) from e
        if row is None:
            raise BlobNotFoundError(f"no such key: {key}")
        return StoredBlob(
            key=row.key,
            created=_as_utc(row.created),
            remote_addr=row.remote_addr,
            user_agent=row.user_agent,
            file_name=row.file_name,
            content_type=row.content_type,
            size=row.size,
            data=row.data,
        )

    def put(self, *, record: StoredBlob) -> None:
        values = {
            "namespace": self._namespace,
            "key": record.key,
            "created": record.created,
            "remote_addr": record.remote_addr,
            "user_agent": record.user_agent,
            "file_name": record.file_name,
            "content_type": record.content_type,
            "size": record.size,
            "data": record.data,
        }
        try:
            with self._session_factory() as session:
                session.execute(_upsert(session.get_bind().dialect.name, values))
                session.commit()
        except SQLAlchemyError as e:
            raise _wrap_db_error(e) from e

    def delete(self, *, key: str) -> None:
        stmt = delete(StoredBlobRow).where(
            StoredBlobRow.namespace == self._namespace, StoredBlobRow.key == key
        )
        try:
            with self._session_factory() as session:
                session.execute(stmt)
                session.commit()
        except SQLAlchemyError as e:
            raise _wrap_db_error(e) from e

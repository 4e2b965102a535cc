from __future__ import annotations

import threading

from octetbucket.storage.base import BlobNotFoundError, BlobStore, StoredBlob


class InMemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, StoredBlob] = {}

    def exists(self, *, key: str) -> bool:
        with self._lock:
            return key in self._records

    def get(self, *, key: str) -> StoredBlob:
        with self._lock:
            record = self._records.get(key)
        if record is None:
            raise BlobNotFoundError(f"no such key: {key}")
        return record

    def put(self, *, record: StoredBlob) -> None:
        with self._lock:
            self._records[record.key] = record

    def delete(self, *, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

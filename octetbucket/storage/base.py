from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class StoredBlob:
    key: str
    created: datetime
    remote_addr: str
    user_agent: str
    file_name: str
    content_type: str
    size: int
    data: bytes

    def describe(self) -> dict[str, object]:
        """Record metadata without the payload, for logs."""
        return {
            "key": self.key,
            "created": self.created.isoformat(),
            "remote_addr": self.remote_addr,
            "user_agent": self.user_agent,
            "file_name": self.file_name,
            "content_type": self.content_type,
            "size": self.size,
        }


class BlobStoreError(RuntimeError):
    pass


class BlobNotFoundError(BlobStoreError):
    pass


class BlobStoreUnavailableError(BlobStoreError):
    """The store client could not be built or could not reach its backend."""


class BlobStore:
    """Key-value capability the blob service needs from a backend.

    ``exists`` must answer from the key alone, without reading the payload.
    ``put`` overwrites; callers decide whether to write at all.
    """

    def exists(self, *, key: str) -> bool:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> StoredBlob:  # pragma: no cover
        raise NotImplementedError

    def put(self, *, record: StoredBlob) -> None:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

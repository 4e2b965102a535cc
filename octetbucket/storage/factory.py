from __future__ import annotations

from functools import lru_cache

from octetbucket.core.config import get_settings
from octetbucket.storage.base import BlobStore, BlobStoreUnavailableError
from octetbucket.storage.memory import InMemoryBlobStore
from octetbucket.storage.s3 import S3BlobStore, S3Config
from octetbucket.storage.sql import SqlBlobStore


# One store per process. A failed build raises and is retried on the next request.
@lru_cache(maxsize=1)
def build_blob_store() -> BlobStore:
    settings = get_settings()
    try:
        if settings.BLOB_STORE == "memory":
            return InMemoryBlobStore()
        if settings.BLOB_STORE == "sql":
            from octetbucket.db.session import get_sessionmaker

            return SqlBlobStore(
                session_factory=get_sessionmaker(),
                namespace=settings.STORE_NAMESPACE,
            )
        if settings.BLOB_STORE == "s3":
            return S3BlobStore(
                S3Config(
                    endpoint_url=settings.S3_ENDPOINT_URL,
                    access_key_id=settings.S3_ACCESS_KEY_ID,
                    secret_access_key=settings.S3_SECRET_ACCESS_KEY,
                    bucket=settings.S3_BUCKET,
                    namespace=settings.STORE_NAMESPACE,
                    region=settings.S3_REGION,
                )
            )
    except Exception as e:
        raise BlobStoreUnavailableError(f"failed to create {settings.BLOB_STORE} store: {e}") from e
    raise BlobStoreUnavailableError(f"Unsupported BLOB_STORE: {settings.BLOB_STORE}")

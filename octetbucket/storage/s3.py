from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from octetbucket.storage.base import (
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    BlobStoreUnavailableError,
    StoredBlob,
)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_UNAVAILABLE_CODES = {
    "403",
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "NoSuchBucket",
    "503",
    "ServiceUnavailable",
    "SlowDown",
}


@dataclass(frozen=True)
class S3Config:
    endpoint_url: str
    access_key_id: str
    secret_access_key: str
    bucket: str
    namespace: str
    region: str | None = None


class S3BlobStore(BlobStore):
    def __init__(self, config: S3Config, *, client: Any | None = None) -> None:
        self._bucket = config.bucket
        self._prefix = config.namespace.strip("/")
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
            )
        self._client = client

    def _object_key(self, key: str) -> str:
        if not self._prefix:
            return key
        return f"{self._prefix}/{key}"

    def exists(self, *, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=self._object_key(key))
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            raise _wrap_client_error(e) from e
        except BotoCoreError as e:
            raise BlobStoreUnavailableError(str(e)) from e
        return True

    def get(self, *, key: str) -> StoredBlob:
        try:
            res = self._client.get_object(Bucket=self._bucket, Key=self._object_key(key))
            body = res["Body"].read()
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise BlobNotFoundError(f"no such key: {key}") from e
            raise _wrap_client_error(e) from e
        except BotoCoreError as e:
            raise BlobStoreUnavailableError(str(e)) from e

        if not isinstance(body, (bytes, bytearray)):
            raise BlobStoreError("S3 returned non-bytes body")
        return _record_from_metadata(key=key, data=bytes(body), metadata=res.get("Metadata") or {})

    def put(self, *, record: StoredBlob) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=self._object_key(record.key),
                Body=record.data,
                Metadata=_metadata_from_record(record),
            )
        except ClientError as e:
            raise _wrap_client_error(e) from e
        except BotoCoreError as e:
            raise BlobStoreUnavailableError(str(e)) from e

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self._object_key(key))
        except ClientError as e:
            raise _wrap_client_error(e) from e
        except BotoCoreError as e:
            raise BlobStoreUnavailableError(str(e)) from e


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


# Credentials, bucket and throttling failures mean the store is unusable.
def _wrap_client_error(e: ClientError) -> BlobStoreError:
    if _error_code(e) in _UNAVAILABLE_CODES:
        return BlobStoreUnavailableError(str(e))
    return BlobStoreError(str(e))


# S3 user metadata must be ASCII, so free-form fields are percent-encoded.
def _metadata_from_record(record: StoredBlob) -> dict[str, str]:
    return {
        "created": record.created.isoformat(),
        "remote-addr": quote(record.remote_addr, safe=""),
        "user-agent": quote(record.user_agent, safe=""),
        "file-name": quote(record.file_name, safe=""),
        "content-type": quote(record.content_type, safe=""),
    }


def _record_from_metadata(*, key: str, data: bytes, metadata: dict[str, str]) -> StoredBlob:
    try:
        created = datetime.fromisoformat(metadata["created"])
    except (KeyError, ValueError) as e:
        raise BlobStoreError(f"object {key} has no valid creation time") from e

    return StoredBlob(
        key=key,
        created=created,
        remote_addr=unquote(metadata.get("remote-addr", "")),
        user_agent=unquote(metadata.get("user-agent", "")),
        file_name=unquote(metadata.get("file-name", "")),
        content_type=unquote(metadata.get("content-type", "")),
        size=len(data),
        data=data,
    )

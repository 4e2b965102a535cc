"""Content-addressed blob operations behind the ``/r/`` resource.

Keys are the first six bytes of the SHA-256 of the payload, so the same bytes
always land on the same record. Checks against the store are deliberately not
atomic with the writes and reads that follow them:

* two identical uploads racing past ``exists`` both write the same value;
* a key deleted between ``exists`` and ``get`` reads as not found.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import HTTPException, status

from octetbucket.core.metrics import observe_blob_operation
from octetbucket.services.audit import log_event
from octetbucket.storage.base import (
    BlobStore,
    BlobStoreError,
    BlobStoreUnavailableError,
    StoredBlob,
)
from octetbucket.storage.factory import build_blob_store

logger = logging.getLogger("octetbucket.api")

RETRIEVAL_PREFIX = "r"
UPLOAD_FIELD = "file"
KEY_DIGEST_BYTES = 6

# Built-in table only; the host's /etc/mime.types must not change responses.
_MIME_TYPES = mimetypes.MimeTypes()
_PASSTHROUGH_MAJOR_TYPES = {"audio", "video", "image"}


@dataclass(frozen=True)
class Upload:
    data: bytes
    file_name: str
    content_type: str


@dataclass(frozen=True)
class StoreResult:
    key: str
    extension: str
    created: bool

    def url(self, *, scheme: str, host: str) -> str:
        return f"{scheme}://{host}/{RETRIEVAL_PREFIX}/{self.key}{self.extension}\n"


def derive_key(data: bytes) -> str:
    return hashlib.sha256(data).digest()[:KEY_DIGEST_BYTES].hex()


def file_extension(name: str) -> str:
    """Suffix of the last path element starting at its last dot, or ``""``."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    idx = base.rfind(".")
    if idx < 0:
        return ""
    return base[idx:]


def upload_extension(*, file_name: str, content_type: str) -> str:
    ext = file_extension(file_name)
    if len(ext) >= 2:
        return ext

    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type:
        guessed = _MIME_TYPES.guess_extension(media_type)
        if guessed:
            return guessed
    return ""


def response_content_type(ext: str) -> str:
    guessed = None
    if ext:
        guessed, _ = _MIME_TYPES.guess_type(f"blob{ext}")
    if not guessed:
        return "application/octet-stream"

    major = guessed.split("/", 1)[0]
    if major == "text":
        return "text/plain"
    if major in _PASSTHROUGH_MAJOR_TYPES:
        return guessed
    return "application/octet-stream"


def parse_retrieval_path(path: str) -> tuple[str, str]:
    """Split ``/r/<key>[.<ext>]`` into ``(key, ext)``."""
    parent, _, leaf = path.rpartition("/")
    if parent.strip("/") != RETRIEVAL_PREFIX:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not leaf:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    ext = file_extension(leaf)
    return leaf[: len(leaf) - len(ext)], ext


def resolve_client_address(
    *, headers: Mapping[str, str], client_ip_header: str, peer: str | None
) -> str:
    addr = (headers.get(client_ip_header) or "").strip()
    if addr:
        return addr

    logger.warning(
        "'%s' header is empty; taking the remote address from 'X-Forwarded-For'.",
        client_ip_header,
    )
    forwarded = (headers.get("x-forwarded-for") or "").split(",", 1)[0].strip()
    if forwarded:
        return forwarded
    return peer or ""


def open_blob_store() -> BlobStore:
    try:
        return build_blob_store()
    except BlobStoreUnavailableError as exc:
        logger.error("Failed to create store client: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc


def store_upload(
    *,
    store: BlobStore,
    upload: Upload,
    remote_addr: str,
    user_agent: str,
    now: datetime | None = None,
) -> StoreResult:
    key = derive_key(upload.data)
    extension = upload_extension(file_name=upload.file_name, content_type=upload.content_type)

    try:
        present = store.exists(key=key)
    except BlobStoreUnavailableError as exc:
        logger.error("Store unreachable while checking %s: %s", key, exc)
        observe_blob_operation(operation="store", outcome="unavailable")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc
    except BlobStoreError as exc:
        logger.error("Failed to check %s before storing: %s", key, exc)
        observe_blob_operation(operation="store", outcome="failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request") from exc

    if present:
        # First writer wins: the stored owner and creation time are kept.
        observe_blob_operation(operation="store", outcome="deduplicated")
        return StoreResult(key=key, extension=extension, created=False)

    record = StoredBlob(
        key=key,
        created=now or datetime.now(UTC),
        remote_addr=remote_addr,
        user_agent=user_agent.strip(),
        file_name=upload.file_name.strip(),
        content_type=upload.content_type.strip(),
        size=len(upload.data),
        data=upload.data,
    )
    try:
        store.put(record=record)
    except BlobStoreUnavailableError as exc:
        logger.error("Store unreachable while storing %s: %s", key, exc)
        observe_blob_operation(operation="store", outcome="unavailable")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc
    except BlobStoreError as exc:
        logger.error("Failed to store the file %s: %s", key, exc)
        observe_blob_operation(operation="store", outcome="failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request") from exc

    observe_blob_operation(operation="store", outcome="stored")
    return StoreResult(key=key, extension=extension, created=True)


def load_blob(*, store: BlobStore, key: str) -> StoredBlob:
    try:
        present = store.exists(key=key)
    except BlobStoreUnavailableError as exc:
        logger.error("Store unreachable while checking %s: %s", key, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc
    except BlobStoreError as exc:
        logger.error("Failed to check %s: %s", key, exc)
        present = False

    if not present:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    try:
        return store.get(key=key)
    except BlobStoreError as exc:
        logger.warning("Failed to get %s from the store: %s", key, exc)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found") from exc


def fetch_blob(*, store: BlobStore, key: str) -> StoredBlob:
    record = load_blob(store=store, key=key)
    observe_blob_operation(operation="fetch", outcome="fetched")
    return record


def delete_blob(*, store: BlobStore, key: str, requester_addr: str) -> StoredBlob:
    record = load_blob(store=store, key=key)

    if requester_addr != record.remote_addr:
        logger.warning(
            "Refusing to delete %s: requester %r is not the uploader", key, requester_addr
        )
        observe_blob_operation(operation="delete", outcome="forbidden")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    try:
        store.delete(key=key)
    except BlobStoreError as exc:
        logger.error("Failed to delete %s (%s): %s", key, record.describe(), exc)
        observe_blob_operation(operation="delete", outcome="failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc

    observe_blob_operation(operation="delete", outcome="deleted")
    log_event(event_type="blob.deleted", event_data=record.describe())
    return record

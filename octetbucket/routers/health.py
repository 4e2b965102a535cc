from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from octetbucket.storage.base import BlobStoreError
from octetbucket.storage.factory import build_blob_store

router = APIRouter(tags=["health"])
logger = logging.getLogger("octetbucket.api")

_READINESS_PROBE_KEY = "000000000000"


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz() -> dict[str, str]:
    try:
        build_blob_store().exists(key=_READINESS_PROBE_KEY)
    except BlobStoreError as e:
        logger.warning("Readiness probe failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="store not ready",
        ) from e
    return {"status": "ready"}

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.responses import Response

from octetbucket.core.config import get_settings
from octetbucket.services.blobs import (
    UPLOAD_FIELD,
    Upload,
    delete_blob,
    fetch_blob,
    open_blob_store,
    parse_retrieval_path,
    resolve_client_address,
    response_content_type,
    store_upload,
)

router = APIRouter(tags=["blobs"])
logger = logging.getLogger("octetbucket.api")

# Every method is routed here so unsupported ones answer 501 rather than 405.
_HANDLED_METHODS = ["GET", "POST", "DELETE", "PUT", "PATCH", "HEAD", "OPTIONS"]


@router.api_route("/{path:path}", methods=_HANDLED_METHODS, include_in_schema=False)
async def blob_resource(request: Request, path: str) -> Response:
    _ = path
    if request.method == "POST":
        return await _store(request)
    if request.method == "GET":
        return await _fetch(request)
    if request.method == "DELETE":
        return await _delete(request)
    raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="Not Implemented")


def _client_address(request: Request) -> str:
    settings = get_settings()
    return resolve_client_address(
        headers=request.headers,
        client_ip_header=settings.CLIENT_IP_HEADER,
        peer=request.client.host if request.client else None,
    )


async def _read_upload(request: Request) -> Upload:
    try:
        async with request.form() as form:
            field = form.get(UPLOAD_FIELD)
            if not isinstance(field, UploadFile):
                raise ValueError(f"no '{UPLOAD_FIELD}' file field in the form")
            data = await field.read()
            return Upload(
                data=data,
                file_name=(field.filename or "").strip(),
                content_type=(field.content_type or "").strip(),
            )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to parse an uploaded file: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request") from exc


async def _store(request: Request) -> Response:
    upload = await _read_upload(request)

    settings = get_settings()
    store = open_blob_store()
    result = await run_in_threadpool(
        store_upload,
        store=store,
        upload=upload,
        remote_addr=_client_address(request),
        user_agent=request.headers.get("user-agent") or "",
    )
    host = request.headers.get("host") or request.url.netloc
    return PlainTextResponse(result.url(scheme=settings.PUBLIC_URL_SCHEME, host=host))


async def _fetch(request: Request) -> Response:
    key, ext = parse_retrieval_path(request.url.path)

    settings = get_settings()
    store = open_blob_store()
    record = await run_in_threadpool(fetch_blob, store=store, key=key)
    return Response(
        content=record.data,
        headers={
            "Content-Type": response_content_type(ext),
            "Cache-Control": f"public, max-age={settings.CACHE_MAX_AGE_SECONDS}",
        },
    )


async def _delete(request: Request) -> Response:
    key, _ext = parse_retrieval_path(request.url.path)

    store = open_blob_store()
    await run_in_threadpool(
        delete_blob,
        store=store,
        key=key,
        requester_addr=_client_address(request),
    )
    return PlainTextResponse("Accepted\n", status_code=status.HTTP_202_ACCEPTED)

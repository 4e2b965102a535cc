from __future__ import annotations

import base64
import json
import logging
import os
import time
from contextvars import ContextVar

from fastapi import Request
from starlette.responses import Response

from octetbucket.core.config import Settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("octetbucket.api")


def new_random_token(*, nbytes: int = 32) -> str:
    raw = os.urandom(nbytes)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:128]
    return new_random_token(nbytes=18)


def apply_security_headers(response: Response, *, settings: Settings) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
) -> None:
    logger.info(
        json.dumps(
            {
                "event": "http.request.completed",
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def now_ts() -> float:
    return time.time()

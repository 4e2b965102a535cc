from __future__ import annotations

import os
import sys
import uuid
from urllib.parse import urlsplit

import httpx


def _assert_status(response: httpx.Response, expected: int, *, label: str) -> None:
    if response.status_code != expected:
        raise RuntimeError(
            f"{label} failed: HTTP {response.status_code} (expected {expected}) body={response.text}"
        )


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8080")
    owner = {"x-forwarded-for": os.environ.get("SMOKE_OWNER_ADDR", "192.0.2.10")}
    stranger = {"x-forwarded-for": "192.0.2.250"}
    payload = f"octetbucket smoke {uuid.uuid4()}\n".encode()

    with httpx.Client(base_url=base_url, timeout=20.0) as client:
        _assert_status(client.get("/healthz"), 200, label="GET /healthz")
        print("ok: GET /healthz")

        _assert_status(client.get("/readyz"), 200, label="GET /readyz")
        print("ok: GET /readyz")

        upload = client.post(
            "/",
            files={"file": ("smoke.txt", payload, "text/plain")},
            headers=owner,
        )
        _assert_status(upload, 200, label="POST /")
        path = urlsplit(upload.text.strip()).path
        print(f"ok: POST / -> {path}")

        fetched = client.get(path)
        _assert_status(fetched, 200, label=f"GET {path}")
        if fetched.content != payload:
            raise RuntimeError(f"GET {path} returned different bytes")
        print(f"ok: GET {path}")

        _assert_status(client.delete(path, headers=stranger), 403, label=f"DELETE {path} (stranger)")
        print(f"ok: DELETE {path} refused for another address")

        _assert_status(client.delete(path, headers=owner), 202, label=f"DELETE {path}")
        _assert_status(client.get(path), 404, label=f"GET {path} after delete")
        print(f"ok: DELETE {path}")

    print(f"smoke complete: {base_url}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

from __future__ import annotations

import mimetypes
import os
import sys
from pathlib import Path

import httpx

DEFAULT_ENDPOINT = "https://octetbucket.appspot.com/upload"
FORM_FIELD = "file"


def upload_file(path: Path, *, endpoint: str, client: httpx.Client) -> bytes:
    blob = path.read_bytes()
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    res = client.post(endpoint, files={FORM_FIELD: (path.name, blob, content_type)})
    return res.content


def main(argv: list[str] | None = None, *, transport: httpx.BaseTransport | None = None) -> int:
    argv = sys.argv if argv is None else argv
    prog = os.path.basename(argv[0]) if argv else "octetbucket-upload"
    if len(argv) != 2:
        print(f"{prog}: missing file operand", file=sys.stderr)
        return 1

    endpoint = os.environ.get("OCTETBUCKET_ENDPOINT", DEFAULT_ENDPOINT)
    try:
        with httpx.Client(timeout=60.0, transport=transport) as client:
            body = upload_file(Path(argv[1]), endpoint=endpoint, client=client)
    except (OSError, UnicodeError, httpx.HTTPError) as exc:
        print(str(exc) or exc.__class__.__name__, file=sys.stderr)
        return 1

    sys.stdout.flush()
    sys.stdout.buffer.write(body)
    sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

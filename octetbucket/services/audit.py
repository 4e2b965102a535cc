from __future__ import annotations

import json
import logging
from typing import Any

audit_logger = logging.getLogger("octetbucket.api.audit")


def log_event(*, event_type: str, event_data: dict[str, Any]) -> None:
    audit_logger.info(
        json.dumps(
            {"event": event_type, **event_data},
            separators=(",", ":"),
            sort_keys=True,
            default=str,
        )
    )

from __future__ import annotations

import logging

import uvicorn

from octetbucket.core.config import get_settings
from octetbucket.core.logging import configure_logging
from octetbucket.main import create_app

logger = logging.getLogger("octetbucket.api")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    logger.info("Listening on %s:%s (store=%s)", settings.HOST, settings.PORT, settings.BLOB_STORE)
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()

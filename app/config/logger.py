import logging
import os
import sys
from typing import Any, Dict, Mapping

_SECRET_HEADERS = ("x-api-key", "authorization", "cookie")


def setup_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    root_logger = logging.getLogger()
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = root_logger.handlers
        logger.setLevel(root_logger.level)
        logger.propagate = False
    # httpx logs every outbound request at INFO; keep it for debugging only.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"radio_story.{name}")


def mask_headers(headers: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        key: ("***" if key.lower() in _SECRET_HEADERS else value)
        for key, value in headers.items()
    }

"""HTTP audit logging middleware and log setup shared by services."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from time import time
from typing import Optional

from fastapi import FastAPI, Request

_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

REQUEST_ID_HEADER = "X-Request-ID"


def _file_handler(filename: str) -> logging.Handler:
    _LOG_DIR.mkdir(exist_ok=True)
    handler = logging.FileHandler(_LOG_DIR / filename)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _build_logger(service_name: str) -> logging.Logger:
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    logger.addHandler(_file_handler(f"{service_name}.log"))
    return logger


def configure_core_logging(level: int = logging.INFO) -> logging.Logger:
    """Route ``booking_core`` module loggers (admission, events, directory) to ``logs/booking_core.log``."""

    logger = logging.getLogger("booking_core")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_file_handler("booking_core.log"))
    return logger


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    logger = _build_logger(service_name)

    @app.middleware("http")
    async def audit_logger(request: Request, call_next):  # type: ignore[override]
        start = time()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        response = await call_next(request)
        duration_ms = (time() - start) * 1000
        client_ip: Optional[str] = None
        if request.client:
            client_ip = request.client.host
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s | status=%s | client=%s | request_id=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            client_ip or "unknown",
            request_id,
            duration_ms,
        )
        return response

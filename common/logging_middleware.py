"""Logging setup and the HTTP audit middleware shared by services."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from time import time
from typing import Optional

from fastapi import FastAPI, Request

_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(level: str = "INFO") -> None:
    """Send the domain loggers (``common.*``) to stderr."""
    domain_logger = logging.getLogger("common")
    domain_logger.setLevel(level.upper())
    if domain_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(_FORMATTER)
    domain_logger.addHandler(handler)


def _build_logger(service_name: str) -> logging.Logger:
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    _LOG_DIR.mkdir(exist_ok=True)
    logger.setLevel(logging.INFO)
    handler = logging.FileHandler(_LOG_DIR / f"{service_name}.log")
    handler.setFormatter(_FORMATTER)
    logger.addHandler(handler)
    return logger


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    logger = _build_logger(service_name)

    @app.middleware("http")
    async def audit_logger(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time()
        response = await call_next(request)
        duration_ms = (time() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        client_ip: Optional[str] = None
        if request.client:
            client_ip = request.client.host
        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            "%s %s | status=%s | client=%s | request=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            client_ip or "unknown",
            request_id,
            duration_ms,
        )
        return response

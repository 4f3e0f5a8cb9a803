"""Logging setup for the analysis service.

Every record is tagged with the current request id and, while an analysis
runs, the id of the design being analyzed.  Production deployments emit
one JSON object per line; development uses a plain single-line format.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER = "powertree.access"
ENGINE_LOGGER = "engine.powertree"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
design_id_var: ContextVar[str] = ContextVar("design_id", default="")

# Record attributes copied into JSON log lines when present.
EXTRA_FIELDS = (
    "method", "path", "status_code", "duration_ms", "client_ip",
    "scenario", "node_count", "edge_count", "has_cycle",
)

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] [%(request_id)s %(design_id)s] %(message)s"


class AnalysisContextFilter(logging.Filter):
    """Stamp request and design ids onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.design_id = design_id_var.get() or "-"
        return True


@contextmanager
def design_context(design_id: str) -> Iterator[None]:
    """Attribute log records emitted inside the block to ``design_id``."""
    token = design_id_var.set(design_id)
    try:
        yield
    finally:
        design_id_var.reset(token)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in ("request_id", "design_id"):
            val = getattr(record, key, "-")
            if val and val != "-":
                log_entry[key] = val

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with X-Request-ID and log its timing."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        token = request_id_var.set(rid)
        try:
            return await self._timed(request, call_next, rid)
        finally:
            request_id_var.reset(token)

    async def _timed(self, request: Request, call_next, rid: str) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        response.headers["X-Request-ID"] = rid
        logging.getLogger(ACCESS_LOGGER).info(
            "%s %s -> %s (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": str(request.url.path),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        return response


def build_handler(json_format: bool = False) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.addFilter(AnalysisContextFilter())
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    json_format: bool = False, level: str = "INFO", engine_level: str = "WARNING"
) -> None:
    """Configure the root logger.

    The engine logs every reconciliation pass at DEBUG, so its logger gets
    its own threshold independent of the service level.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    root.addHandler(build_handler(json_format))

    logging.getLogger(ENGINE_LOGGER).setLevel(engine_level.upper())
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

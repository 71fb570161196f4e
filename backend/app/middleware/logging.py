"""
backend/app/middleware/logging.py

Purpose:
    One JSON access-log line per request for the tips API. Lines carry the
    route name (``latest_tips``, ``create_daily_tips``...) so dashboards can group
    by operation, the raw query for the filterable listings, and whether an
    admin key was presented. The key value itself is never logged.
"""

import hashlib
import json
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger("dailytips.http")

ADMIN_KEY_HEADER = "x-admin-key"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,36}$")


def _request_id(request: Request) -> str:
    # Keep a caller-supplied id when it is a plain token
    incoming = request.headers.get("x-request-id", "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return str(uuid.uuid4())[:8]


def _route_name(request: Request) -> str | None:
    route = request.scope.get("route")
    return getattr(route, "name", None)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "route": _route_name(request),
            "query": request.url.query or None,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "admin": ADMIN_KEY_HEADER in request.headers,
            "client_ip_hash": hashlib.sha256(
                (request.client.host or "").encode()
            ).hexdigest()[:12] if request.client else None,
        }

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, json.dumps(log_data))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

"""
taxdash.security — Security middleware and utilities for the dashboard API.

Provides:
    - check_update_token: shared-secret check for dataset edits (AuthError)
    - RequestIdMiddleware: X-Request-ID on every response, one JSON log line per request
    - SecurityHeadersMiddleware: adds OWASP-recommended response headers
    - RequestSizeLimitMiddleware: caps the size of submission bodies
"""

from __future__ import annotations

import hmac
import json
import logging
import re
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from taxdash.errors import AuthError

logger = logging.getLogger("taxdash.security")


# ---------------------------------------------------------------------------
# Dataset update token
# ---------------------------------------------------------------------------

def check_update_token(expected: str | None, provided: Any) -> None:
    """Verify a submitted dataset update token.

    Raises:
        AuthError: reason "disabled" when no token is configured,
            "missing" when the submission carries none, "invalid" on mismatch.
    """
    if expected is None:
        raise AuthError(
            AuthError.DISABLED,
            "Dataset updates are disabled. Configure DATASET_UPDATE_TOKEN on the server to enable saving.",
        )

    token = str(provided or "").strip()
    if not token:
        raise AuthError(AuthError.MISSING, "Enter the dataset update token to save changes.")

    if not hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8")):
        raise AuthError(AuthError.INVALID, "The provided dataset update token is not valid.")


# ---------------------------------------------------------------------------
# Request-ID and request logging
# ---------------------------------------------------------------------------

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_WRITE_METHODS = frozenset(("POST", "PUT", "PATCH", "DELETE"))


def _request_id(supplied: str | None) -> str:
    """Reuse a well-formed client request ID, otherwise mint one."""
    if supplied and _REQUEST_ID_RE.match(supplied):
        return supplied
    return uuid.uuid4().hex[:16]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with X-Request-ID and log one JSON line per request.

    Dataset writes are flagged in the log line so edits can be traced
    back to the request that made them.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = _request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        started = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        status = response.status_code
        level = logging.ERROR if status >= 500 else logging.WARNING if status >= 400 else logging.INFO
        logger.log(level, json.dumps({
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "dataset_write": request.method in _WRITE_METHODS,
            "latency_ms": round((time.monotonic() - started) * 1000, 1),
        }))
        return response


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Inject OWASP-recommended security headers into every response.
    HSTS is only added when env is 'prod'.

    Cache-Control strategy:
      - /health, /ready, writes → no-store
      - everything else         → no-cache (dataset may be edited at any time)
    """

    _NO_STORE_PATHS = frozenset(("/health", "/ready"))

    def __init__(self, app: Any, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if request.url.path in self._NO_STORE_PATHS or request.method != "GET":
            response.headers["Cache-Control"] = "no-store"
        else:
            response.headers["Cache-Control"] = "no-cache"

        return response


# ---------------------------------------------------------------------------
# Submission size limit
# ---------------------------------------------------------------------------

MAX_BODY_BYTES = 65_536     # a full jurisdiction submission is a few KB


def _json_error(status_code: int, detail: str) -> Response:
    return Response(
        content=json.dumps({"detail": detail}),
        status_code=status_code,
        media_type="application/json",
    )


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject write requests whose declared body exceeds ``max_body_bytes``.

    Only writes carry a body here. A malformed Content-Length is a 400,
    an oversized one a 413.
    """

    def __init__(self, app: Any, *, max_body_bytes: int = MAX_BODY_BYTES) -> None:
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if request.method not in _WRITE_METHODS:
            return await call_next(request)

        declared = request.headers.get("content-length")
        if declared is not None:
            if not (declared.isascii() and declared.isdigit()):
                return _json_error(400, "Invalid Content-Length header")
            if int(declared) > self.max_body_bytes:
                return _json_error(413, "Submission too large")

        return await call_next(request)

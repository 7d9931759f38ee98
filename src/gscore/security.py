"""
gscore.security — The HTTP edge shared by every gscore endpoint.

The API is called cross-origin by the browser client and sits behind a
reverse proxy that terminates TLS, so transport headers such as HSTS are
the proxy's job and are not set here. What this module owns:

- JSON logs on the ``gscore`` logger tree, each line tagged with the request id
- per-client rate tiers (scoring hits GitHub, storing spends gas)
- response headers that keep scores out of caches
- CORS, with credentials only when origins are listed explicitly
- a last-resort 500 handler that never echoes exception text
"""

import logging
import re
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger("gscore.http")


# ─── Structured JSON logging ──────────────────────────────────────

class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = request_id_var.get("")
        return True


def setup_structured_logging(level: str = "INFO") -> logging.Logger:
    """Send the ``gscore`` logger tree to stderr as JSON, one object per line."""
    from pythonjsonlogger.json import JsonFormatter

    root = logging.getLogger("gscore")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        ))
        handler.addFilter(RequestIdFilter())
        root.addHandler(handler)

    return root


# ─── Rate tiers ───────────────────────────────────────────────────

limiter = Limiter(key_func=get_remote_address)

SCORE_RATE = "30/minute"        # three GitHub calls per request
STORE_RATE = "10/minute"        # one signed transaction per request
READ_RATE = "60/minute"         # single contract call or flag lookup
BATCH_RATE = "5/minute"         # up to 100 profiles per request
LEADERBOARD_RATE = "30/minute"  # walks the whole wallet index


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("Rate limit hit on %s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": "60"},
    )


# ─── Request middleware ───────────────────────────────────────────

_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _request_id(header: Optional[str]) -> str:
    """Reuse the caller's X-Request-ID when it is log-safe, otherwise mint one."""
    if header and _REQUEST_ID.match(header):
        return header
    return uuid.uuid4().hex[:12]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag the request, log its outcome and mark API responses uncacheable."""

    async def dispatch(self, request: Request, call_next):
        rid = _request_id(request.headers.get("X-Request-ID"))
        request_id_var.set(rid)

        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                "client": request.client.host if request.client else "",
            },
        )

        response.headers["X-Request-ID"] = rid
        response.headers["X-Content-Type-Options"] = "nosniff"
        if request.url.path.startswith("/api/"):
            # Scores are recomputed per request and lock state changes on store.
            response.headers["Cache-Control"] = "no-store"
        return response


# ─── CORS ─────────────────────────────────────────────────────────

def configure_cors(app, allowed_origins: Optional[list[str]] = None):
    """No configured origins means any origin, without credentials.

    GitHub tokens travel in the JSON body, never in cookies or auth headers,
    so only ``Content-Type`` and ``X-Request-ID`` need to be allowed.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )


# ─── Fallback error handler ───────────────────────────────────────

async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled %s on %s", type(exc).__name__, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def apply_security(app, allowed_origins: Optional[list[str]] = None):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    app.add_middleware(RequestLoggingMiddleware)
    # Outermost, so preflight requests never reach the limiter or the logger.
    configure_cors(app, allowed_origins)

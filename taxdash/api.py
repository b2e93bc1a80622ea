#!/usr/bin/env python3
"""
taxdash.api — Jurisdiction Dashboard API

Serves the flat-file jurisdiction dataset and accepts token-protected
edits. Every request loads the dataset from disk and discards it; there
is no cache between requests.

Endpoints:
    GET  /                        → API metadata
    GET  /jurisdictions           → Dashboard payload (filters, records, rollups, chart)
    GET  /jurisdictions/{country} → One jurisdiction
    GET  /regions                 → Regional rollup
    GET  /chart?n=&sort=          → Ranked chart rows
    POST /jurisdictions           → Create / update / rename a jurisdiction
    GET  /health                  → Health check
    GET  /ready                   → Readiness probe

Error mapping (POST /jurisdictions):
    AuthError        → 401 (403 when updates are disabled)
    ValidationError  → 400
    StorageError     → 500
Every error body carries the submitted values with the token blanked.

Environment variables: see taxdash.config.

Requires: fastapi, uvicorn, slowapi
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.middleware.gzip import GZipMiddleware

from taxdash import __version__
from taxdash.config import Settings, load_settings
from taxdash.constants import CHART_SIZE, DEFAULT_SORT_KEY
from taxdash.errors import AuthError, StorageError, ValidationError
from taxdash.query import (
    FilterCriteria,
    chart_rows,
    filter_records,
    find_record,
    highlights,
    region_options,
    summarize_by_region,
)
from taxdash.schema import JurisdictionRecord
from taxdash.security import (
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from taxdash.store import DatasetStore
from taxdash.submission import default_form_values, handle_submission


# ---------------------------------------------------------------------------
# Logging configuration — structured JSON to stdout
# ---------------------------------------------------------------------------

_log_level = logging.DEBUG if os.getenv("ENV", "prod") == "dev" else logging.INFO
logging.basicConfig(
    level=_log_level,
    format="%(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("taxdash.api")


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------

_REDIS_URL = os.getenv("REDIS_URL", "").strip() or None

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
    storage_uri=_REDIS_URL if _REDIS_URL else "memory://",
    strategy="fixed-window",
)

DEV_ORIGINS: list[str] = [
    "http://localhost:3000",
    "http://localhost:8000",
]


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def _store(request: Request) -> DatasetStore:
    return request.app.state.store


def _settings(request: Request) -> Settings:
    return request.app.state.settings


async def _load_records(request: Request) -> list[JurisdictionRecord]:
    """Load the dataset off the event loop; reads wait on file locks."""
    return await run_in_threadpool(_store(request).load)


def _record_dicts(records: list[JurisdictionRecord]) -> list[dict[str, Any]]:
    return [record.to_json_dict() for record in records]


def _optional_record(record: JurisdictionRecord | None) -> dict[str, Any] | None:
    return record.to_json_dict() if record is not None else None


def _error_response(status_code: int, error: str, message: str, values: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error, "message": message, "values": values},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
async def root(request: Request) -> dict:
    """API metadata."""
    records = await _load_records(request)
    return {
        "name": "taxdash",
        "version": __version__,
        "record_count": len(records),
        "regions": region_options(records),
        "updates_enabled": _settings(request).updates_enabled,
    }


@router.get("/health", include_in_schema=False)
async def health(request: Request) -> JSONResponse:
    """Liveness probe. No file I/O; always 200."""
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "version": __version__},
    )


@router.get("/ready")
@limiter.limit("60/minute")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe, always 200.

    Business-level readiness is the 'ready' field in the body.
    """
    store = _store(request)
    data_present = store.data_present()
    record_count = len(await _load_records(request)) if data_present else 0

    body = {
        "ready": data_present and record_count > 0,
        "status": "healthy" if record_count else "degraded",
        "version": __version__,
        "data_present": data_present,
        "region_file_count": len(store.region_file_paths()),
        "record_count": record_count,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200, content=body)


@router.get("/jurisdictions")
@limiter.limit("60/minute")
async def dashboard(request: Request) -> dict:
    """Dashboard payload.

    Filters apply to ``records`` only; regions, chart and highlights
    always cover the full dataset.
    """
    params = request.query_params
    records = await _load_records(request)
    criteria = FilterCriteria.from_params(params)
    filtered = filter_records(records, criteria)

    detail = find_record(records, params.get("detail"))
    edit_name = params.get("edit") or params.get("country")
    edit_record = find_record(records, edit_name)

    return {
        "filters": criteria.model_dump(),
        "total": len(records),
        "count": len(filtered),
        "records": _record_dicts(filtered),
        "regions": {region: s.to_dict() for region, s in summarize_by_region(records).items()},
        "region_options": region_options(records),
        "chart": chart_rows(records),
        "highlights": {name: _optional_record(r) for name, r in highlights(records).items()},
        "detail": _optional_record(detail),
        "form": default_form_values(edit_record),
        "updates_enabled": _settings(request).updates_enabled,
    }


@router.get("/jurisdictions/{country}")
@limiter.limit("60/minute")
async def get_jurisdiction(country: str, request: Request) -> dict:
    """One jurisdiction, matched case-insensitively."""
    record = find_record(await _load_records(request), country)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Jurisdiction '{country.strip()}' not found.")
    return record.to_json_dict()


@router.get("/regions")
@limiter.limit("60/minute")
async def regions(request: Request) -> dict:
    """Count and averages per region."""
    summaries = summarize_by_region(await _load_records(request))
    return {region: summary.to_dict() for region, summary in summaries.items()}


@router.get("/chart")
@limiter.limit("60/minute")
async def chart(request: Request, n: int = CHART_SIZE, sort: str = DEFAULT_SORT_KEY) -> dict:
    """First ``n`` jurisdictions by ascending ``sort``."""
    records = await _load_records(request)
    try:
        rows = chart_rows(records, n, sort)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"n": n, "sort": sort, "rows": rows}


@router.post("/jurisdictions")
@limiter.limit("20/minute")
async def submit_jurisdiction(request: Request) -> JSONResponse:
    """Create, update or rename a jurisdiction.

    Body: JSON object of form fields including ``token``.
    """
    request_id: str = getattr(request.state, "request_id", "unknown")

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error_response(400, "INVALID_SUBMISSION", "Request body is not valid JSON.", {})
    if not isinstance(body, dict):
        return _error_response(400, "INVALID_SUBMISSION", "Request body must be a JSON object.", {})

    settings = _settings(request)
    try:
        result = await run_in_threadpool(
            handle_submission, body, _store(request), settings.update_token,
        )
    except AuthError as exc:
        logger.warning(json.dumps({
            "event": "submission_rejected",
            "reason": exc.reason,
            "request_id": request_id,
        }))
        status_code = 403 if exc.reason == AuthError.DISABLED else 401
        return _error_response(status_code, "UNAUTHORIZED", exc.message, exc.values)
    except ValidationError as exc:
        return _error_response(400, "INVALID_SUBMISSION", exc.message, exc.values)
    except StorageError as exc:
        logger.error(json.dumps({
            "event": "submission_write_failed",
            "request_id": request_id,
        }))
        return _error_response(500, "STORAGE_ERROR", exc.message, exc.values)

    return JSONResponse(
        status_code=200,
        content={
            "status": "success",
            "message": result.message,
            "country": result.country,
            "values": result.values,
        },
    )


# ---------------------------------------------------------------------------
# App construction
# ---------------------------------------------------------------------------

def _build_docs_kwargs(settings: Settings) -> dict[str, Any]:
    """Determine docs/redoc/openapi URL availability."""
    if not settings.is_dev and not settings.enable_docs:
        return {"docs_url": None, "redoc_url": None, "openapi_url": None}
    return {"docs_url": "/docs", "redoc_url": "/redoc"}


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    store: DatasetStore = app.state.store
    logger.info(json.dumps({
        "event": "startup",
        "env": settings.env,
        "updates_enabled": settings.updates_enabled,
        "docs_enabled": settings.enable_docs or settings.is_dev,
        "rate_limit_backend": "redis" if settings.redis_url else "memory",
    }))
    if not store.data_present():
        logger.warning(json.dumps({
            "event": "startup_degraded",
            "reason": "No dataset found. Run taxdash-build.",
        }))

    yield

    logger.info(json.dumps({"event": "shutdown"}))


async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": "60"},
    )


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(json.dumps({
        "event": "unhandled_exception",
        "exception_type": type(exc).__name__,
        "request_id": request_id,
        "path": request.url.path,
    }))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


def create_app(settings: Settings | None = None, store: DatasetStore | None = None) -> FastAPI:
    """Build the API. ``store`` defaults to the configured data paths."""
    settings = settings or load_settings()
    store = store or DatasetStore(settings.data_dir, settings.legacy_path)

    app = FastAPI(
        title="taxdash API",
        description="Corporate tax & foundation jurisdiction dashboard",
        version=__version__,
        lifespan=_lifespan,
        **_build_docs_kwargs(settings),
    )
    app.state.settings = settings
    app.state.store = store
    app.state.limiter = limiter

    origins = list(DEV_ORIGINS) if settings.is_dev else []
    for origin in settings.allowed_origins:
        if origin not in origins:
            origins.append(origin)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    # Starlette runs middleware in reverse registration order.
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=(settings.env == "prod"))
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    os.environ.setdefault("ENV", "dev")
    print(f"taxdash API {__version__} — serving from {app.state.store.data_dir}")
    uvicorn.run(app, host="0.0.0.0", port=8000)  # noqa: S104

"""
FastAPI application factory for the read-only food API.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_DB_PATH=/data/food.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Structured JSON logging when APP_LOG_FORMAT=json; CORS origins from
APP_CORS_ORIGINS. The exported database is never written through the API.
"""

import json
import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.database import get_db_path, open_read_only
from api.models import ErrorResponse
from api.routes import foods, reference
from utils.config import AppConfig
from utils.query import database_summary

_cfg = AppConfig.from_env()


# ── Logging ───────────────────────────────────────────────────────────────────

_REQUEST_FIELDS = ("request_id", "method", "path", "query", "status", "duration_ms")


class _JsonFormatter(logging.Formatter):
    """One JSON object per line, with the request fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({k: getattr(record, k) for k in _REQUEST_FIELDS if hasattr(record, k)})
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


_logger = logging.getLogger("food_api")


def _configure_logging(log_format: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        _JsonFormatter() if log_format == "json"
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.basicConfig(handlers=[handler], level=logging.INFO, force=True)


def _error_body(status: int, error: str, detail: str) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, status_code=status)
    return JSONResponse(status_code=status, content=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_path = get_db_path()
    if db_path.exists():
        _logger.info("Serving %s", db_path)
    else:
        _logger.warning("No database at %s yet; data endpoints answer 503", db_path)
    yield


def create_app(db_path: Path | None = None) -> FastAPI:
    """Build the API application.

    Args:
        db_path: Database to serve instead of APP_DB_PATH (tests pass the
            session export here).
    """
    if db_path is not None:
        import api.database as _db_mod
        _db_mod._DB_PATH = Path(db_path)

    app = FastAPI(
        title="Food Facts API",
        summary="Read-only API over an exported OpenFoodFacts database.",
        description=(
            "## Food Facts API\n\n"
            "Search and browse products exported from an OpenFoodFacts dump.\n\n"
            "- Nutrient values are **per 100 g**, rounded to two decimals.\n"
            "- `protein_fat_index` is protein divided by fat; absent when fat is 0.\n"
            "- Brand, category and store ids come from the lookup endpoints and "
            "can be combined as filters on `/api/v1/foods`.\n"
        ),
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "foods", "description": "Search, filter, sort and fetch products."},
            {"name": "reference", "description": "Brand, category and store lists."},
            {"name": "meta", "description": "Health check."},
        ],
    )

    # Browser clients only read
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        rid = uuid.uuid4().hex[:8]
        t0 = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        fields = {
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query,
            "status": response.status_code,
            "duration_ms": round((time.monotonic() - t0) * 1000, 1),
        }
        if _cfg.log_format == "json":
            _logger.info("request", extra=fields)
        else:
            _logger.info(" ".join(f"{k}={v}" for k, v in fields.items() if v != ""))
        return response

    @app.exception_handler(ValueError)
    async def bad_request(request: Request, exc: ValueError):
        return _error_body(400, "Bad request", str(exc))

    @app.exception_handler(sqlite3.Error)
    async def database_error(request: Request, exc: sqlite3.Error):
        _logger.error("SQLite error on %s: %s", request.url.path, exc)
        return _error_body(500, "Database error", str(exc))

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Report whether the export is present and has its ``food`` table.

        Returns 200 with row counts, 503 ``no_database`` when the file is
        missing, and 503 ``degraded`` when it cannot be read or is incomplete.
        """
        path = get_db_path()
        if not path.exists():
            return JSONResponse(status_code=503,
                                content={"status": "no_database", "database": str(path)})
        try:
            conn = open_read_only(path)
            try:
                counts = database_summary(conn)
            finally:
                conn.close()
        except sqlite3.Error as e:
            return JSONResponse(status_code=503,
                                content={"status": "degraded", "error": str(e)})
        if counts["food"] is None:
            return JSONResponse(status_code=503,
                                content={"status": "degraded", "error": "food table missing"})
        return {"status": "ok", "database": str(path), **counts}

    for router in (foods.router, reference.router):
        app.include_router(router, prefix="/api/v1")

    return app


_configure_logging(_cfg.log_format)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.app:app", host=_cfg.api_host, port=_cfg.api_port, reload=False)

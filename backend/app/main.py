from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import time
import uuid
from datetime import datetime, timezone
from .api_client import ApiError
from .config import settings
from .importers.product_import import ImportFileError
from .logs import json_log
from .mapping.errors import (
    BatchConversionError,
    InconsistentDirectoryError,
    NotFoundError,
    RefreshFailedError,
    RowConversionError,
)
from .routers.imports import router as imports_router

app = FastAPI(title="Inventory Import API", version=settings.api_version)
STARTED_AT_UTC = datetime.now(timezone.utc)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def _error_content(detail: str, exc: Exception) -> dict:
    content = {"detail": detail}
    if settings.env in {"local", "dev"}:
        content["error"] = str(exc)
    return content


# Map import/mapping failures to 4xx/5xx so clients get actionable responses
# instead of generic 500s.
@app.exception_handler(BatchConversionError)
def _batch_conversion_error(_req: Request, exc: BatchConversionError):
    return JSONResponse(
        status_code=422,
        content={
            "detail": str(exc),
            "errors": [{"row": e.row, "message": e.message} for e in exc.errors],
        },
    )


@app.exception_handler(NotFoundError)
def _not_found(_req: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content={"detail": str(exc), "kind": exc.kind.value, "name": exc.name, "known": exc.known_names},
    )


@app.exception_handler(RowConversionError)
def _row_conversion_error(_req: Request, exc: RowConversionError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ImportFileError)
def _import_file_error(_req: Request, exc: ImportFileError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RefreshFailedError)
@app.exception_handler(InconsistentDirectoryError)
def _directory_unavailable(_req: Request, exc: Exception):
    return JSONResponse(status_code=502, content=_error_content(str(exc), exc))


@app.exception_handler(ApiError)
def _backend_api_error(_req: Request, exc: ApiError):
    # Backend validation errors (4xx) are the caller's problem; anything else is ours.
    status = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: Exception):
    content = {"detail": "validation failed"}
    if settings.env in {"local", "dev"} and hasattr(exc, "errors"):
        content["errors"] = exc.errors()
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    rid = _current_request_id(req)
    json_log(
        "error",
        "http.request.unhandled",
        request_id=rid,
        method=req.method,
        path=req.url.path,
        error=str(exc),
    )
    content = {"detail": "internal error", "request_id": rid}
    if settings.env in {"local", "dev"}:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)

# Correlation id + basic structured request logging.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()
    path = request.url.path
    method = request.method
    client_ip = (request.client.host if request.client else None)

    try:
        response = await call_next(request)
    except Exception as exc:
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "error",
            "http.request.error",
            request_id=rid,
            method=method,
            path=path,
            client_ip=client_ip,
            duration_ms=dur_ms,
            error=str(exc),
        )
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    if path != "/health":
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "info",
            "http.request",
            request_id=rid,
            method=method,
            path=path,
            status_code=response.status_code,
            client_ip=client_ip,
            duration_ms=dur_ms,
        )
    return response

# Dev CORS: the browser client runs on a different port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(imports_router)


@app.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.env,
        "version": settings.api_version,
        "started_at": STARTED_AT_UTC.isoformat(),
        "inventory_api_url": settings.inventory_api_url,
    }

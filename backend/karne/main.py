from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from psycopg import errors as pg_errors
import time
import uuid
from datetime import datetime, timezone
from .routers.customers import router as customers_router
from .routers.suppliers import router as suppliers_router
from .routers.settlements import router as settlements_router
from .routers.sales import router as sales_router
from .routers.purchases import router as purchases_router
from .routers.ledger import router as ledger_router
from .config import settings
from .deps import require_tenant_access
from .db import get_conn, close_pools
from .logs import json_log

app = FastAPI(title="Karne Ledger API", version=settings.api_version)
STARTED_AT_UTC = datetime.now(timezone.utc)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def _db_error_response(status_code: int, detail: str, exc: Exception) -> JSONResponse:
    content = {"detail": detail}
    if settings.env in {"local", "dev"}:
        content["error"] = str(exc)
    return JSONResponse(status_code=status_code, content=content)


# Map constraint/cast errors to 4xx; the schema re-checks what the ledger core
# already validates (positive amounts, advance within total, settlement type).
@app.exception_handler(pg_errors.InvalidTextRepresentation)
def _invalid_text_representation(_req: Request, exc: Exception):
    return _db_error_response(400, "invalid value", exc)


@app.exception_handler(pg_errors.ForeignKeyViolation)
def _foreign_key_violation(_req: Request, exc: Exception):
    return _db_error_response(400, "invalid reference", exc)


@app.exception_handler(pg_errors.UniqueViolation)
def _unique_violation(_req: Request, exc: Exception):
    return _db_error_response(409, "conflict", exc)


@app.exception_handler(pg_errors.NumericValueOutOfRange)
def _numeric_out_of_range(_req: Request, exc: Exception):
    return _db_error_response(400, "value out of range", exc)


@app.exception_handler(pg_errors.CheckViolation)
def _check_violation(_req: Request, exc: Exception):
    return _db_error_response(400, "constraint violation", exc)


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


# Correlation id + structured request logging.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()
    path = request.url.path
    method = request.method
    tenant_id = (request.headers.get("X-Tenant-Id") or "").strip() or None

    try:
        response = await call_next(request)
    except Exception as exc:
        json_log(
            "error",
            "http.request.error",
            request_id=rid,
            method=method,
            path=path,
            tenant_id=tenant_id,
            duration_ms=int((time.time() - started) * 1000),
            error=str(exc),
        )
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    if not path.startswith("/health"):
        json_log(
            "info",
            "http.request",
            request_id=rid,
            method=method,
            path=path,
            tenant_id=tenant_id,
            status_code=response.status_code,
            duration_ms=int((time.time() - started) * 1000),
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(customers_router, dependencies=[Depends(require_tenant_access)])
app.include_router(suppliers_router, dependencies=[Depends(require_tenant_access)])
app.include_router(settlements_router, dependencies=[Depends(require_tenant_access)])
app.include_router(sales_router, dependencies=[Depends(require_tenant_access)])
app.include_router(purchases_router, dependencies=[Depends(require_tenant_access)])
app.include_router(ledger_router, dependencies=[Depends(require_tenant_access)])


def _db_health():
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 AS ok")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, str(exc)


@app.on_event("startup")
def _startup():
    ok, err = _db_health()
    if ok:
        json_log("info", "startup.db_connected", env=settings.env, version=settings.api_version)
    else:
        json_log("warning", "startup.db_probe_failed", env=settings.env, error=err)


@app.on_event("shutdown")
def _shutdown():
    close_pools()


@app.get("/health")
def health(req: Request):
    request_id = _current_request_id(req)
    ok, err = _db_health()
    content = {
        "status": "ok" if ok else "degraded",
        "env": settings.env,
        "db": "ok" if ok else "down",
        "service": "karne-ledger",
        "version": settings.api_version,
        "started_at": STARTED_AT_UTC.isoformat(),
        "request_id": request_id,
    }
    if not ok:
        if settings.env in {"local", "dev"}:
            content["error"] = err
        return JSONResponse(status_code=503, content=content)
    return content


@app.get("/health/live")
def health_live(req: Request):
    return {
        "status": "ok",
        "env": settings.env,
        "service": "karne-ledger",
        "request_id": _current_request_id(req),
    }

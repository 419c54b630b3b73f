import logging
import time
import traceback
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.database import engine
from app.errors import WorkflowError
from app.middleware.logging_config import configure_logging

configure_logging(settings.log_level, settings.log_format)

from app.api.auth import router as auth_router  # noqa: E402
from app.api.complaints import router as complaints_router  # noqa: E402
from app.api.directory import agencies_router, categories_router  # noqa: E402
from app.api.admin_users import router as admin_users_router  # noqa: E402
from app.api.audit import router as audit_router  # noqa: E402
from app.api.metrics import router as metrics_router  # noqa: E402

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Complaint workflow API started (%s)", settings.environment)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="Civic Complaints Workflow",
    description="Authorization-gated complaint intake, triage and resolution for city agencies",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# ── Rate limiting middleware ─────────────────────────────────────────────────
if settings.rate_limit_enabled:
    from app.middleware.rate_limit import RateLimitMiddleware  # noqa: E402

    app.add_middleware(RateLimitMiddleware)

# ── Request context middleware (request ID, timing, security headers) ────────
from app.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from app.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


# ── Error mapping ────────────────────────────────────────────────────────────

_HTTP_ERROR_KINDS = {
    400: "validation_error",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
}


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    body = {"detail": exc.detail, "error": exc.kind}
    if exc.status_code == 404 and exc.kind == "forbidden":
        # Scope denials look exactly like a missing row
        body = {"detail": "Not found", "error": "not_found"}
    if getattr(exc, "reference_count", None) is not None:
        body["reference_count"] = exc.reference_count
    if getattr(exc, "allowed", None) is not None:
        body["allowed"] = exc.allowed
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = _HTTP_ERROR_KINDS.get(exc.status_code, "error")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": kind},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors, "error": "validation_error"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={
                "detail": f"{type(exc).__name__}: {exc}",
                "error": "internal_error",
                "traceback": tb.splitlines()[-5:],
            },
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "error": "internal_error"})


# Register API routers
app.include_router(auth_router)
app.include_router(complaints_router)
app.include_router(agencies_router)
app.include_router(categories_router)
app.include_router(admin_users_router)
app.include_router(audit_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

_health_cache: dict = {}
_health_cache_ts: float = 0.0
HEALTH_CACHE_TTL = 10.0  # seconds


@app.get("/api/health")
async def health_check():
    global _health_cache, _health_cache_ts

    now = time.time()
    if _health_cache and (now - _health_cache_ts) < HEALTH_CACHE_TTL:
        return _health_cache

    components: dict = {}

    # Database
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        components["database"] = {"status": "disconnected", "error": str(exc)}

    # Redis (rate limiter only)
    if settings.rate_limit_enabled:
        try:
            r = aioredis.from_url(settings.redis_url, decode_responses=True)
            await r.ping()
            await r.aclose()
            components["redis"] = {"status": "connected"}
        except Exception as exc:
            components["redis"] = {"status": "disconnected", "error": str(exc)}
    else:
        components["redis"] = {"status": "disabled"}

    db_ok = components["database"]["status"] == "connected"
    redis_ok = components["redis"]["status"] in ("connected", "disabled")

    if db_ok and redis_ok:
        overall = "healthy"
    elif not db_ok:
        overall = "unhealthy"
    else:
        overall = "degraded"

    result = {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }

    _health_cache = result
    _health_cache_ts = now
    return result

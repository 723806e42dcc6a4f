"""FastAPI application."""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import SessionLocal
from .domain_errors import DomainError, ExternalAPIError
from .error_responses import build_error_response, build_external_error_response, error_payload
from .external_auth import TEAM_HEADER
from .routers import (
    analytics,
    api_keys,
    data_collection,
    departments,
    external,
    files,
    orders,
    pause_reasons,
    routings,
    users,
    work_order_operations,
)
from .use_cases.api_keys import record_api_key_usage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

EXTERNAL_PREFIX = "/api/v1/"

# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Backend API for orders, routings and shop-floor work order operations"
)

# Production safety checks.
if settings.ENV.lower() == "production" and settings.SESSION_JWT_SECRET_KEY.startswith("change-me"):
    raise RuntimeError("SESSION_JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type", TEAM_HEADER]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


def _is_external(request: Request) -> bool:
    return request.url.path.startswith(EXTERNAL_PREFIX)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if isinstance(exc, ExternalAPIError) or _is_external(request):
        return build_external_error_response(
            code=exc.code,
            message=exc.message,
            status_code=exc.http_status,
            details=exc.details,
            headers=getattr(exc, "headers", None),
        )
    return build_error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if _is_external(request):
        return build_external_error_response(
            code="HTTP_ERROR" if exc.status_code != 404 else "NOT_FOUND",
            message=message,
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    if _is_external(request):
        return build_external_error_response(
            code="VALIDATION_ERROR",
            message="Invalid request parameters",
            status_code=400,
            details={"validationErrors": errors},
        )
    return JSONResponse(status_code=400, content=error_payload("Invalid request data", errors))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if _is_external(request):
        return build_external_error_response(code="INTERNAL_ERROR", message="Internal server error", status_code=500)
    return JSONResponse(status_code=500, content=error_payload("Internal server error"))


def _store_api_key_usage(**usage) -> None:
    db = SessionLocal()
    try:
        record_api_key_usage(db=db, **usage)
    finally:
        db.close()


@app.middleware("http")
async def api_key_usage_middleware(request: Request, call_next):
    """Log every authenticated /api/v1 request against its API key."""
    if not _is_external(request):
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)
    api_key_id = getattr(request.state, "api_key_id", None)
    if api_key_id is not None:
        await run_in_threadpool(
            _store_api_key_usage,
            api_key_id=api_key_id,
            team_id=request.state.api_team_id,
            endpoint=request.url.path,
            method=request.method,
            status_code=response.status_code,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    return response


# Include routers
app.include_router(orders.router, prefix="/api")
app.include_router(routings.router, prefix="/api")
app.include_router(departments.router, prefix="/api")
app.include_router(work_order_operations.router, prefix="/api")
app.include_router(pause_reasons.router, prefix="/api")
app.include_router(data_collection.router, prefix="/api")
app.include_router(files.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(api_keys.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(external.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": "1.0.0"}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "MES Production API",
        "version": "1.0.0",
        "docs": "/docs"
    }

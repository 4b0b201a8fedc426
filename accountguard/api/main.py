"""
AccountGuard REST API - Main Application.

Usage:
    # Development
    uvicorn accountguard.api.main:app --reload --port 8000

    # Production
    uvicorn accountguard.api.main:app --host 0.0.0.0 --port 8000 --workers 4
"""
import os
import time
import uuid
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .routes import (
    auth_router,
    mfa_router,
    sessions_router,
    security_router,
    privacy_router,
    settings_router,
    health_router,
)
from ..errors import (
    AccountSecurityError,
    AuthRequiredError,
    InputValidationError,
    InternalError,
    MethodNotAllowedError,
    NotFoundError,
    RateLimitExceededError,
)

# Configure logging with request context support
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Add the current request_id to log records."""
    def filter(self, record):
        if not hasattr(record, 'request_id'):
            record.request_id = request_id_var.get()
        return True


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format=LOG_FORMAT,
)
# Filters on a logger don't see records from child loggers; handlers do
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)

API_TITLE = "AccountGuard API"
API_DESCRIPTION = """
**Account security service**

- **Credentials** - registration, login, password and email changes
- **MFA** - TOTP enrollment with single-use backup codes
- **Sessions** - list and revoke signed-in devices
- **Privacy** - data export and account deletion

## Authentication

All endpoints except `/health` and `/auth/register|login` require a bearer token.

1. Register: `POST /auth/register`
2. Login: `POST /auth/login`
3. Use token: `Authorization: Bearer <token>`
"""
API_VERSION = os.getenv("APP_VERSION", "1.0.0")

# Generic status -> error class for routing failures raised by Starlette
_HTTP_ERRORS = {
    401: AuthRequiredError,
    404: NotFoundError,
    405: MethodNotAllowedError,
    429: RateLimitExceededError,
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get()


def error_response(exc: AccountSecurityError, request: Request) -> JSONResponse:
    request_id = _request_id(request)
    headers = dict(exc.headers or {})
    headers["X-Request-ID"] = request_id
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id),
        headers=headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown.
    """
    logger.info(f"Starting AccountGuard API v{API_VERSION}")

    try:
        from ..database.auth_db import get_auth_db
        get_auth_db().init_schema()
    except Exception as e:
        logger.warning(f"Database initialization skipped: {e}")

    yield

    logger.info("Shutting down AccountGuard API")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    allowed_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request tracking and security headers middleware
    @app.middleware("http")
    async def add_request_tracking_and_security(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {e}", exc_info=True)
            raise
        finally:
            request_id_var.reset(token)

        process_time = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"

        # Skip health checks to reduce noise
        if not request.url.path.startswith("/health"):
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} "
                f"-> {response.status_code} ({process_time:.1f}ms)"
            )

        # Security headers
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # Exception handlers
    @app.exception_handler(AccountSecurityError)
    async def account_security_exception_handler(request: Request, exc: AccountSecurityError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(f"{request.method} {request.url.path} failed: {exc.code.value} ({exc.status_code})")
        return error_response(exc, request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = {}
        for error in exc.errors():
            loc = list(error["loc"])
            if len(loc) > 1 and loc[0] in ("body", "query", "path", "header"):
                loc = loc[1:]
            field = ".".join(str(part) for part in loc)
            details.setdefault(field, []).append(error["msg"])

        logger.info(f"Validation failed on {request.url.path}: {sorted(details)}")
        return error_response(InputValidationError(details=details), request)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error_class = _HTTP_ERRORS.get(exc.status_code)
        if error_class is NotFoundError:
            error = NotFoundError("Route", headers=exc.headers)
        elif error_class is not None:
            error = error_class(headers=exc.headers)
        else:
            error = InternalError(str(exc.detail), status_code=exc.status_code, headers=exc.headers)
        return error_response(error, request)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        content = InternalError().to_dict(_request_id(request))
        content["detail"] = str(exc) if os.getenv("APP_ENV") == "development" else None
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers={"X-Request-ID": _request_id(request)},
        )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(mfa_router)
    app.include_router(sessions_router)
    app.include_router(security_router)
    app.include_router(privacy_router)
    app.include_router(settings_router)

    @app.get("/", include_in_schema=False)
    def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "accountguard.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )

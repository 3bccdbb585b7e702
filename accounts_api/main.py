"""
Accounts API

Main FastAPI application with security hardening.
"""

import re
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from accounts_api import __version__
from accounts_api.api.v1.api import api_router
from accounts_api.auth.jwt import TokenIssuer
from accounts_api.core.config import Settings, get_settings
from accounts_api.core.database import Database
from accounts_api.core.errors import ServiceError, validation_messages
from accounts_api.core.logging import configure_logging, get_logger, set_request_id
from accounts_api.schemas.common import ErrorResponse
from accounts_api.services.email import EmailSender

logger = get_logger(__name__)

REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database handle on startup and dispose of it on shutdown."""
    settings: Settings = app.state.settings

    database = Database(settings.database_url, echo=settings.sql_echo)
    await database.create_all()
    app.state.database = database
    logger.info("startup", env=settings.app_env, version=__version__)

    yield

    logger.info("shutdown")
    await database.close()


# =============================================================================
# Security Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id that is logged and echoed back."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID", "")
        if not REQUEST_ID_PATTERN.fullmatch(request_id):
            request_id = secrets.token_urlsafe(8)
        set_request_id(request_id)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


# =============================================================================
# Error Handlers
# =============================================================================

def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details=None,
) -> JSONResponse:
    body = ErrorResponse(
        status="error" if status_code >= 500 else "fail",
        error=error,
        message=message,
        details=details or None,
        request_id=getattr(request.state, "request_id", None),
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the {status, error, message} envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
        )
        return _error_response(request, exc.status_code, exc.error_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        messages = validation_messages(exc.errors())
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "validation_error",
            f"Invalid input data. {'. '.join(messages)}",
            {"errors": messages},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        error = "not_found" if exc.status_code == 404 else "http_error"
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404:
            message = f"Can't find {request.url.path} on this server!"
        return _error_response(request, exc.status_code, error, message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to prevent information leakage."""
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        details = None
        if request.app.state.settings.debug:
            details = {"error_type": type(exc).__name__, "error": str(exc)}
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "server_error",
            "Something went very wrong!",
            details,
        )


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one Settings instance."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="Accounts API",
        version=__version__,
        description="User registration, authentication and account management",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )
    app.state.settings = settings
    app.state.token_issuer = TokenIssuer(settings)
    app.state.email_sender = EmailSender(settings)

    # Order matters - first added = last executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    @app.get("/", tags=["root"])
    def home():
        """Root endpoint."""
        return {
            "message": "Accounts API",
            "version": __version__,
            "environment": settings.app_env,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and monitoring."""
        db_status = "healthy"
        try:
            await request.app.state.database.ping()
        except Exception as e:
            logger.warning("health_database_unreachable", error_type=type(e).__name__)
            db_status = "unhealthy"

        return JSONResponse(
            status_code=status.HTTP_200_OK if db_status == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "healthy" if db_status == "healthy" else "degraded",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": __version__,
                "database": db_status,
            },
        )

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "accounts_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )

import hmac
import logging
import re
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from segment_builder.api.routes.filters import router as filters_router
from segment_builder.api.routes.health import router as health_router
from segment_builder.core.config import AppEnvironment, settings
from segment_builder.core.dependencies import close_visitor_counter
from segment_builder.core.errors import SegmentBuilderError, get_status_code
from segment_builder.core.middleware import RequestSizeLimitMiddleware
from segment_builder.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    get_request_id,
    metrics_endpoint,
)

# Configure structured logging before creating logger
if settings.observability_structured_logs:
    configure_structured_logging(settings.app_log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_SENSITIVE_PATTERNS = [
    r"[/\\][\w/.-]+\.(py|json)",  # File paths
    r"https?://\S+",  # Upstream URLs
]


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize error details to prevent information leakage in production.

    Removes file paths (e.g. of the dimension catalog) and upstream URLs
    (e.g. of the preview backend).
    """
    if settings.app_env != AppEnvironment.PROD:
        # In non-production, return all details for debugging
        return details

    sanitized: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            if any(re.search(p, value, re.IGNORECASE) for p in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_error_details(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_error_details(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_visitor_counter()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Sets up:
    - Structured logging with correlation IDs
    - CORS middleware
    - Observability middleware (metrics, request tracking)
    - Request size limit
    - Exception handlers for domain errors
    - API routers
    - Metrics endpoint for Prometheus scraping
    """
    app = FastAPI(
        title="Segment Builder API",
        description="Audience segment filter validation, serialization and preview",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ============================================================================
    # Observability Middleware
    # ============================================================================

    if settings.observability_enabled:
        app.add_middleware(
            ObservabilityMiddleware,
            request_id_header=settings.observability_request_id_header,
        )

    # ============================================================================
    # CORS Configuration
    # ============================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Reject oversized filter documents before they are parsed
    app.add_middleware(RequestSizeLimitMiddleware, max_size_mb=settings.max_request_size_mb)

    # ============================================================================
    # Exception Handlers
    # ============================================================================

    @app.exception_handler(SegmentBuilderError)
    async def segment_builder_error_handler(
        request: Request, exc: SegmentBuilderError
    ) -> JSONResponse:
        """
        Handle domain-specific errors.

        Maps domain exceptions to HTTP status codes and returns structured
        error responses.
        """
        status_code = get_status_code(exc)

        context = {
            "details": exc.details,
            "path": request.url.path,
            "request_id": get_request_id(),
        }

        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}", extra=context)
        else:
            logger.warning(f"{exc.__class__.__name__}: {exc.message}", extra=context)

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": _sanitize_error_details(exc.details),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """
        Handle FastAPI HTTP exceptions with the same response shape.

        A dict ``detail`` carries ``message`` plus extra details.
        """
        if isinstance(exc.detail, dict):
            details = dict(exc.detail)
            message = details.pop("message", "Request failed")
        else:
            details = {}
            message = exc.detail

        if exc.status_code == status.HTTP_403_FORBIDDEN:
            logger.warning(
                f"Access denied: {message}",
                extra={"security_event": True, "path": request.url.path},
            )
        elif exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code}: {message}", extra={"path": request.url.path})

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTPException",
                "message": message,
                "details": _sanitize_error_details(details),
            },
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all handler for unexpected exceptions.

        Logs the full exception and returns a generic 500 error to the client
        without exposing internal implementation details.
        """
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "request_id": get_request_id()},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    # ============================================================================
    # Router Registration
    # ============================================================================

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(filters_router, prefix=API_PREFIX)

    # ============================================================================
    # Metrics Endpoint (Prometheus) - Token Protected
    # ============================================================================

    async def protected_metrics(request: Request) -> Response:
        """
        Protected Prometheus metrics endpoint.

        Always requires the X-Metrics-Token header.
        """
        expected_token = settings.metrics_token
        if not expected_token:
            logger.error(
                "Metrics endpoint accessed but METRICS_TOKEN not configured",
                extra={"security_event": True, "event_type": "METRICS_NOT_CONFIGURED"},
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
            )

        # Constant-time comparison
        metrics_token = request.headers.get("X-Metrics-Token")
        if not hmac.compare_digest(metrics_token or "", expected_token):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid metrics token",
            )

        return metrics_endpoint()

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()

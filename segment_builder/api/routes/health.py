import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from segment_builder.core.config import settings
from segment_builder.core.dependencies import get_dimension_catalog
from segment_builder.core.errors import SegmentBuilderError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Basic health check endpoint."""
    return {"ok": True}


@router.get("/readyz")
def readyz() -> JSONResponse:
    """Readiness probe: verifies the dimension catalog loads.

    Returns:
      - 200 when the catalog is available
      - 503 when it cannot be loaded
    """
    try:
        catalog = get_dimension_catalog()
    except (OSError, ValueError, SegmentBuilderError) as exc:
        logger.error(f"Readiness check failed: {exc}", exc_info=True)
        # Don't expose internal error details to callers
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "catalog": "unavailable"},
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "ok": True,
            "catalog": "ok",
            "dimensions": len(catalog),
            "preview": "configured" if settings.preview_endpoint_url else "disabled",
        },
    )

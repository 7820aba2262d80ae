"""
FastAPI dependency injection utilities.

Provides the dimension catalog, filter limits and the visitor counter to the
routes. Tests replace any of them through ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from segment_builder.core.config import Settings, load_catalog, settings
from segment_builder.core.errors import PreviewError
from segment_builder.filters.dimensions import DimensionCatalog
from segment_builder.filters.limits import FilterLimits
from segment_builder.services.preview import HttpVisitorCounter, VisitorCounter

logger = logging.getLogger(__name__)

_counter: HttpVisitorCounter | None = None


def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=1)
def get_dimension_catalog() -> DimensionCatalog:
    """Load the configured catalog once per process."""
    return load_catalog(settings)


def get_filter_limits(config: Annotated[Settings, Depends(get_settings)]) -> FilterLimits:
    return config.filter_limits


def get_visitor_counter(config: Annotated[Settings, Depends(get_settings)]) -> VisitorCounter:
    """
    Get or create the HTTP visitor counter singleton.

    Raises:
        PreviewError: If no preview endpoint is configured
    """
    global _counter
    if not config.preview_endpoint_url:
        raise PreviewError(
            "Preview is not configured", details={"setting": "PREVIEW_ENDPOINT_URL"}
        )
    if _counter is None:
        _counter = HttpVisitorCounter(
            config.preview_endpoint_url, timeout_seconds=config.preview_timeout_seconds
        )
    return _counter


async def close_visitor_counter() -> None:
    """Close the visitor counter's HTTP client (for graceful shutdown)."""
    global _counter
    if _counter is not None:
        await _counter.aclose()
        _counter = None


Catalog = Annotated[DimensionCatalog, Depends(get_dimension_catalog)]
Limits = Annotated[FilterLimits, Depends(get_filter_limits)]
Counter = Annotated[VisitorCounter, Depends(get_visitor_counter)]

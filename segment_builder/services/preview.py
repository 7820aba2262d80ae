"""
Visitor-count preview.

While the user edits, the UI shows how many visitors the current filter would
match. Requests are debounced, and because responses can arrive out of order
each request carries a sequence number: only the response for the latest
request may update the displayed state.

Usage:
    counter = HttpVisitorCounter("https://analytics.example.com/api/preview")
    scheduler = PreviewScheduler(counter, debounce_seconds=0.3, catalog=catalog)
    scheduler.schedule(tree, {"period": "30d"})
    ...
    await scheduler.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

import httpx

from segment_builder.core.errors import PreviewError, ValidationError
from segment_builder.core.observability import preview_metrics
from segment_builder.domain.enums import PreviewStatus
from segment_builder.filters.dimensions import DimensionCatalog
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.nodes import FilterTree
from segment_builder.filters.serializer import WireFilter, to_wire_format, wire_fingerprint
from segment_builder.filters.validator import validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewRequest:
    filters: WireFilter
    date_range: Any = None
    sequence: int = 0
    fingerprint: str = ""

    def as_body(self) -> dict[str, Any]:
        return {"filters": self.filters, "date_range": self.date_range}


@dataclass(frozen=True)
class PreviewState:
    """What the preview panel shows."""

    status: PreviewStatus = PreviewStatus.IDLE
    matching_count: int | None = None
    error: str | None = None
    errors: tuple[str, ...] = field(default_factory=tuple)
    sequence: int = 0
    fingerprint: str | None = None


class VisitorCounter(Protocol):
    async def count(self, request: PreviewRequest) -> int: ...


def build_preview_request(
    tree: FilterTree,
    date_range: Any = None,
    catalog: DimensionCatalog | None = None,
    limits: FilterLimits | None = None,
    sequence: int = 0,
) -> PreviewRequest:
    """
    Turn a tree into a preview request.

    Raises:
        ValidationError: If the tree does not validate (invalid filters are never sent)
    """
    result = validate(tree, catalog, limits)
    if not result.valid:
        raise ValidationError("Filter is not valid", details={"errors": list(result.errors)})
    return PreviewRequest(
        filters=to_wire_format(tree),
        date_range=date_range,
        sequence=sequence,
        fingerprint=wire_fingerprint(tree),
    )


class HttpVisitorCounter:
    """
    ``VisitorCounter`` backed by an HTTP endpoint.

    POSTs ``{"filters": ..., "date_range": ...}`` and expects
    ``{"matching_count": <int>}`` back.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._owns_client = client is None

    async def count(self, request: PreviewRequest) -> int:
        try:
            with preview_metrics.track():
                response = await self._client.post(self.url, json=request.as_body())
                response.raise_for_status()
                data = response.json()
                matching_count = data.get("matching_count") if isinstance(data, dict) else None
                if isinstance(matching_count, bool) or not isinstance(matching_count, int):
                    raise PreviewError(
                        "Preview response has no matching_count",
                        details={"body": str(data)[:200]},
                    )
        except httpx.HTTPStatusError as e:
            logger.error(f"Preview request failed: {e.response.status_code}")
            raise PreviewError(
                "Visitor count service returned an error",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Preview request failed: {type(e).__name__}")
            raise PreviewError(
                "Visitor count service is unreachable", details={"error": type(e).__name__}
            ) from e
        except ValueError as e:
            raise PreviewError("Preview response is not valid JSON") from e

        return matching_count

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class PreviewScheduler:
    """
    Debounced, sequence-checked preview requests for one editor.

    ``schedule`` must be called from within a running event loop.
    """

    def __init__(
        self,
        counter: VisitorCounter,
        debounce_seconds: float = 0.3,
        catalog: DimensionCatalog | None = None,
        limits: FilterLimits | None = None,
    ):
        self.counter = counter
        self.debounce_seconds = debounce_seconds
        self.catalog = catalog
        self.limits = limits
        self._sequence = 0
        self._state = PreviewState()
        self._debouncing: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def state(self) -> PreviewState:
        return self._state

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    def schedule(self, tree: FilterTree, date_range: Any = None) -> PreviewState:
        """Request a preview for ``tree``, superseding any pending one."""
        if self._debouncing is not None:
            self._debouncing.cancel()
            self._debouncing = None

        self._sequence += 1
        sequence = self._sequence

        try:
            request = build_preview_request(
                tree, date_range, self.catalog, self.limits, sequence=sequence
            )
        except ValidationError as e:
            self._state = PreviewState(
                status=PreviewStatus.INVALID,
                errors=tuple(e.details.get("errors", ())),
                sequence=sequence,
            )
            return self._state

        self._state = PreviewState(
            status=PreviewStatus.PENDING,
            matching_count=self._state.matching_count,
            sequence=sequence,
            fingerprint=request.fingerprint,
        )
        task = asyncio.create_task(self._run(request))
        self._debouncing = task
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return self._state

    async def wait(self) -> PreviewState:
        """Wait for outstanding requests and return the resulting state."""
        while self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        return self._state

    async def _run(self, request: PreviewRequest) -> None:
        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        if self._debouncing is asyncio.current_task():
            self._debouncing = None
        if request.sequence != self._sequence:
            return

        self._state = replace(self._state, status=PreviewStatus.LOADING)
        try:
            matching_count = await self.counter.count(request)
        except PreviewError as e:
            if self._is_latest(request):
                self._state = replace(self._state, status=PreviewStatus.ERROR, error=e.message)
            return
        except Exception as e:
            logger.exception("Visitor counter failed unexpectedly")
            if self._is_latest(request):
                self._state = replace(self._state, status=PreviewStatus.ERROR, error=str(e))
            return

        if self._is_latest(request):
            self._state = PreviewState(
                status=PreviewStatus.SUCCESS,
                matching_count=matching_count,
                sequence=request.sequence,
                fingerprint=request.fingerprint,
            )

    def _is_latest(self, request: PreviewRequest) -> bool:
        if request.sequence == self._sequence:
            return True
        logger.debug(
            "Discarding stale preview response %d (latest is %d)",
            request.sequence,
            self._sequence,
        )
        return False

    async def aclose(self) -> None:
        """Cancel everything outstanding and reset to idle."""
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._debouncing = None
        self._state = PreviewState(sequence=self._sequence)

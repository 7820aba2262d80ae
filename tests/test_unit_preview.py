"""
Unit tests for the visitor-count preview.

Tests cover:
- Request building from valid and invalid trees
- HttpVisitorCounter against a mocked transport
- Debouncing, superseded requests and out-of-order responses
"""

import asyncio
import json

import httpx
import pytest

from segment_builder.core.errors import PreviewError, ValidationError
from segment_builder.domain.enums import PreviewStatus
from segment_builder.filters.mutations import update_condition
from segment_builder.filters.nodes import create_tree
from segment_builder.filters.serializer import to_wire_format, wire_fingerprint
from segment_builder.services.preview import (
    HttpVisitorCounter,
    PreviewRequest,
    PreviewScheduler,
    build_preview_request,
)

PREVIEW_URL = "https://analytics.test/api/preview"


class FakeCounter:
    """VisitorCounter whose responses can be held back per sequence number."""

    def __init__(self):
        self.requests: list[PreviewRequest] = []
        self.gates: dict[int, asyncio.Event] = {}
        self.results: dict[int, object] = {}

    async def count(self, request: PreviewRequest) -> int:
        self.requests.append(request)
        gate = self.gates.get(request.sequence)
        if gate is not None:
            await gate.wait()
        result = self.results.get(request.sequence, 100 * request.sequence)
        if isinstance(result, Exception):
            raise result
        return result


async def _until(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _counter_with(handler) -> HttpVisitorCounter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpVisitorCounter(PREVIEW_URL, client=client)


# ============================================================================
# Request building
# ============================================================================


@pytest.mark.anyio
async def test_build_preview_request(us_chrome_tree, catalog):
    request = build_preview_request(us_chrome_tree, {"period": "7d"}, catalog, sequence=4)
    assert request.filters == to_wire_format(us_chrome_tree)
    assert request.fingerprint == wire_fingerprint(us_chrome_tree)
    assert request.sequence == 4
    assert request.as_body() == {"filters": request.filters, "date_range": {"period": "7d"}}


@pytest.mark.anyio
async def test_build_preview_request_rejects_invalid_tree(catalog):
    with pytest.raises(ValidationError) as exc_info:
        build_preview_request(create_tree(), catalog=catalog)
    assert exc_info.value.details["errors"] == ["Filter must have at least one condition."]


# ============================================================================
# HttpVisitorCounter
# ============================================================================


class TestHttpVisitorCounter:
    @pytest.mark.anyio
    async def test_posts_filters_and_reads_count(self, us_chrome_tree):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"matching_count": 1234})

        counter = _counter_with(handler)
        request = build_preview_request(us_chrome_tree, {"period": "30d"})
        assert await counter.count(request) == 1234
        assert seen["url"] == PREVIEW_URL
        assert seen["body"] == {
            "filters": [["is", "country", ["US"]], ["is", "browser", ["Chrome"]]],
            "date_range": {"period": "30d"},
        }

    @pytest.mark.anyio
    async def test_error_status(self, us_chrome_tree):
        counter = _counter_with(lambda request: httpx.Response(503))
        with pytest.raises(PreviewError) as exc_info:
            await counter.count(build_preview_request(us_chrome_tree))
        assert exc_info.value.details == {"status_code": 503}

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "body", [{"count": 3}, {"matching_count": "3"}, {"matching_count": True}, [3]]
    )
    async def test_missing_count(self, us_chrome_tree, body):
        counter = _counter_with(lambda request: httpx.Response(200, json=body))
        with pytest.raises(PreviewError, match="no matching_count"):
            await counter.count(build_preview_request(us_chrome_tree))

    @pytest.mark.anyio
    async def test_invalid_json(self, us_chrome_tree):
        counter = _counter_with(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(PreviewError, match="not valid JSON"):
            await counter.count(build_preview_request(us_chrome_tree))

    @pytest.mark.anyio
    async def test_unreachable(self, us_chrome_tree):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        counter = _counter_with(handler)
        with pytest.raises(PreviewError) as exc_info:
            await counter.count(build_preview_request(us_chrome_tree))
        assert exc_info.value.details == {"error": "ConnectError"}

    @pytest.mark.anyio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        await HttpVisitorCounter(PREVIEW_URL, client=client).aclose()
        assert not client.is_closed
        await client.aclose()

        owned = HttpVisitorCounter(PREVIEW_URL)
        await owned.aclose()
        assert owned._client.is_closed


# ============================================================================
# PreviewScheduler
# ============================================================================


class TestPreviewScheduler:
    @pytest.mark.anyio
    async def test_success(self, us_chrome_tree, catalog):
        counter = FakeCounter()
        scheduler = PreviewScheduler(counter, debounce_seconds=0, catalog=catalog)

        state = scheduler.schedule(us_chrome_tree)
        assert state.status is PreviewStatus.PENDING
        assert state.sequence == 1

        state = await scheduler.wait()
        assert state.status is PreviewStatus.SUCCESS
        assert state.matching_count == 100
        assert state.fingerprint == wire_fingerprint(us_chrome_tree)

    @pytest.mark.anyio
    async def test_invalid_tree_is_not_sent(self, catalog):
        counter = FakeCounter()
        scheduler = PreviewScheduler(counter, debounce_seconds=0, catalog=catalog)

        state = scheduler.schedule(create_tree())
        assert state.status is PreviewStatus.INVALID
        assert state.errors == ("Filter must have at least one condition.",)
        await scheduler.wait()
        assert counter.requests == []

    @pytest.mark.anyio
    async def test_debounce_supersedes_pending_request(self, us_chrome_tree):
        counter = FakeCounter()
        scheduler = PreviewScheduler(counter, debounce_seconds=0.05)

        scheduler.schedule(us_chrome_tree)
        changed = update_condition(
            us_chrome_tree, us_chrome_tree.root.children[0].id, {"value": "CA"}
        )
        scheduler.schedule(changed)

        state = await scheduler.wait()
        assert [r.sequence for r in counter.requests] == [2]
        assert state.status is PreviewStatus.SUCCESS
        assert state.fingerprint == wire_fingerprint(changed)

    @pytest.mark.anyio
    async def test_stale_response_is_discarded(self, us_chrome_tree, nested_tree):
        counter = FakeCounter()
        counter.gates = {1: asyncio.Event(), 2: asyncio.Event()}
        scheduler = PreviewScheduler(counter, debounce_seconds=0)

        scheduler.schedule(us_chrome_tree)
        await _until(lambda: len(counter.requests) == 1)
        assert scheduler.state.status is PreviewStatus.LOADING

        scheduler.schedule(nested_tree)
        await _until(lambda: len(counter.requests) == 2)

        # Newer response lands first, the older one afterwards
        counter.gates[2].set()
        await _until(lambda: scheduler.state.status is PreviewStatus.SUCCESS)
        counter.gates[1].set()

        state = await scheduler.wait()
        assert state.matching_count == 200
        assert state.sequence == 2

    @pytest.mark.anyio
    async def test_stale_error_is_discarded(self, us_chrome_tree, nested_tree):
        counter = FakeCounter()
        counter.gates = {1: asyncio.Event()}
        counter.results = {1: PreviewError("Visitor count service is unreachable")}
        scheduler = PreviewScheduler(counter, debounce_seconds=0)

        scheduler.schedule(us_chrome_tree)
        await _until(lambda: len(counter.requests) == 1)
        scheduler.schedule(nested_tree)
        await _until(lambda: scheduler.state.status is PreviewStatus.SUCCESS)
        counter.gates[1].set()

        state = await scheduler.wait()
        assert state.status is PreviewStatus.SUCCESS
        assert state.error is None

    @pytest.mark.anyio
    async def test_error(self, us_chrome_tree):
        counter = FakeCounter()
        counter.results = {1: PreviewError("Visitor count service returned an error")}
        scheduler = PreviewScheduler(counter, debounce_seconds=0)

        scheduler.schedule(us_chrome_tree)
        state = await scheduler.wait()
        assert state.status is PreviewStatus.ERROR
        assert state.error == "Visitor count service returned an error"

    @pytest.mark.anyio
    async def test_aclose_cancels_outstanding(self, us_chrome_tree):
        counter = FakeCounter()
        scheduler = PreviewScheduler(counter, debounce_seconds=10)

        scheduler.schedule(us_chrome_tree)
        await scheduler.aclose()
        assert scheduler.state.status is PreviewStatus.IDLE
        assert scheduler.latest_sequence == 1
        assert counter.requests == []

"""Tests for the classification session state machine."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from foodvision.client.errors import NETWORK_ERROR_MESSAGE
from foodvision.client.examples import ExampleCatalog
from foodvision.client.formatting import LOADING_COLD, LOADING_WARM, format_probability
from foodvision.client.payload import ImageSubmission
from foodvision.client.session import (
    GENERIC_FAILURE_MESSAGE,
    ClassificationSession,
    Error,
    Idle,
    Loading,
    Success,
)
from foodvision.client.transport import ClassificationTransport

if TYPE_CHECKING:
    from collections.abc import Callable

PREDICT_URL = "http://inference.test/predict"
ASSETS_URL = "http://assets.test/examples"
BIRYANI_BODY = {"predictions": [["biryani", 0.91], ["pulao", 0.05]], "processing_time": 0.042}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _submission(name: str = "my photo.jpg") -> ImageSubmission:
    return ImageSubmission(content=b"\xff\xd8\xff\xe0", declared_name=name, mime_type="image/jpeg")


def _make_session(
    predict: Callable[[httpx.Request], object],
    assets: Callable[[httpx.Request], httpx.Response] | None = None,
) -> tuple[ClassificationSession, list[httpx.Request]]:
    """Session whose predict and asset requests are served by the given handlers."""
    predict_calls: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/predict":
            predict_calls.append(request)
            response = predict(request)
            if asyncio.iscoroutine(response):
                response = await response
            return response  # type: ignore[return-value]
        if assets is None:
            return httpx.Response(404)
        return assets(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = ClassificationTransport(client, PREDICT_URL)
    catalog = ExampleCatalog(client, ASSETS_URL)
    return ClassificationSession(transport, catalog=catalog), predict_calls


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=BIRYANI_BODY)


def _unavailable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503)


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def _garbled(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"predictions": []})


def _jpeg_asset(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"\xff\xd8asset", headers={"Content-Type": "image/jpeg"})


# ---------------------------------------------------------------------------
# Submission outcomes
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_starts_idle(self) -> None:
        session, _ = _make_session(_ok)
        assert isinstance(session.state, Idle)
        assert session.state.preview is None
        assert session.is_loading is False

    async def test_biryani_scenario(self) -> None:
        session, calls = _make_session(_ok)

        state = await session.submit(_submission())
        await session.aclose()

        assert isinstance(state, Success)
        assert state.result.top.label == "biryani"
        assert format_probability(state.result.top.probability) == "91.0%"
        assert state.result.processing_time_display == "0.042"
        assert b'filename="my_photo.jpg"' in calls[0].content
        assert isinstance(session.state, Success)
        assert session.state.preview is not None
        assert session.state.preview.startswith("data:image/jpeg;base64,")

    @pytest.mark.parametrize("predict", [_ok, _unavailable, _unreachable, _garbled])
    async def test_exactly_one_of_result_or_error(self, predict: Callable[[httpx.Request], httpx.Response]) -> None:
        session, _ = _make_session(predict)

        state = await session.submit(_submission())

        assert session.is_loading is False
        assert isinstance(state, (Success, Error))
        assert hasattr(state, "result") != hasattr(state, "message")

    async def test_http_error_message(self) -> None:
        session, calls = _make_session(_unavailable)

        state = await session.submit(_submission())

        assert isinstance(state, Error)
        assert state.message == "API error: 503"
        assert len(calls) == 1

    async def test_network_error_message_has_hint(self) -> None:
        session, calls = _make_session(_unreachable)

        state = await session.submit(_submission())

        assert isinstance(state, Error)
        assert state.message == NETWORK_ERROR_MESSAGE
        assert "CORS" in state.message
        assert len(calls) == 2

    async def test_parse_error_message(self) -> None:
        session, _ = _make_session(_garbled)

        state = await session.submit(_submission())

        assert isinstance(state, Error)
        assert state.message.startswith("Failed to classify image")

    async def test_fallback_success_surfaces_no_error(self) -> None:
        def flaky(request: httpx.Request) -> httpx.Response:
            if "cache-control" not in request.headers:
                raise httpx.ConnectError("cors preflight rejected", request=request)
            return httpx.Response(200, json=BIRYANI_BODY)

        session, calls = _make_session(flaky)

        state = await session.submit(_submission())

        assert isinstance(state, Success)
        assert len(calls) == 2

    async def test_unexpected_failure_still_leaves_loading(self) -> None:
        transport = AsyncMock(spec=ClassificationTransport)
        transport.classify.side_effect = RuntimeError("boom")
        session = ClassificationSession(transport)

        state = await session.submit(_submission())
        await session.aclose()

        assert isinstance(state, Error)
        assert state.message == GENERIC_FAILURE_MESSAGE

    async def test_new_submission_after_error_recovers(self) -> None:
        responses = [_unavailable, _ok]
        session, _ = _make_session(lambda request: responses.pop(0)(request))

        assert isinstance(await session.submit(_submission()), Error)
        assert isinstance(await session.submit(_submission()), Success)


# ---------------------------------------------------------------------------
# Re-entrancy guard
# ---------------------------------------------------------------------------


class TestReentrancy:
    async def test_submit_while_loading_is_refused(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, calls = _make_session(slow)

        assert session.start(_submission("first.jpg")) is True
        assert isinstance(session.state, Loading)

        assert session.start(_submission("second.jpg")) is False
        refused = await session.submit(_submission("third.jpg"))
        assert isinstance(refused, Loading)

        release.set()
        await session.aclose()

        assert len(calls) == 1
        assert b'filename="first.jpg"' in calls[0].content
        assert isinstance(session.state, Success)
        assert session.state.result.top.label == "biryani"

    async def test_example_while_loading_is_refused(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, calls = _make_session(slow, _jpeg_asset)

        session.start(_submission())
        assert session.start_example("Biryani") is False

        release.set()
        await session.aclose()
        assert len(calls) == 1


class TestCallerCancellation:
    async def test_cancelled_submit_still_reaches_terminal_state(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, calls = _make_session(slow)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(session.submit(_submission()), timeout=0.05)
        assert isinstance(session.state, Loading)

        release.set()
        await session.aclose()

        assert isinstance(session.state, Success)
        assert isinstance(session.clear(), Idle)
        assert isinstance(await session.submit(_submission()), Success)
        assert len(calls) == 2

    async def test_cancelled_example_submit_still_reaches_terminal_state(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, _ = _make_session(slow, _jpeg_asset)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(session.submit_example("Biryani"), timeout=0.05)

        release.set()
        await session.aclose()

        assert isinstance(session.state, Success)
        assert session.state.preview == f"{ASSETS_URL}/biryani.jpg"


# ---------------------------------------------------------------------------
# Clear
# ---------------------------------------------------------------------------


class TestClear:
    async def test_clear_from_success(self) -> None:
        session, _ = _make_session(_ok)
        await session.submit(_submission())
        await session.aclose()

        state = session.clear()

        assert isinstance(state, Idle)
        assert state.preview is None

    async def test_clear_from_error(self) -> None:
        session, _ = _make_session(_unavailable)
        await session.submit(_submission())

        assert isinstance(session.clear(), Idle)
        assert isinstance(session.clear(), Idle)

    async def test_clear_while_loading_is_ignored(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, _ = _make_session(slow)
        session.start(_submission())

        assert isinstance(session.clear(), Loading)

        release.set()
        await session.aclose()
        assert isinstance(session.state, Success)


# ---------------------------------------------------------------------------
# Preview / transport completion order
# ---------------------------------------------------------------------------


class TestPreviewOrdering:
    async def test_preview_arrives_before_result(self) -> None:
        session_ref: list[ClassificationSession] = []

        async def after_preview(request: httpx.Request) -> httpx.Response:
            for _ in range(500):
                if session_ref[0].state.preview is not None:
                    break
                await asyncio.sleep(0.01)
            return httpx.Response(200, json=BIRYANI_BODY)

        session, _ = _make_session(after_preview)
        session_ref.append(session)

        state = await session.submit(_submission())

        assert isinstance(state, Success)
        assert state.preview is not None
        assert state.result.top.label == "biryani"

    async def test_preview_arrives_after_result(self) -> None:
        decode_gate = threading.Event()

        def gated_data_url(submission: ImageSubmission) -> str:
            decode_gate.wait(timeout=5)
            return "data:image/jpeg;base64,late"

        session, _ = _make_session(_ok)
        with patch("foodvision.client.session._data_url", gated_data_url):
            state = await session.submit(_submission())

            assert isinstance(state, Success)
            assert state.preview is None

            decode_gate.set()
            await session.aclose()

        assert isinstance(session.state, Success)
        assert session.state.result is state.result
        assert session.state.preview == "data:image/jpeg;base64,late"

    async def test_loading_exposes_preview_availability(self) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=BIRYANI_BODY)

        session, _ = _make_session(slow)
        session.start(_submission())
        assert isinstance(session.state, Loading)

        for _ in range(500):
            if session.state.preview is not None:
                break
            await asyncio.sleep(0.01)

        assert isinstance(session.state, Loading)
        assert session.state.preview_available is True

        release.set()
        await session.aclose()

    async def test_late_preview_after_clear_is_dropped(self) -> None:
        decode_gate = threading.Event()

        def gated_data_url(submission: ImageSubmission) -> str:
            decode_gate.wait(timeout=5)
            return "data:image/jpeg;base64,stale"

        session, _ = _make_session(_ok)
        with patch("foodvision.client.session._data_url", gated_data_url):
            await session.submit(_submission())
            session.clear()

            decode_gate.set()
            await session.aclose()

        assert isinstance(session.state, Idle)
        assert session.state.preview is None


# ---------------------------------------------------------------------------
# Examples
# ---------------------------------------------------------------------------


class TestSubmitExample:
    async def test_example_is_classified(self) -> None:
        session, calls = _make_session(_ok, _jpeg_asset)

        state = await session.submit_example("Masala Dosa")

        assert isinstance(state, Success)
        assert state.preview == f"{ASSETS_URL}/masala_dosa.jpg"
        assert b'filename="Masala_Dosa.jpg"' in calls[0].content
        assert b"\xff\xd8asset" in calls[0].content

    async def test_example_enters_loading_with_asset_preview(self) -> None:
        session, _ = _make_session(_ok, _jpeg_asset)

        assert session.start_example("Biryani") is True
        assert isinstance(session.state, Loading)
        assert session.state.preview == f"{ASSETS_URL}/biryani.jpg"

        await session.aclose()
        assert isinstance(session.state, Success)

    async def test_example_fetch_failure_skips_classification(self) -> None:
        session, calls = _make_session(_ok, lambda request: httpx.Response(404))

        state = await session.submit_example("Biryani")

        assert isinstance(state, Error)
        assert state.message == "Failed to load example: Failed to load image: 404"
        assert state.preview == f"{ASSETS_URL}/biryani.jpg"
        assert calls == []

    async def test_unknown_example_raises_and_stays_idle(self) -> None:
        session, _ = _make_session(_ok, _jpeg_asset)

        with pytest.raises(KeyError):
            await session.submit_example("Pav Bhaji")

        assert isinstance(session.state, Idle)

    async def test_missing_catalog_raises(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(_ok))
        session = ClassificationSession(ClassificationTransport(client, PREDICT_URL))

        with pytest.raises(RuntimeError, match="catalog"):
            session.start_example("Biryani")
        await client.aclose()


# ---------------------------------------------------------------------------
# Warmup copy
# ---------------------------------------------------------------------------


class TestLoadingMessage:
    async def test_message_follows_warmup_status(self) -> None:
        session, _ = _make_session(_ok)

        assert session.loading_message == LOADING_COLD
        session.warmup.completed = True
        assert session.loading_message == LOADING_WARM

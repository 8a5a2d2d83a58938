"""Primary/fallback request protocol against the inference endpoint.

Attempt A uses the pooled connection and is shielded from cancellation of the
caller so it survives teardown of whatever started it. Only when A fails at
the transport level (no HTTP response at all) is attempt B made, once, with a
narrower option set: cross-origin headers, caching disabled and a fresh
connection. Any HTTP response, from either attempt, ends the protocol.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from foodvision.client.errors import HttpError, NetworkError
from foodvision.client.interpreter import interpret

if TYPE_CHECKING:
    from foodvision.client.interpreter import ClassificationResult
    from foodvision.client.payload import UploadPayload
    from foodvision.config import Settings

logger = logging.getLogger(__name__)

DETAIL_EXCERPT_LENGTH = 200


@dataclass(frozen=True)
class AttemptOptions:
    """Request options for one attempt of the protocol."""

    name: str
    survive_teardown: bool
    cross_origin: bool = False
    no_store: bool = False


PRIMARY = AttemptOptions(name="primary", survive_teardown=True)
FALLBACK = AttemptOptions(name="fallback", survive_teardown=False, cross_origin=True, no_store=True)


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:DETAIL_EXCERPT_LENGTH] or None
    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            value = body.get(key)
            if value:
                return str(value)
    return None


class ClassificationTransport:
    """Sends upload payloads to ``/predict`` and returns interpreted results."""

    def __init__(self, client: httpx.AsyncClient, predict_url: str, origin: str | None = None) -> None:
        self._client = client
        self._predict_url = predict_url
        self._origin = origin
        self._detached: set[asyncio.Task[httpx.Response]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> ClassificationTransport:
        """Build a transport, creating the HTTP client when none is supplied."""
        if client is None:
            client = httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout))
        return cls(client, settings.predict_url, origin=settings.origin)

    # -- Public API ---------------------------------------------------------

    async def classify(self, payload: UploadPayload) -> ClassificationResult:
        """Run the primary/fallback protocol for one payload.

        Raises:
            NetworkError: If neither attempt received an HTTP response.
            HttpError: If the response status is not 2xx.
            ParseError: If a 2xx body does not match the expected shape.
        """
        try:
            response = await self.send(payload, PRIMARY)
        except httpx.TransportError as primary_exc:
            logger.warning("Primary request failed (%r); retrying with fallback options", primary_exc)
            try:
                response = await self.send(payload, FALLBACK)
            except httpx.TransportError as fallback_exc:
                logger.error("Both primary and fallback requests failed")
                raise NetworkError(fallback_exc, primary_cause=primary_exc) from fallback_exc

        if not response.is_success:
            raise HttpError(response.status_code, _error_detail(response))

        result = interpret(response.content)
        logger.info(
            "Classified %s: %d labels, top=%s, server time %.3fs",
            payload.filename,
            len(result.predictions),
            result.top.label,
            result.processing_time_seconds,
        )
        return result

    async def send(self, payload: UploadPayload, options: AttemptOptions) -> httpx.Response:
        """Issue a single POST of ``payload``; transport failures propagate as-is."""
        request = self._client.build_request(
            "POST",
            self._predict_url,
            files=payload.as_files(),
            headers=self._headers(options),
        )
        if not options.survive_teardown:
            return await self._client.send(request)

        task = asyncio.create_task(self._client.send(request), name=f"predict-{options.name}")
        self._detached.add(task)
        task.add_done_callback(self._release)
        return await asyncio.shield(task)

    async def aclose(self, timeout: float | None = None) -> None:
        """Let shielded requests finish, then close the HTTP client.

        With ``timeout`` set, requests still pending after that many seconds
        are cancelled instead of awaited.
        """
        if self._detached:
            _, pending = await asyncio.wait(set(self._detached), timeout=timeout)
            if pending:
                logger.info("Abandoning %d pending request(s) at shutdown", len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        await self._client.aclose()

    # -- Internal -----------------------------------------------------------

    def _release(self, task: asyncio.Task[httpx.Response]) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Detached %s ended with %r", task.get_name(), task.exception())

    def _headers(self, options: AttemptOptions) -> dict[str, str]:
        headers: dict[str, str] = {}
        if options.cross_origin and self._origin:
            headers["Origin"] = self._origin
        if options.no_store:
            headers["Cache-Control"] = "no-store"
            headers["Pragma"] = "no-cache"
        if not options.survive_teardown:
            headers["Connection"] = "close"
        return headers

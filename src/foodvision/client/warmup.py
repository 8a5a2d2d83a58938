"""Best-effort warmup request against a cold inference service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from foodvision.client.payload import UploadPayload
from foodvision.client.transport import PRIMARY

if TYPE_CHECKING:
    from foodvision.client.transport import ClassificationTransport

logger = logging.getLogger(__name__)

WARMUP_PAYLOAD = UploadPayload(filename="warmup.jpg", content=b"", mime_type="image/jpeg")


@dataclass
class WarmupStatus:
    """Set once the warmup request has settled, whatever its outcome."""

    completed: bool = False


class WarmupProber:
    """Fires one discardable request at startup and records when it settles."""

    def __init__(self, transport: ClassificationTransport, status: WarmupStatus) -> None:
        self._transport = transport
        self._status = status
        self._task: asyncio.Task[None] | None = None

    @property
    def started(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Spawn the detached warmup task. Later calls do nothing."""
        if self._task is not None:
            logger.debug("Warmup already started; ignoring")
            return
        self._task = asyncio.create_task(self._probe(), name="warmup")

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` seconds for the warmup to settle."""
        if self._task is None:
            return self._status.completed
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)

    async def _probe(self) -> None:
        try:
            response = await self._transport.send(WARMUP_PAYLOAD, PRIMARY)
            logger.debug("Warmup answered with HTTP %s", response.status_code)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Warmup request failed: %r", exc)
        finally:
            self._status.completed = True
            logger.info("Warmup settled")

"""Session state machine: the single source of truth for what the UI shows.

States::

    Idle -> Loading -> Success | Error -> (clear) -> Idle

Only one classification may be in flight; submissions made while loading are
refused, never cancelled or queued. For each submission the preview decode and
the classification run as independent tasks. The terminal transition waits on
the classification alone; the preview lands in whichever state is current when
it finishes.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, ClassVar

from foodvision.client.errors import ClassificationError, ExampleFetchError
from foodvision.client.formatting import loading_message
from foodvision.client.payload import normalize
from foodvision.client.warmup import WarmupStatus

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

    from foodvision.client.examples import ExampleCatalog
    from foodvision.client.interpreter import ClassificationResult
    from foodvision.client.payload import ImageSubmission
    from foodvision.client.transport import ClassificationTransport

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Failed to classify image"


@dataclass(frozen=True)
class Idle:
    status: ClassVar[str] = "idle"
    preview: ClassVar[None] = None


@dataclass(frozen=True)
class Loading:
    status: ClassVar[str] = "loading"
    preview: str | None = None

    @property
    def preview_available(self) -> bool:
        return self.preview is not None


@dataclass(frozen=True)
class Success:
    status: ClassVar[str] = "success"
    result: ClassificationResult
    preview: str | None = None


@dataclass(frozen=True)
class Error:
    status: ClassVar[str] = "error"
    message: str
    preview: str | None = None


SessionState = Idle | Loading | Success | Error


def _data_url(submission: ImageSubmission) -> str:
    encoded = base64.b64encode(submission.content).decode("ascii")
    return f"data:{submission.mime_type};base64,{encoded}"


class ClassificationSession:
    """Owns ``SessionState`` and the warmup flag; fed by transport and catalog."""

    def __init__(
        self,
        transport: ClassificationTransport,
        catalog: ExampleCatalog | None = None,
        warmup: WarmupStatus | None = None,
    ) -> None:
        self._transport = transport
        self._catalog = catalog
        self._warmup = warmup if warmup is not None else WarmupStatus()
        self._state: SessionState = Idle()
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()

    # -- Observation --------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def warmup(self) -> WarmupStatus:
        return self._warmup

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, Loading)

    @property
    def loading_message(self) -> str:
        return loading_message(self._warmup.completed)

    # -- Entry points -------------------------------------------------------

    async def submit(self, submission: ImageSubmission) -> SessionState:
        """Classify a submission and return the terminal state.

        While another classification is loading the call is refused and the
        current state is returned unchanged. Cancelling the caller does not
        cancel the classification; the session still reaches a terminal state.
        """
        generation = self._begin()
        if generation is None:
            return self._state
        self._spawn(self._render_preview(generation, submission))
        await asyncio.shield(self._spawn(self._classify(submission)))
        return self._state

    def start(self, submission: ImageSubmission) -> bool:
        """Like :meth:`submit`, but run the classification in the background."""
        generation = self._begin()
        if generation is None:
            return False
        self._spawn(self._render_preview(generation, submission))
        self._spawn(self._classify(submission))
        return True

    async def submit_example(self, name: str) -> SessionState:
        """Fetch a catalog example and classify it.

        Raises:
            KeyError: If ``name`` is not in the catalog.
        """
        generation = self._begin(preview=self._require_catalog().url_for(name))
        if generation is None:
            return self._state
        await asyncio.shield(self._spawn(self._classify_example(name)))
        return self._state

    def start_example(self, name: str) -> bool:
        generation = self._begin(preview=self._require_catalog().url_for(name))
        if generation is None:
            return False
        self._spawn(self._classify_example(name))
        return True

    def clear(self) -> SessionState:
        """Return to ``Idle`` from any settled state. Ignored while loading."""
        if isinstance(self._state, Loading):
            logger.info("Clear ignored: a classification is in flight")
            return self._state
        # Late previews from the cleared submission are dropped.
        self._generation += 1
        self._state = Idle()
        return self._state

    async def aclose(self) -> None:
        """Wait for outstanding preview and classification tasks."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- Transitions --------------------------------------------------------

    def _begin(self, preview: str | None = None) -> int | None:
        if isinstance(self._state, Loading):
            logger.warning("Submission refused: a classification is already in flight")
            return None
        self._generation += 1
        self._state = Loading(preview=preview)
        return self._generation

    def _finish(self, outcome: Success | Error) -> None:
        self._state = replace(outcome, preview=self._state.preview)

    def _fail(self, exc: Exception) -> None:
        if isinstance(exc, ClassificationError):
            logger.error("Classification failed: %s", exc)
            self._finish(Error(message=exc.user_message))
        else:
            logger.exception("Unexpected error during classification")
            self._finish(Error(message=GENERIC_FAILURE_MESSAGE))

    async def _classify(self, submission: ImageSubmission) -> None:
        try:
            result = await self._transport.classify(normalize(submission))
        except Exception as exc:  # noqa: BLE001
            self._fail(exc)
        else:
            self._finish(Success(result=result))

    async def _classify_example(self, name: str) -> None:
        try:
            submission = await self._require_catalog().fetch(name)
        except ExampleFetchError as exc:
            logger.error("Example %s could not be loaded: %s", name, exc.reason)
            self._finish(Error(message=exc.user_message))
            return
        except Exception as exc:  # noqa: BLE001
            self._fail(exc)
            return
        await self._classify(submission)

    async def _render_preview(self, generation: int, submission: ImageSubmission) -> None:
        preview = await asyncio.to_thread(_data_url, submission)
        if generation != self._generation or isinstance(self._state, Idle):
            logger.debug("Dropping preview of a superseded submission")
            return
        self._state = replace(self._state, preview=preview)

    # -- Internal -----------------------------------------------------------

    def _require_catalog(self) -> ExampleCatalog:
        if self._catalog is None:
            raise RuntimeError("No example catalog configured")
        return self._catalog

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


__all__ = [
    "ClassificationSession",
    "Error",
    "Idle",
    "Loading",
    "SessionState",
    "Success",
]

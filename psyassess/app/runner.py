"""Background event loop that keeps an assessment alive across Streamlit reruns."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from psyassess.data.api_client import AsyncAssessmentApi
from psyassess.models.capture import CaptureManager, MediaDevice
from psyassess.models.content import ContentLoader, LoadedContent
from psyassess.models.session import SessionSequencer
from psyassess.models.transcription import SpeechRecognizer, TranscriptionManager

logger = logging.getLogger(__name__)


class SessionRunner:
    """Owns one asyncio loop on a daemon thread.

    Streamlit executes the page script on a fresh thread for every
    interaction, while the controller needs a single long-lived loop for its
    ticker, recorder and recognizer callbacks. Page code hands coroutines to
    this loop and blocks on the result.
    """

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="assessment-loop", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = 5.0) -> Any:
        """Run a plain function on the loop thread, e.g. to read a consistent snapshot."""

        async def _invoke() -> Any:
            return fn(*args)

        return self.run(_invoke(), timeout=timeout)

    def close(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        if self._thread.is_alive():
            logger.warning("Assessment loop thread did not stop within 5s")
        else:
            self._loop.close()


@dataclass
class AssessmentContext:
    runner: SessionRunner
    loader: ContentLoader
    content: Optional[LoadedContent] = None
    sequencer: Optional[SessionSequencer] = None


def create_context(api: Optional[AsyncAssessmentApi] = None) -> AssessmentContext:
    return AssessmentContext(runner=SessionRunner(), loader=ContentLoader(api or AsyncAssessmentApi()))


def build_sequencer(
    context: AssessmentContext,
    *,
    username: str,
    job_id: int,
    company_id: int,
    device: MediaDevice,
    recognizer: Optional[SpeechRecognizer],
) -> SessionSequencer:
    if context.content is None:
        raise RuntimeError("Scenario content must be loaded before building a session")

    def _build() -> SessionSequencer:
        return SessionSequencer(
            context.loader.api,
            context.content.scenarios,
            username=username,
            job_id=job_id,
            company_id=company_id,
            department=context.content.department,
            capture=CaptureManager(device),
            transcription=TranscriptionManager(recognizer),
        )

    # Built on the loop thread so its lock belongs to that loop.
    context.sequencer = context.runner.call(_build)
    return context.sequencer

"""Continuous speech-to-text feeding the current answer buffer.

Recognition runs for the whole session, independent of question
boundaries. Only results the recognizer marks as final are committed to the
buffer; interim guesses are dropped. The session sequencer, not this
manager, reads and clears the buffer when it moves to the next question.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from psyassess.models.errors import RecognitionUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    is_final: bool
    confidence: Optional[float] = None


@dataclass
class RecognitionCallbacks:
    on_start: Callable[[], None]
    on_result: Callable[[int, Sequence[RecognitionResult]], None]
    on_error: Callable[[str], None]
    on_end: Callable[[], None]


class SpeechRecognizer(Protocol):
    def start(self, callbacks: RecognitionCallbacks, *, continuous: bool, interim_results: bool) -> None: ...

    def stop(self) -> None: ...


class TranscriptionManager:
    def __init__(self, recognizer: Optional[SpeechRecognizer]) -> None:
        self._recognizer = recognizer
        self._buffer = ""
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self.listening = False
        self.last_error: Optional[str] = None

    @property
    def transcript(self) -> str:
        return self._buffer

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._recognizer is None:
            raise RecognitionUnavailable("Speech recognition is not available on this platform")
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()

        callbacks = RecognitionCallbacks(
            on_start=lambda: self._dispatch(self._handle_start),
            on_result=lambda index, results: self._dispatch(self._handle_results, index, results),
            on_error=lambda error: self._dispatch(self._handle_error, error),
            on_end=lambda: self._dispatch(self._handle_end),
        )
        self._running = True
        try:
            # Opening and calibrating a microphone blocks, so it runs off the loop thread.
            await asyncio.to_thread(self._recognizer.start, callbacks, continuous=True, interim_results=True)
        except BaseException:
            self._running = False
            raise
        logger.info("Speech recognition started")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.listening = False
        try:
            self._recognizer.stop()
        except Exception:
            logger.exception("Speech recognizer failed to stop cleanly")
        logger.info("Speech recognition stopped")

    def take_transcript(self) -> str:
        """Return the committed text and empty the buffer in one step."""
        text, self._buffer = self._buffer, ""
        return text

    def _dispatch(self, handler: Callable, *args) -> None:
        # Recognizer backends may call back from their own threads; state is
        # only ever mutated on the event loop thread.
        loop = self._loop
        if loop is None or threading.get_ident() == self._loop_thread or loop.is_closed():
            handler(*args)
        else:
            loop.call_soon_threadsafe(handler, *args)

    def _handle_start(self) -> None:
        self.listening = True

    def _handle_results(self, result_index: int, results: Sequence[RecognitionResult]) -> None:
        if not self._running:
            return
        final_text = ""
        for result in results[result_index:]:
            if result.is_final:
                final_text += result.transcript + " "
        if final_text:
            self._buffer += final_text

    def _handle_error(self, error: str) -> None:
        logger.warning("Speech recognition error: %s", error)
        self.last_error = error
        self.listening = False

    def _handle_end(self) -> None:
        self.listening = False

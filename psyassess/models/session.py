"""Session sequencer: the state machine driving an assessment from start to submission.

It ties together the remote service, the capture manager and the
transcription manager. Every question transition persists the current
answer, closes the current recording segment, moves the cursor and opens a
new segment, strictly in that order.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from psyassess.models.assessment import AnswerDraft, Question, Scenario, ScenarioSet, SessionPosition, SessionRecord
from psyassess.models.capture import CaptureManager
from psyassess.models.errors import AssessmentError, EndFailed, SaveFailed, StartFailed, UploadFailed
from psyassess.models.transcription import TranscriptionManager
from psyassess.utils.formatting import format_elapsed

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the controller for rendering."""

    state: SessionState
    position: SessionPosition
    scenario: Scenario
    question: Question
    scenario_count: int
    question_count: int
    is_last_question: bool
    transcript: str
    recording: bool
    listening: bool
    elapsed_seconds: int
    formatted_elapsed: str
    assessment_id: Any
    error: Optional[str]


class SessionSequencer:
    def __init__(
        self,
        api,
        scenarios: ScenarioSet,
        *,
        username: str,
        job_id: int,
        company_id: int,
        department: str,
        capture: CaptureManager,
        transcription: TranscriptionManager,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
    ) -> None:
        if not scenarios:
            raise ValueError("A session needs at least one scenario")
        self.api = api
        self.scenarios = scenarios
        self.username = username
        self.job_id = job_id
        self.company_id = company_id
        self.department = department
        self.capture = capture
        self.transcription = transcription
        self._clock = clock
        self._tick_interval = tick_interval

        self.state = SessionState.NOT_STARTED
        self.position = SessionPosition()
        self.record: Optional[SessionRecord] = None
        self.error: Optional[str] = None

        self._starting = False
        self._submit_in_flight = False
        self._transition_lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None

    # -- read side ---------------------------------------------------------

    @property
    def current_scenario(self) -> Scenario:
        return self.position.scenario(self.scenarios)

    @property
    def current_question(self) -> Question:
        return self.position.question(self.scenarios)

    @property
    def is_last_question(self) -> bool:
        return self.position.is_last(self.scenarios)

    @property
    def elapsed_seconds(self) -> int:
        return self.record.elapsed_seconds if self.record else 0

    @property
    def formatted_elapsed(self) -> str:
        return format_elapsed(self.elapsed_seconds)

    @property
    def can_advance_by_key(self) -> bool:
        """Whether the keyboard "next" signal is honoured right now."""
        return (
            self.state is SessionState.ACTIVE
            and self.capture.recording
            and not self.is_last_question
            and not self._transition_lock.locked()
        )

    def snapshot(self) -> SessionSnapshot:
        scenario = self.current_scenario
        return SessionSnapshot(
            state=self.state,
            position=self.position,
            scenario=scenario,
            question=self.current_question,
            scenario_count=len(self.scenarios),
            question_count=len(scenario.questions),
            is_last_question=self.is_last_question,
            transcript=self.transcription.transcript,
            recording=self.capture.recording,
            listening=self.transcription.listening,
            elapsed_seconds=self.elapsed_seconds,
            formatted_elapsed=self.formatted_elapsed,
            assessment_id=self.record.assessment_id if self.record else None,
            error=self.error,
        )

    # -- transitions -------------------------------------------------------

    async def start(self) -> None:
        """NOT_STARTED -> ACTIVE. Raises StartFailed if any step fails."""
        if self.state is not SessionState.NOT_STARTED or self._starting:
            return
        self._starting = True
        try:
            try:
                assessment_id = await self.api.start_session(
                    self.username, self.job_id, self.company_id, self.department
                )
            except AssessmentError as exc:
                # Nothing has been acquired yet; the session simply never started.
                self.error = str(exc)
                logger.error("Error starting assessment: %s", exc)
                raise StartFailed(str(exc)) from exc

            self.record = SessionRecord(assessment_id=assessment_id, start_timestamp=self._clock())
            try:
                await self.capture.acquire()
                self.capture.begin_segment()
                await self.transcription.start()
            except AssessmentError as exc:
                await self._release_resources()
                self.state = SessionState.FAILED
                self.error = str(exc)
                logger.error("Error starting assessment %s: %s", assessment_id, exc)
                raise StartFailed(str(exc)) from exc

            self.state = SessionState.ACTIVE
            self._ticker = asyncio.create_task(self._tick())
            logger.info("Assessment %s started", assessment_id, extra={"assessment_id": assessment_id})
        finally:
            self._starting = False

    async def advance(self) -> bool:
        """Move to the next question, or submit when on the last one.

        Returns False when the trigger was ignored (not active, or another
        transition is still running).
        """
        if self.state is not SessionState.ACTIVE or self._transition_lock.locked():
            return False
        if self.is_last_question:
            return await self.submit()

        async with self._transition_lock:
            if self.state is not SessionState.ACTIVE:
                return False
            await self._persist_current()
            next_position = self.position.advance(self.scenarios)
            if next_position is None:
                raise RuntimeError("advance() reached past the last question")
            self.position = next_position
            self.capture.begin_segment()
        logger.info(
            "Moved to scenario %d, question %d",
            self.position.scenario_index + 1,
            self.position.question_index + 1,
        )
        return True

    async def submit(self) -> bool:
        """ACTIVE -> SUBMITTING -> COMPLETED. Single-flight: repeated triggers are no-ops.

        Raises EndFailed after moving to FAILED if finalization fails.
        """
        if self.state is not SessionState.ACTIVE or self._submit_in_flight:
            return False
        self._submit_in_flight = True
        try:
            async with self._transition_lock:
                if self.state is not SessionState.ACTIVE:
                    return False
                self.state = SessionState.SUBMITTING
                assessment_id = self.record.assessment_id
                try:
                    await self._persist_current()
                    await self._release_resources()
                    elapsed = self._refresh_elapsed()
                    await self.api.end_session(assessment_id, elapsed)
                except Exception as exc:
                    await self._release_resources()
                    self.state = SessionState.FAILED
                    self.error = str(exc) or "An unknown error occurred during submission"
                    logger.error("Error submitting assessment %s: %s", assessment_id, self.error)
                    raise EndFailed(self.error) from exc

                self.state = SessionState.COMPLETED
                logger.info(
                    "Assessment %s completed in %s",
                    assessment_id,
                    format_elapsed(elapsed),
                    extra={"assessment_id": assessment_id},
                )
                return True
        finally:
            self._submit_in_flight = False

    # -- internals ---------------------------------------------------------

    def _refresh_elapsed(self) -> int:
        if self.record is None:
            return 0
        return self.record.refresh(self._clock())

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self._refresh_elapsed()

    async def _persist_current(self) -> None:
        """Flush the answer for the current position: response first, then its video.

        Failures are logged and swallowed; persistence is best-effort.
        """
        scenario = self.current_scenario
        question = self.current_question
        assessment_id = self.record.assessment_id
        draft = AnswerDraft(
            scenario_id=scenario.id,
            question_index=self.position.question_index,
            transcript_text=self.transcription.take_transcript(),
        )
        label = f"scenario {self.position.scenario_index + 1}, question {self.position.question_index + 1}"

        if draft.transcript_text:
            try:
                await self.api.save_response(assessment_id, draft.to_response_data(scenario), self._refresh_elapsed())
                logger.info("Saved response for %s", label)
            except Exception as exc:
                self._report(SaveFailed(f"Failed to save response for {label}: {exc}"))
        else:
            logger.info("No transcript captured for %s; response not saved", label)

        try:
            draft.video_segment = await self.capture.end_segment()
        except Exception as exc:
            self._report(UploadFailed(f"Failed to finish recording for {label}: {exc}"))
            return

        segment = draft.video_segment
        if segment is None or segment.chunk_count == 0:
            return
        try:
            storage_uri = await self.api.upload_segment(
                assessment_id,
                segment.data,
                scenario_id=scenario.id,
                question_index=draft.question_index,
                question_text=question.text,
                scenario_text=scenario.text,
                filename=segment.filename,
                mime_type=segment.mime_type,
            )
            logger.info("Uploaded video for %s. Storage URI: %s", label, storage_uri)
        except Exception as exc:
            self._report(UploadFailed(f"Failed to upload video for {label}: {exc}"))

    def _report(self, error: AssessmentError) -> None:
        logger.warning("%s", error)

    async def _release_resources(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
        await self.capture.release()
        self.transcription.stop()

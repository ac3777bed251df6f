import asyncio
import copy

import pytest

from psyassess.models.capture import CaptureManager
from psyassess.models.content import parse_scenario_payload
from psyassess.models.errors import AssessmentApiError
from psyassess.models.session import SessionSequencer
from psyassess.models.transcription import TranscriptionManager

SCENARIO_PAYLOAD = {
    "psy_questions": [
        {
            "scenario_id": 11,
            "scenario": "A customer escalates a late delivery.",
            "questions": [{"question": "How do you respond first?", "points": 5}],
        },
        {
            "scenario_id": 12,
            "scenario": "Two teammates disagree on a deadline.",
            "questions": [
                {"question": "Who do you talk to first?", "points": 3},
                {"question": "How do you settle it?", "points": 2},
            ],
        },
    ],
    "department": "Customer Success",
}


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeApi:
    """Async stand-in for the scoring service that records every call in order."""

    def __init__(self, log: list) -> None:
        self.log = log
        self.scenarios_payload = copy.deepcopy(SCENARIO_PAYLOAD)
        self.fetch_error = None
        self.start_error = None
        self.save_error = None
        self.upload_error = None
        self.end_error = None
        self.end_delay = 0.0
        self.assessment_id = 42
        self.fetch_calls = 0
        self.saves = []
        self.uploads = []
        self.end_calls = []

    async def fetch_scenarios(self, job_id, company_id):
        self.fetch_calls += 1
        if self.fetch_error:
            raise self.fetch_error
        return self.scenarios_payload

    async def start_session(self, username, job_id, company_id, department):
        self.log.append(("start_session", username, job_id, company_id, department))
        if self.start_error:
            raise AssessmentApiError(self.start_error, status_code=400)
        return self.assessment_id

    async def save_response(self, assessment_id, response_data, elapsed_seconds):
        await asyncio.sleep(0)
        self.log.append(("save", assessment_id))
        if self.save_error:
            raise self.save_error
        self.saves.append((assessment_id, response_data, elapsed_seconds))

    async def upload_segment(self, assessment_id, video, **metadata):
        await asyncio.sleep(0)
        self.log.append(("upload", metadata.get("scenario_id"), metadata.get("question_index")))
        if self.upload_error:
            raise self.upload_error
        self.uploads.append((assessment_id, video, metadata))
        return f"s3://bucket/{assessment_id}/{metadata.get('scenario_id')}-{metadata.get('question_index')}.webm"

    async def end_session(self, assessment_id, elapsed_seconds):
        self.log.append(("end_session", assessment_id, elapsed_seconds))
        if self.end_delay:
            await asyncio.sleep(self.end_delay)
        if self.end_error:
            raise self.end_error
        self.end_calls.append((assessment_id, elapsed_seconds))


class FakeTrack:
    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.stop_calls = 0

    def stop(self) -> None:
        self.stop_calls += 1


class FakeRecorder:
    mime_type = "video/webm"

    def __init__(self, stream, number: int) -> None:
        self.stream = stream
        self.number = number
        self.on_data = None

    def start(self, on_data) -> None:
        self.stream.active += 1
        self.stream.max_active = max(self.stream.max_active, self.stream.active)
        self.stream.log.append(("begin_segment", self.number))
        self.on_data = on_data
        on_data(f"seg{self.number}:".encode())

    async def stop(self) -> None:
        await asyncio.sleep(0)
        # Browsers flush a last chunk right before the stop event fires.
        self.on_data(b"tail")
        self.stream.active -= 1
        self.stream.log.append(("end_segment", self.number))


class FakeStream:
    def __init__(self, log: list) -> None:
        self.log = log
        self.tracks = [FakeTrack("video"), FakeTrack("audio")]
        self.active = 0
        self.max_active = 0
        self.recorders = []

    def get_tracks(self):
        return self.tracks

    def create_recorder(self):
        recorder = FakeRecorder(self, len(self.recorders))
        self.recorders.append(recorder)
        return recorder


class FakeDevice:
    def __init__(self, log: list) -> None:
        self.log = log
        self.error = None
        self.open_calls = 0
        self.stream = FakeStream(log)

    async def open(self, *, video: bool, audio: bool):
        self.open_calls += 1
        assert video and audio
        if self.error:
            raise self.error
        return self.stream


class FakeRecognizer:
    def __init__(self) -> None:
        self.callbacks = None
        self.start_kwargs = None
        self.stop_calls = 0

    def start(self, callbacks, *, continuous, interim_results):
        self.callbacks = callbacks
        self.start_kwargs = {"continuous": continuous, "interim_results": interim_results}
        callbacks.on_start()

    def stop(self):
        self.stop_calls += 1

    def emit(self, *results, index: int = 0):
        self.callbacks.on_result(index, list(results))

    def fail(self, error: str):
        self.callbacks.on_error(error)


@pytest.fixture
def event_log():
    return []


@pytest.fixture
def api(event_log):
    return FakeApi(event_log)


@pytest.fixture
def device(event_log):
    return FakeDevice(event_log)


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scenario_payload():
    return copy.deepcopy(SCENARIO_PAYLOAD)


@pytest.fixture
def content(scenario_payload):
    return parse_scenario_payload(scenario_payload)


@pytest.fixture
def make_sequencer(api, device, recognizer, clock, content):
    def _make(**overrides) -> SessionSequencer:
        kwargs = dict(
            username="candidate@example.com",
            job_id=6528,
            company_id=2806,
            department=content.department,
            capture=CaptureManager(device),
            transcription=TranscriptionManager(recognizer),
            clock=clock,
            tick_interval=3600,
        )
        kwargs.update(overrides)
        return SessionSequencer(api, content.scenarios, **kwargs)

    return _make

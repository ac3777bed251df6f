import asyncio
import threading
import time

import pytest

from psyassess.models.errors import RecognitionUnavailable
from psyassess.models.transcription import RecognitionResult, TranscriptionManager


def test_only_final_results_are_committed(recognizer):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        recognizer.emit(
            RecognitionResult("I think", is_final=False),
            RecognitionResult("I think we should", is_final=True),
        )
        recognizer.emit(RecognitionResult("escalate", is_final=False))

    asyncio.run(scenario())

    assert manager.transcript == "I think we should "


def test_result_index_skips_already_reported_results(recognizer):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        recognizer.emit(
            RecognitionResult("old", is_final=True),
            RecognitionResult("new", is_final=True),
            index=1,
        )

    asyncio.run(scenario())

    assert manager.transcript == "new "


def test_take_transcript_reads_and_clears(recognizer):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        recognizer.emit(RecognitionResult("first answer", is_final=True))

    asyncio.run(scenario())

    assert manager.take_transcript() == "first answer "
    assert manager.transcript == ""
    assert manager.take_transcript() == ""


def test_error_drops_listening_but_keeps_running(recognizer, caplog):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        assert manager.listening is True
        with caplog.at_level("WARNING", logger="psyassess.models.transcription"):
            recognizer.fail("network")

    asyncio.run(scenario())

    assert manager.listening is False
    assert manager.running is True
    assert manager.last_error == "network"
    assert "Speech recognition error: network" in caplog.text


def test_stop_is_idempotent(recognizer):
    manager = TranscriptionManager(recognizer)
    asyncio.run(manager.start())

    manager.stop()
    manager.stop()

    assert recognizer.stop_calls == 1
    assert manager.listening is False


def test_results_after_stop_are_ignored(recognizer):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        manager.stop()
        recognizer.emit(RecognitionResult("late", is_final=True))

    asyncio.run(scenario())

    assert manager.transcript == ""


def test_missing_recognizer_raises():
    with pytest.raises(RecognitionUnavailable):
        asyncio.run(TranscriptionManager(None).start())


def test_failed_recognizer_start_leaves_manager_stopped(recognizer):
    def refuse(callbacks, *, continuous, interim_results):
        raise RecognitionUnavailable("no microphone")

    recognizer.start = refuse
    manager = TranscriptionManager(recognizer)

    with pytest.raises(RecognitionUnavailable, match="no microphone"):
        asyncio.run(manager.start())

    assert manager.running is False
    manager.stop()
    assert recognizer.stop_calls == 0


class SlowRecognizer:
    """Blocks in start the way opening and calibrating a microphone does."""

    def __init__(self, delay):
        self.delay = delay
        self.start_thread = None
        self.stop_calls = 0

    def start(self, callbacks, *, continuous, interim_results):
        self.start_thread = threading.get_ident()
        time.sleep(self.delay)
        callbacks.on_start()

    def stop(self):
        self.stop_calls += 1


def test_recognizer_start_does_not_block_the_loop():
    recognizer = SlowRecognizer(delay=0.2)
    manager = TranscriptionManager(recognizer)
    ticks = []

    async def heartbeat():
        while len(ticks) < 5:
            ticks.append(time.monotonic())
            await asyncio.sleep(0.01)

    async def scenario():
        loop_thread = threading.get_ident()
        starting = asyncio.create_task(manager.start())
        await heartbeat()
        still_starting = not starting.done()
        await starting
        return loop_thread, still_starting

    loop_thread, still_starting = asyncio.run(scenario())

    assert recognizer.start_thread != loop_thread
    assert still_starting is True
    assert manager.running is True
    assert manager.listening is True


def test_callbacks_from_other_threads_are_applied_on_the_loop(recognizer):
    manager = TranscriptionManager(recognizer)

    async def scenario():
        await manager.start()
        worker = threading.Thread(target=recognizer.emit, args=(RecognitionResult("from a thread", is_final=True),))
        worker.start()
        worker.join()
        # The update is queued onto the loop, not applied from the worker thread.
        before = manager.transcript
        await asyncio.sleep(0)
        return before, manager.transcript

    before, after = asyncio.run(scenario())

    assert before == ""
    assert after == "from a thread "

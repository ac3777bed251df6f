"""Local capture and recognition backends: OpenCV camera frames and a Whisper-backed recognizer."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

import cv2
import speech_recognition as sr

from psyassess.config.settings import get_camera_index, get_capture_fps
from psyassess.models.asr import is_configured, transcribe_audio
from psyassess.models.errors import DeviceUnavailable, PermissionDenied, RecognitionUnavailable
from psyassess.models.transcription import RecognitionCallbacks, RecognitionResult

logger = logging.getLogger(__name__)


def _list_microphones() -> List[str]:
    try:
        return sr.Microphone.list_microphone_names()
    except PermissionError as exc:
        raise PermissionDenied("Microphone access was denied") from exc
    except (AttributeError, OSError) as exc:
        # SpeechRecognition raises AttributeError when PyAudio is missing.
        raise DeviceUnavailable(f"Microphone unavailable: {exc}") from exc


class CameraTrack:
    kind = "video"

    def __init__(self, capture: "cv2.VideoCapture") -> None:
        self._capture = capture
        self._lock = threading.Lock()
        self._stopped = False
        self.latest_frame: Optional[bytes] = None

    def read_jpeg(self) -> Optional[bytes]:
        with self._lock:
            if self._stopped:
                return None
            ok, frame = self._capture.read()
        if not ok:
            return None
        ok, buffer = cv2.imencode(".jpg", frame)
        if not ok:
            return None
        data = buffer.tobytes()
        self.latest_frame = data
        return data

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._capture.release()


class MicrophoneTrack:
    """Marks the microphone as claimed; audio itself is read by the recognizer."""

    kind = "audio"

    def __init__(self, name: str) -> None:
        self.name = name
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FrameRecorder:
    """Samples the camera at a fixed rate and emits each frame as a JPEG chunk."""

    mime_type = "video/x-motion-jpeg"

    def __init__(self, track: CameraTrack, fps: float) -> None:
        self._track = track
        self._interval = 1.0 / fps
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self, on_data: Callable[[bytes], None]) -> None:
        self._task = asyncio.create_task(self._run(on_data))

    async def _run(self, on_data: Callable[[bytes], None]) -> None:
        while not self._stop_event.is_set():
            chunk = await asyncio.to_thread(self._track.read_jpeg)
            if chunk:
                on_data(chunk)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None


class OpenCVMediaStream:
    def __init__(self, camera: CameraTrack, microphone: Optional[MicrophoneTrack], fps: float) -> None:
        self.camera = camera
        self.microphone = microphone
        self._fps = fps

    def get_tracks(self) -> Sequence:
        return [t for t in (self.camera, self.microphone) if t is not None]

    def create_recorder(self) -> FrameRecorder:
        return FrameRecorder(self.camera, self._fps)

    @property
    def latest_frame(self) -> Optional[bytes]:
        return self.camera.latest_frame


class OpenCVMediaDevice:
    def __init__(self, camera_index: Optional[int] = None, fps: Optional[float] = None) -> None:
        self.camera_index = get_camera_index() if camera_index is None else camera_index
        self.fps = fps or get_capture_fps()

    async def open(self, *, video: bool = True, audio: bool = True) -> OpenCVMediaStream:
        microphone = None
        if audio:
            names = await asyncio.to_thread(_list_microphones)
            if not names:
                raise DeviceUnavailable("No microphone found")
            microphone = MicrophoneTrack(names[0])

        capture = await asyncio.to_thread(cv2.VideoCapture, self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"No camera available at index {self.camera_index}")
        logger.info("Opened camera %s at %.1f fps", self.camera_index, self.fps)
        return OpenCVMediaStream(CameraTrack(capture), microphone, self.fps)


class WhisperSpeechRecognizer:
    """Continuous recognizer: the microphone is split into phrases, each sent to Whisper.

    Every transcribed phrase is reported as a single final result; this
    backend never produces interim text.
    """

    def __init__(
        self,
        transcribe: Callable[..., Dict] = transcribe_audio,
        device_index: Optional[int] = None,
        phrase_time_limit: float = 15.0,
    ) -> None:
        self._transcribe = transcribe
        self._device_index = device_index
        self._phrase_time_limit = phrase_time_limit
        self._stop_listening: Optional[Callable] = None
        self._callbacks: Optional[RecognitionCallbacks] = None

    def start(self, callbacks: RecognitionCallbacks, *, continuous: bool = True, interim_results: bool = True) -> None:
        if not is_configured():
            raise RecognitionUnavailable("Speech recognition requires GROQ_API_KEY to be set")
        recognizer = sr.Recognizer()
        try:
            microphone = sr.Microphone(device_index=self._device_index)
            with microphone as source:
                recognizer.adjust_for_ambient_noise(source, duration=0.5)
        except (AttributeError, OSError) as exc:
            raise RecognitionUnavailable(f"Speech recognition unavailable: {exc}") from exc

        self._callbacks = callbacks
        self._stop_listening = recognizer.listen_in_background(
            microphone,
            self._on_phrase,
            phrase_time_limit=self._phrase_time_limit if continuous else None,
        )
        callbacks.on_start()

    def _on_phrase(self, recognizer: sr.Recognizer, audio: sr.AudioData) -> None:
        callbacks = self._callbacks
        if callbacks is None:
            return
        result = self._transcribe(audio.get_wav_data(), "phrase.wav")
        if not result.get("success"):
            callbacks.on_error(result.get("error") or "Unknown transcription error")
            return
        text = (result.get("transcript") or "").strip()
        if text:
            callbacks.on_result(0, [RecognitionResult(transcript=text, is_final=True)])

    def stop(self) -> None:
        stop_listening, self._stop_listening = self._stop_listening, None
        callbacks, self._callbacks = self._callbacks, None
        if stop_listening is None:
            return
        stop_listening(wait_for_stop=False)
        if callbacks is not None:
            callbacks.on_end()

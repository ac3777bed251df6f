"""Camera/microphone stream ownership and per-question recording segments."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from psyassess.models.errors import CaptureError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "video/webm": "webm",
    "video/mp4": "mp4",
    "video/x-motion-jpeg": "mjpeg",
}


class MediaTrack(Protocol):
    kind: str

    def stop(self) -> None: ...


class Recorder(Protocol):
    mime_type: str

    def start(self, on_data: Callable[[bytes], None]) -> None: ...

    async def stop(self) -> None:
        """Stop recording; must return only after the last chunk was delivered."""
        ...


class MediaStream(Protocol):
    def get_tracks(self) -> Sequence[MediaTrack]: ...

    def create_recorder(self) -> Recorder: ...


class MediaDevice(Protocol):
    async def open(self, *, video: bool, audio: bool) -> MediaStream:
        """Open combined capture; raise PermissionDenied or DeviceUnavailable."""
        ...


@dataclass(frozen=True)
class MediaSegment:
    """One question's recording, assembled from its buffered chunks."""

    data: bytes
    mime_type: str
    chunk_count: int

    @property
    def filename(self) -> str:
        return f"video.{_EXTENSIONS.get(self.mime_type, 'bin')}"

    @property
    def size(self) -> int:
        return len(self.data)


class CaptureManager:
    """Owns the shared media stream and at most one active recorder.

    The stream is handed out read-only through ``preview``; nothing else may
    start or stop its tracks.
    """

    def __init__(self, device: MediaDevice) -> None:
        self._device = device
        self._stream: Optional[MediaStream] = None
        self._recorder: Optional[Recorder] = None
        self._chunks: List[bytes] = []
        self._released = False

    @property
    def preview(self) -> Optional[MediaStream]:
        return self._stream

    @property
    def recording(self) -> bool:
        return self._recorder is not None

    async def acquire(self) -> MediaStream:
        if self._stream is not None:
            return self._stream
        if self._released:
            raise CaptureError("Capture stream was already released")
        self._stream = await self._device.open(video=True, audio=True)
        logger.info("Capture stream acquired with %d tracks", len(self._stream.get_tracks()))
        return self._stream

    def begin_segment(self) -> None:
        if self._stream is None:
            raise CaptureError("Cannot begin a segment before the stream is acquired")
        if self._recorder is not None:
            raise CaptureError("A recording segment is already active")

        chunks: List[bytes] = []

        def on_data(chunk: bytes) -> None:
            if chunk:
                chunks.append(chunk)

        recorder = self._stream.create_recorder()
        recorder.start(on_data)
        self._chunks = chunks
        self._recorder = recorder
        logger.debug("Recording segment started")

    async def end_segment(self) -> Optional[MediaSegment]:
        """Stop the active segment and return its payload; None when nothing is recording."""
        recorder = self._recorder
        if recorder is None:
            return None
        try:
            await recorder.stop()
        finally:
            # The slot is only freed once stop resolved, so the next
            # begin_segment can never overlap this one.
            self._recorder = None
        chunks, self._chunks = self._chunks, []
        segment = MediaSegment(data=b"".join(chunks), mime_type=recorder.mime_type, chunk_count=len(chunks))
        logger.debug("Recording segment ended: %d chunks, %d bytes", segment.chunk_count, segment.size)
        return segment

    async def release(self) -> None:
        """Stop the active recorder, then every track of the stream. Safe to call more than once."""
        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            logger.warning("Releasing capture with an unfinished segment; its chunks are discarded")
            try:
                await recorder.stop()
            except Exception:
                logger.exception("Failed to stop the active recorder")
            self._chunks = []
        stream, self._stream = self._stream, None
        self._released = True
        if stream is None:
            return
        for track in stream.get_tracks():
            try:
                track.stop()
            except Exception:
                logger.exception("Failed to stop %s track", getattr(track, "kind", "media"))
        logger.info("Capture stream released")

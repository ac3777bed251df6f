"""Exception taxonomy for the assessment session controller."""
from __future__ import annotations


class AssessmentError(RuntimeError):
    """Base class for every error raised by the assessment client."""


class AssessmentApiError(AssessmentError):
    """Raised when the remote assessment service fails or returns an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentUnavailable(AssessmentError):
    """Scenario content could not be loaded; fatal before the session starts."""


class PermissionDenied(AssessmentError):
    """The candidate refused camera/microphone access."""


class DeviceUnavailable(AssessmentError):
    """No usable camera or microphone was found."""


class RecognitionUnavailable(AssessmentError):
    """The platform offers no continuous speech recognition."""


class CaptureError(AssessmentError):
    """A capture operation was used out of order (e.g. two active segments)."""


class StartFailed(AssessmentError):
    """The session could not be started."""


class EndFailed(AssessmentError):
    """The end-session call failed during finalization."""


class SaveFailed(AssessmentError):
    """A per-question response could not be saved. Logged, never fatal."""


class UploadFailed(AssessmentError):
    """A per-question media segment could not be uploaded. Logged, never fatal."""

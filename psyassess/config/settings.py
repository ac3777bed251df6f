"""Application settings and environment helpers."""
from __future__ import annotations

import os

from dotenv import load_dotenv


# Load environment variables from a local .env file if present.
load_dotenv()

DEFAULT_API_BASE = "http://127.0.0.1:5000"
DEFAULT_WHISPER_MODEL = "whisper-large-v3"


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_api_base_url() -> str:
    """Return the base URL of the remote assessment service, without a trailing slash."""
    return (os.getenv("ASSESSMENT_API_BASE") or DEFAULT_API_BASE).rstrip("/")


def get_api_timeout() -> float:
    """Per-request timeout in seconds for calls to the assessment service."""
    return _get_float("ASSESSMENT_API_TIMEOUT", 30.0)


def get_groq_api_key() -> str | None:
    """Return the Groq API key from the environment if configured."""
    return os.getenv("GROQ_API_KEY")


def get_whisper_model() -> str:
    return os.getenv("GROQ_WHISPER_MODEL") or DEFAULT_WHISPER_MODEL


def get_camera_index() -> int:
    return _get_int("ASSESSMENT_CAMERA_INDEX", 0)


def get_capture_fps() -> float:
    fps = _get_float("ASSESSMENT_CAPTURE_FPS", 10.0)
    return fps if fps > 0 else 10.0


def get_log_level() -> str:
    return (os.getenv("ASSESSMENT_LOG_LEVEL") or "INFO").upper()


def get_log_json() -> bool:
    return (os.getenv("ASSESSMENT_LOG_JSON") or "").strip().lower() in {"1", "true", "yes", "on"}


def get_default_job_id() -> int | None:
    raw = os.getenv("ASSESSMENT_JOB_ID")
    return int(raw) if raw and raw.strip().isdigit() else None


def get_default_company_id() -> int | None:
    raw = os.getenv("ASSESSMENT_COMPANY_ID")
    return int(raw) if raw and raw.strip().isdigit() else None


def get_default_username() -> str:
    return os.getenv("ASSESSMENT_USERNAME", "")

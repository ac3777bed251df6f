"""Audio transcription using Groq Whisper API.

This module provides the speech-to-text call used by the live recognizer:
each phrase captured from the microphone is sent here as WAV bytes.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from groq import Groq

from psyassess.config.settings import get_groq_api_key, get_whisper_model

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(get_groq_api_key())


def transcribe_audio(audio_data: bytes, filename: str = "audio.wav", language: str | None = "en") -> Dict[str, Any]:
    """Transcribe audio using Groq Whisper API.

    Args:
        audio_data: Raw audio bytes (WAV, MP3, M4A, or other supported format)
        filename: Name sent with the upload (must have correct extension)
        language: ISO language hint, or None for auto-detection

    Returns:
        Dictionary with:
        - transcript: str of transcribed text
        - success: bool indicating if transcription succeeded
        - error: str error message if success is False
    """
    api_key = get_groq_api_key()
    if not api_key:
        return {
            "transcript": "",
            "success": False,
            "error": "Groq API key not configured. Please set GROQ_API_KEY environment variable.",
        }
    if not audio_data:
        return {"transcript": "", "success": True, "error": None}

    try:
        client = Groq(api_key=api_key)
        transcription = client.audio.transcriptions.create(
            file=(filename, audio_data),
            model=get_whisper_model(),
            response_format="verbose_json",
            language=language,
            temperature=0.0,  # Lower temperature for more deterministic output
        )
    except Exception as exc:
        logger.warning("Whisper transcription failed: %s", exc)
        return {
            "transcript": "",
            "success": False,
            "error": f"Transcription failed: {exc}",
        }

    if hasattr(transcription, "text"):
        transcript_text = transcription.text.strip()
    else:
        transcript_text = str(transcription).strip()

    return {
        "transcript": transcript_text,
        "success": True,
        "error": None,
        "language": getattr(transcription, "language", language),
        "duration": getattr(transcription, "duration", None),
    }

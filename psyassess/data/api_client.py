"""Thin wrapper around the remote psychometric scoring service."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from psyassess.config.settings import get_api_base_url, get_api_timeout
from psyassess.models.errors import AssessmentApiError

logger = logging.getLogger(__name__)

SCENARIOS_PATH = "/get_scenarios_and_questions"
START_PATH = "/start_psychometric_assessment"
SAVE_RESPONSE_PATH = "/save_psychometric_response"
UPLOAD_VIDEO_PATH = "/upload_psychometric_video"
END_PATH = "/end_assessment"


def _error_message(response: requests.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class AssessmentApiClient:
    """Blocking client for the five endpoints the session controller talks to."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or get_api_base_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else get_api_timeout()
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, default_error: str, **kwargs: Any) -> requests.Response:
        logger.debug("%s %s", method, path)
        try:
            response = self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise AssessmentApiError(f"{default_error}: {exc}") from exc
        if response.status_code >= 400:
            raise AssessmentApiError(_error_message(response, default_error), status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: requests.Response, default_error: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise AssessmentApiError(f"{default_error}: response was not JSON", response.status_code) from exc
        if not isinstance(body, dict):
            raise AssessmentApiError(f"{default_error}: unexpected response shape", response.status_code)
        return body

    def fetch_scenarios(self, job_id: int, company_id: int) -> Dict[str, Any]:
        error = "Failed to fetch scenarios and questions"
        response = self._request("GET", SCENARIOS_PATH, error, params={"job_id": job_id, "comp_id": company_id})
        return self._json(response, error)

    def start_session(self, username: str, job_id: int, company_id: int, department: str) -> Any:
        """Start an assessment and return the assessment id assigned by the service.

        An ``{"error": ...}`` body is surfaced verbatim as the exception message.
        """
        error = "Failed to start assessment"
        response = self._request(
            "POST",
            START_PATH,
            error,
            json={"username": username, "jobId": job_id, "compId": company_id, "department": department},
        )
        body = self._json(response, error)
        if body.get("error"):
            raise AssessmentApiError(str(body["error"]), response.status_code)
        assessment_id = body.get("assessment_id")
        if assessment_id is None:
            raise AssessmentApiError(f"{error}: no assessment id returned", response.status_code)
        return assessment_id

    def save_response(self, assessment_id: Any, response_data: Dict[str, Any], elapsed_seconds: int) -> None:
        self._request(
            "POST",
            SAVE_RESPONSE_PATH,
            "Failed to save response",
            json={"assessmentId": assessment_id, "responseData": response_data, "psyTimeSpent": elapsed_seconds},
        )

    def upload_segment(
        self,
        assessment_id: Any,
        video: bytes,
        *,
        scenario_id: int,
        question_index: int,
        question_text: str,
        scenario_text: str,
        filename: str = "video.webm",
        mime_type: str = "video/webm",
    ) -> Optional[str]:
        """Upload one question's recording; returns the storage URI reported by the service."""
        error = "Failed to upload video"
        response = self._request(
            "POST",
            UPLOAD_VIDEO_PATH,
            error,
            files={"video": (filename, video, mime_type)},
            data={
                "assessmentId": str(assessment_id),
                "scenarioId": str(scenario_id),
                "questionIndex": str(question_index),
                "questionText": question_text,
                "scenario": scenario_text,
            },
        )
        return self._json(response, error).get("s3_uri")

    def end_session(self, assessment_id: Any, elapsed_seconds: int) -> None:
        self._request(
            "POST",
            END_PATH,
            "Failed to end assessment",
            json={"assessmentId": assessment_id, "psyTimeSpent": elapsed_seconds},
        )


class AsyncAssessmentApi:
    """Runs the blocking client off the event loop so the controller can await it."""

    def __init__(self, client: AssessmentApiClient | None = None) -> None:
        self.client = client or AssessmentApiClient()

    async def fetch_scenarios(self, job_id: int, company_id: int) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.fetch_scenarios, job_id, company_id)

    async def start_session(self, username: str, job_id: int, company_id: int, department: str) -> Any:
        return await asyncio.to_thread(self.client.start_session, username, job_id, company_id, department)

    async def save_response(self, assessment_id: Any, response_data: Dict[str, Any], elapsed_seconds: int) -> None:
        await asyncio.to_thread(self.client.save_response, assessment_id, response_data, elapsed_seconds)

    async def upload_segment(self, assessment_id: Any, video: bytes, **metadata: Any) -> Optional[str]:
        return await asyncio.to_thread(lambda: self.client.upload_segment(assessment_id, video, **metadata))

    async def end_session(self, assessment_id: Any, elapsed_seconds: int) -> None:
        await asyncio.to_thread(self.client.end_session, assessment_id, elapsed_seconds)

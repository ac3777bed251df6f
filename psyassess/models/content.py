"""Loads the scenario/question tree for a job and company before the session starts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from psyassess.models.assessment import Question, Scenario, ScenarioSet
from psyassess.models.errors import AssessmentApiError, ContentUnavailable

logger = logging.getLogger(__name__)

UNKNOWN_DEPARTMENT = "Unknown Department"


class LoaderState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadedContent:
    scenarios: ScenarioSet
    department: str


def _parse_question(raw: Any) -> Question:
    if not isinstance(raw, dict) or not isinstance(raw.get("question"), str):
        raise ContentUnavailable("Malformed question in scenario content")
    points = raw.get("points", 0)
    if isinstance(points, bool) or not isinstance(points, (int, float)):
        raise ContentUnavailable("Malformed point value in scenario content")
    return Question(text=raw["question"], points=float(points))


def _parse_scenario(raw: Any) -> Scenario:
    if not isinstance(raw, dict):
        raise ContentUnavailable("Malformed scenario in scenario content")
    scenario_id = raw.get("scenario_id")
    if isinstance(scenario_id, bool) or not isinstance(scenario_id, int):
        raise ContentUnavailable("Scenario is missing an integer scenario_id")
    questions = raw.get("questions")
    if not isinstance(questions, list) or not questions:
        raise ContentUnavailable(f"Scenario {scenario_id} has no questions")
    return Scenario(
        id=scenario_id,
        text=str(raw.get("scenario") or ""),
        questions=tuple(_parse_question(q) for q in questions),
    )


def parse_scenario_payload(payload: Dict[str, Any]) -> LoadedContent:
    """Validate a scenarios response body and convert it into immutable content."""
    raw_scenarios: Optional[List[Any]] = payload.get("psy_questions") if isinstance(payload, dict) else None
    if not isinstance(raw_scenarios, list) or not raw_scenarios:
        raise ContentUnavailable("No scenarios available")

    scenarios = tuple(_parse_scenario(item) for item in raw_scenarios)
    seen: set[int] = set()
    for scenario in scenarios:
        if scenario.id in seen:
            raise ContentUnavailable(f"Duplicate scenario id {scenario.id}")
        seen.add(scenario.id)

    department = payload.get("department") or UNKNOWN_DEPARTMENT
    return LoadedContent(scenarios=scenarios, department=str(department))


class ContentLoader:
    """Fetches exactly one ScenarioSet; a failure is terminal until the page is reloaded."""

    def __init__(self, api) -> None:
        self.api = api
        self.state = LoaderState.LOADING
        self.error: Optional[str] = None
        self.content: Optional[LoadedContent] = None

    async def load(self, job_id: int, company_id: int) -> LoadedContent:
        if self.state is LoaderState.READY and self.content is not None:
            return self.content
        if self.state is LoaderState.FAILED:
            raise ContentUnavailable(self.error or "Scenario content unavailable")

        try:
            payload = await self.api.fetch_scenarios(job_id, company_id)
            content = parse_scenario_payload(payload)
        except AssessmentApiError as exc:
            self._fail(str(exc))
            raise ContentUnavailable(str(exc)) from exc
        except ContentUnavailable as exc:
            self._fail(str(exc))
            raise

        self.content = content
        self.state = LoaderState.READY
        logger.info(
            "Loaded %d scenarios for job %s / company %s (%s)",
            len(content.scenarios),
            job_id,
            company_id,
            content.department,
        )
        return content

    def _fail(self, reason: str) -> None:
        logger.error("Error fetching scenarios and questions: %s", reason)
        self.state = LoaderState.FAILED
        self.error = reason

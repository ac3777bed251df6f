"""Scenario content, session cursor and per-question answer types."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TypedDict


class QuestionPayload(TypedDict, total=False):
    """A question as returned by the scenarios endpoint."""

    question: str
    points: float


class ScenarioPayload(TypedDict, total=False):
    """A scenario as returned by the scenarios endpoint."""

    scenario_id: int
    scenario: str
    questions: List[QuestionPayload]


class QuestionResponse(TypedDict):
    """One answered question inside a save_psychometric_response body."""

    questionIndex: int
    responseText: str
    questionText: str
    points: float


class ScenarioResponse(TypedDict):
    scenarioId: int
    scenario: str
    questions: List[QuestionResponse]


@dataclass(frozen=True)
class Question:
    text: str
    points: float = 0.0


@dataclass(frozen=True)
class Scenario:
    id: int
    text: str
    questions: Tuple[Question, ...]


ScenarioSet = Tuple[Scenario, ...]


@dataclass(frozen=True)
class SessionPosition:
    """Cursor into a ScenarioSet. Only ever moves forward."""

    scenario_index: int = 0
    question_index: int = 0

    def scenario(self, scenarios: ScenarioSet) -> Scenario:
        return scenarios[self.scenario_index]

    def question(self, scenarios: ScenarioSet) -> Question:
        return scenarios[self.scenario_index].questions[self.question_index]

    def is_valid(self, scenarios: ScenarioSet) -> bool:
        if not 0 <= self.scenario_index < len(scenarios):
            return False
        return 0 <= self.question_index < len(scenarios[self.scenario_index].questions)

    def is_last(self, scenarios: ScenarioSet) -> bool:
        """True when this is the last question of the last scenario."""
        return (
            self.scenario_index == len(scenarios) - 1
            and self.question_index == len(scenarios[self.scenario_index].questions) - 1
        )

    def advance(self, scenarios: ScenarioSet) -> Optional["SessionPosition"]:
        """Return the next position, or None when there is nothing left to ask.

        The question index moves first; once a scenario is exhausted the
        scenario index moves and the question index resets to 0.
        """
        if self.question_index < len(scenarios[self.scenario_index].questions) - 1:
            return SessionPosition(self.scenario_index, self.question_index + 1)
        if self.scenario_index < len(scenarios) - 1:
            return SessionPosition(self.scenario_index + 1, 0)
        return None


@dataclass
class AnswerDraft:
    """Transient answer for the active question; flushed and discarded on every advance."""

    scenario_id: int
    question_index: int
    transcript_text: str = ""
    video_segment: Any = None

    def to_response_data(self, scenario: Scenario) -> Dict[str, ScenarioResponse]:
        """Build the ``responseData`` body the scoring service expects."""
        question = scenario.questions[self.question_index]
        return {
            f"scenario_{scenario.id}": {
                "scenarioId": scenario.id,
                "scenario": scenario.text,
                "questions": [
                    {
                        "questionIndex": self.question_index,
                        "responseText": self.transcript_text,
                        "questionText": question.text,
                        "points": question.points,
                    }
                ],
            }
        }


@dataclass
class SessionRecord:
    """Identity of a started session plus its wall-clock elapsed time.

    ``start_timestamp`` is a monotonic clock reading. ``elapsed_seconds`` is
    always recomputed from it, never accumulated.
    """

    assessment_id: Any
    start_timestamp: float
    elapsed_seconds: int = field(default=0)

    def elapsed_at(self, now: float) -> int:
        return max(0, int(math.floor(now - self.start_timestamp)))

    def refresh(self, now: float) -> int:
        self.elapsed_seconds = self.elapsed_at(now)
        return self.elapsed_seconds

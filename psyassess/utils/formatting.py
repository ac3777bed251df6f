"""Display helpers for the assessment page."""
from __future__ import annotations

from typing import Iterable

from psyassess.models.assessment import Scenario, SessionPosition


def format_elapsed(seconds: int | float) -> str:
    """Format a second count as zero-padded ``MM:SS`` (minutes are not wrapped at 60)."""
    total = max(0, int(seconds))
    minutes, remaining = divmod(total, 60)
    return f"{minutes:02d}:{remaining:02d}"


def total_points(scenarios: Iterable[Scenario]) -> float:
    """Sum the point value of every question in the set."""
    return round(sum(q.points for scenario in scenarios for q in scenario.questions), 2)


def progress_label(position: SessionPosition, scenarios: tuple[Scenario, ...]) -> str:
    """Counter text shown above the prompt, e.g. ``Scenario 2/3 · Question 1/4``."""
    scenario = position.scenario(scenarios)
    return (
        f"Scenario {position.scenario_index + 1}/{len(scenarios)} · "
        f"Question {position.question_index + 1}/{len(scenario.questions)}"
    )

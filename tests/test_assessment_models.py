import random

import pytest

from psyassess.models.assessment import AnswerDraft, Question, Scenario, SessionPosition, SessionRecord
from psyassess.utils.formatting import format_elapsed, progress_label, total_points


def build_set(*question_counts):
    return tuple(
        Scenario(id=100 + i, text=f"scenario {i}", questions=tuple(Question(f"q{i}.{j}", 1) for j in range(n)))
        for i, n in enumerate(question_counts)
    )


def walk(scenarios):
    position = SessionPosition()
    visited = [position]
    while (position := position.advance(scenarios)) is not None:
        visited.append(position)
    return visited


def test_advance_order_for_one_and_two_questions():
    scenarios = build_set(1, 2)

    assert walk(scenarios) == [SessionPosition(0, 0), SessionPosition(1, 0), SessionPosition(1, 1)]
    assert SessionPosition(1, 1).is_last(scenarios)
    assert not SessionPosition(1, 0).is_last(scenarios)


def test_random_sets_stay_in_range_and_monotonic():
    rng = random.Random(7)
    for _ in range(50):
        counts = [rng.randint(1, 4) for _ in range(rng.randint(1, 5))]
        scenarios = build_set(*counts)
        visited = walk(scenarios)

        assert len(visited) == sum(counts)
        assert all(p.is_valid(scenarios) for p in visited)
        for prev, cur in zip(visited, visited[1:]):
            assert cur.scenario_index >= prev.scenario_index
            if cur.scenario_index != prev.scenario_index:
                assert cur.question_index == 0
        assert visited[-1].is_last(scenarios)


def test_answer_draft_response_body():
    scenario = Scenario(id=9, text="Budget cut", questions=(Question("What goes first?", 4.5),))
    draft = AnswerDraft(scenario_id=9, question_index=0, transcript_text="Travel spend")

    assert draft.to_response_data(scenario) == {
        "scenario_9": {
            "scenarioId": 9,
            "scenario": "Budget cut",
            "questions": [
                {
                    "questionIndex": 0,
                    "responseText": "Travel spend",
                    "questionText": "What goes first?",
                    "points": 4.5,
                }
            ],
        }
    }


def test_session_record_recomputes_instead_of_accumulating():
    record = SessionRecord(assessment_id=1, start_timestamp=50.0)

    assert record.refresh(175.9) == 125
    assert record.refresh(51.0) == 1
    assert record.elapsed_seconds == 1
    assert record.elapsed_at(10.0) == 0


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00"), (5, "00:05"), (125, "02:05"), (599, "09:59"), (3600, "60:00"), (-3, "00:00")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_progress_label_and_total_points():
    scenarios = build_set(1, 3)

    assert progress_label(SessionPosition(1, 2), scenarios) == "Scenario 2/2 · Question 3/3"
    assert total_points(scenarios) == 4

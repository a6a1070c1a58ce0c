import pytest

from novah.schemas.research import StepStatus, StepType
from novah.services.thinking import ThinkingStepTracker


def test_ids_are_assigned_monotonically_from_one():
    tracker = ThinkingStepTracker()
    first = tracker.add(StepType.planning, "Plan", "...")
    second = tracker.start(StepType.searching, "Search", "...")
    third = tracker.add(StepType.learning, "Learn", "...", status=StepStatus.complete)
    assert [first.id, second.id, third.id] == [1, 2, 3]
    assert [s.id for s in tracker.steps] == [1, 2, 3]


def test_status_advances_but_never_regresses():
    tracker = ThinkingStepTracker()
    step = tracker.add(StepType.planning, "Plan", "...")
    tracker.advance(step.id, StepStatus.processing)
    tracker.complete(step.id, content="done", data={"queries": []})

    assert tracker.get(step.id).status is StepStatus.complete
    assert tracker.get(step.id).content == "done"
    with pytest.raises(ValueError):
        tracker.advance(step.id, StepStatus.processing)


def test_complete_without_content_keeps_original_text():
    tracker = ThinkingStepTracker()
    step = tracker.start(StepType.reflection, "Reflect", "Evaluating...")
    tracker.complete(step.id)
    assert tracker.get(step.id).content == "Evaluating..."


def test_unknown_step_id_raises_key_error():
    with pytest.raises(KeyError):
        ThinkingStepTracker().get(42)


def test_steps_returns_copies():
    tracker = ThinkingStepTracker()
    tracker.add(StepType.planning, "Plan", "...")
    snapshot = tracker.steps
    snapshot[0].status = StepStatus.complete
    assert tracker.get(1).status is StepStatus.pending


def test_finalize_marks_every_step_complete():
    tracker = ThinkingStepTracker()
    tracker.add(StepType.planning, "Plan", "...")
    tracker.start(StepType.searching, "Search", "...")
    steps = tracker.finalize()
    assert all(s.status is StepStatus.complete for s in steps)

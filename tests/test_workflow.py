"""
Tests for WorkflowTracker
"""

import random
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from supervision.models import PHASE_ORDER, WorkflowPhase
from supervision.workflow import WorkflowTracker
from tests.test_utils import FakeClock


def test_initial_state():
    tracker = WorkflowTracker()

    assert tracker.current_phase is WorkflowPhase.PRD_ANALYSIS
    status = tracker.get_status()
    assert status["phase"] == "prd_analysis"
    assert status["progress"] == 0
    assert status["phase_count"] == 7
    assert not status["is_complete"]


def test_advance_moves_one_phase_and_resets_timer():
    clock = FakeClock()
    tracker = WorkflowTracker(clock=clock)
    clock.advance(12)

    transition = tracker.advance("prd_analysis_complete")

    assert transition.from_phase is WorkflowPhase.PRD_ANALYSIS
    assert transition.to_phase is WorkflowPhase.CLAUDE_MD_CREATION
    assert transition.progress == pytest.approx(1 / 7)
    assert tracker.phase_start_time == clock.now
    assert tracker.get_status()["phase_duration"] == 0


def test_completion_is_sticky():
    tracker = WorkflowTracker()
    for _ in range(len(PHASE_ORDER) - 1):
        assert tracker.advance("step") is not None

    assert tracker.current_phase is WorkflowPhase.COMPLETION
    assert tracker.advance("extra") is None
    assert tracker.record_progress_marker("completion") == []
    assert tracker.current_phase_index == len(PHASE_ORDER) - 1


def test_index_is_monotonic_for_any_sequence():
    rng = random.Random(42)
    tracker = WorkflowTracker()
    previous = tracker.current_phase_index

    for _ in range(200):
        if rng.random() < 0.3:
            tracker.advance("random")
        else:
            tracker.record_progress_marker(rng.choice(["implementation", "file_creation", "testing", "coding", "other"]))
        assert previous <= tracker.current_phase_index <= len(PHASE_ORDER) - 1
        previous = tracker.current_phase_index


def test_three_implementation_markers_advance_to_implementation():
    tracker = WorkflowTracker()
    for _ in range(3):
        tracker.advance("setup")
    assert tracker.current_phase is WorkflowPhase.REQUIREMENTS_RESOLUTION

    assert tracker.record_progress_marker("file_creation") == []
    assert tracker.record_progress_marker("implementation") == []
    transitions = tracker.record_progress_marker("coding")

    assert len(transitions) == 1
    assert tracker.current_phase is WorkflowPhase.IMPLEMENTATION


def test_unrelated_marker_resets_streak():
    tracker = WorkflowTracker()
    for _ in range(3):
        tracker.advance("setup")

    tracker.record_progress_marker("implementation")
    tracker.record_progress_marker("implementation")
    tracker.record_progress_marker("testing")
    tracker.record_progress_marker("implementation")

    assert tracker.current_phase is WorkflowPhase.REQUIREMENTS_RESOLUTION


def test_testing_markers_advance_to_validation():
    tracker = WorkflowTracker()
    for _ in range(4):
        tracker.advance("setup")

    tracker.record_progress_marker("testing")
    tracker.record_progress_marker("testing")

    assert tracker.current_phase is WorkflowPhase.VALIDATION


def test_completion_marker_walks_to_the_end():
    tracker = WorkflowTracker()
    for _ in range(3):
        tracker.advance("setup")

    transitions = tracker.record_progress_marker("completion")

    assert [t.to_phase for t in transitions] == [
        WorkflowPhase.IMPLEMENTATION, WorkflowPhase.VALIDATION, WorkflowPhase.COMPLETION,
    ]
    assert tracker.is_complete
    assert tracker.get_status()["progress"] == pytest.approx(6 / 7)


def test_interventions_and_approvals_are_recorded():
    tracker = WorkflowTracker()
    tracker.record_intervention({"type": "critical_confusion"})
    tracker.record_approval({"line": "May I create a.js?"})

    assert tracker.interventions[0]["phase"] == "prd_analysis"
    assert tracker.approvals[0]["line"] == "May I create a.js?"
    status = tracker.get_status()
    assert status["interventions"] == 1
    assert status["approvals"] == 1

"""
Tests for DecisionEngine and ResponseThrottle
"""

import asyncio
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from supervision.context_provider import ContextProvider
from supervision.decision_engine import DecisionEngine, ResponseThrottle, normalize_question
from supervision.models import DecisionKind, ProjectContext, RequestShape, SupervisionMode
from supervision.patterns import PatternClassifier
from tests.test_utils import FakeClock, SAMPLE_PRD, TempWorkspace, create_project_files


@pytest.fixture
def workspace():
    with TempWorkspace() as path:
        create_project_files(path, prd=False)
        yield path


@pytest.fixture
def provider(workspace):
    provider = ContextProvider(workspace)
    provider.initialize(SAMPLE_PRD)
    return provider


def decide(engine, line, **kwargs):
    issues = PatternClassifier().analyze(line)
    return engine.decide(issues, line, **kwargs)


def test_clarification_gets_context_injection(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "Could you please clarify the requirements?")

    assert decision.kind is DecisionKind.CONTEXT_INJECTION
    assert not decision.escalate
    for requirement in provider.context.requirements:
        assert requirement in decision.response_text


def test_context_injection_without_requirements_escalates_in_balanced(workspace):
    provider = ContextProvider(workspace)
    provider.initialize("")
    engine = DecisionEngine(provider)

    decision = decide(engine, "I don't understand what to build")

    assert decision.kind is DecisionKind.CONTEXT_INJECTION
    assert decision.escalate


def test_permissive_promotes_above_threshold(workspace):
    provider = ContextProvider(workspace)
    provider.initialize("")
    engine = DecisionEngine(provider, mode=SupervisionMode.PERMISSIVE)

    decision = decide(engine, "I don't understand what to build")

    assert decision.confidence > 0.4
    assert not decision.escalate


def test_strict_escalates_below_point_nine(provider):
    engine = DecisionEngine(provider, mode=SupervisionMode.STRICT)

    decision = decide(engine, "Could you please clarify the requirements?")

    assert decision.confidence < 0.9
    assert decision.escalate


def test_mode_override_per_call(provider):
    engine = DecisionEngine(provider, mode=SupervisionMode.BALANCED)

    decision = decide(engine, "Could you please clarify the requirements?", mode=SupervisionMode.STRICT)

    assert decision.escalate
    assert engine.mode is SupervisionMode.BALANCED


def test_permission_is_auto_approved(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "May I create the following files: a, b, c?")

    assert decision.kind is DecisionKind.AUTO_APPROVE
    assert decision.shape is RequestShape.PROCEDURAL
    assert decision.response_text == "Yes, please proceed."
    assert not decision.escalate


def test_yes_no_prompt_gets_short_answer(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "Would you like me to continue? (y/n)")

    assert decision.response_text == "y"


@pytest.mark.parametrize("mode", list(SupervisionMode))
def test_review_patterns_always_escalate(provider, mode):
    engine = DecisionEngine(provider, mode=mode)

    decision = decide(engine, "Would you like me to delete the old files?")

    assert decision.rule_matched == "delete_files"
    assert decision.confidence <= 0.4
    assert decision.escalate


def test_unsatisfied_conditions_reduce_confidence(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "Do you want me to create tests for the parser?")

    assert decision.rule_matched == "create_test"
    assert decision.conditions_satisfied == ("follows_naming_convention",)
    assert decision.confidence == pytest.approx(0.95 * 0.6)


def test_satisfied_conditions_keep_confidence():
    with TempWorkspace() as workspace:
        create_project_files(workspace, tests_dir=True)
        provider = ContextProvider(workspace)
        provider.initialize()
        engine = DecisionEngine(provider, mode=SupervisionMode.STRICT)

        decision = decide(engine, "Do you want me to create tests for the parser?")

        assert decision.confidence == pytest.approx(0.95)
        assert not decision.escalate


def test_conditions_use_the_supplied_context(provider, workspace):
    engine = DecisionEngine(provider)
    supplied = ProjectContext(working_directory=str(workspace), has_tests=True)

    decision = decide(engine, "Do you want me to create tests for the parser?", context=supplied)

    assert not provider.context.has_tests
    assert decision.conditions_satisfied == ("has_test_directory", "follows_naming_convention")
    assert decision.confidence == pytest.approx(0.95)


def test_technical_choice_picks_detected_framework(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "Should I use Vue or React for the frontend?")

    assert decision.shape is RequestShape.TECHNICAL_CHOICE
    assert decision.response_text.startswith("I'd suggest React")


def test_preference_is_grounded_in_requirements(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "What visual style do you prefer for the app?")

    assert decision.shape is RequestShape.PREFERENCE
    assert "Users must be able to add todo items" in decision.response_text
    assert "judgment" in decision.response_text


def test_error_recovery_guidance(provider):
    engine = DecisionEngine(provider)

    decision = decide(engine, "npm error: command not found")

    assert decision.kind is DecisionKind.ERROR_RECOVERY
    assert "installed" in decision.response_text
    assert provider.context.working_directory in decision.response_text
    assert not decision.escalate


def test_critical_errors_escalate(provider):
    engine = DecisionEngine(provider, mode=SupervisionMode.PERMISSIVE)

    decision = decide(engine, "SyntaxError: Unexpected token '}'")

    assert decision.kind is DecisionKind.ERROR_RECOVERY
    assert decision.escalate


def test_location_question_uses_structure(provider):
    engine = DecisionEngine(provider)
    line = "Where should I create the new module?"
    issues = PatternClassifier().analyze(line)

    decision = engine.decide(issues, line)

    assert "src/" in decision.response_text


def test_duplicate_question_is_suppressed(provider):
    clock = FakeClock()
    engine = DecisionEngine(provider, clock=clock)

    first = decide(engine, "Shall I proceed with the setup?")
    clock.advance(2)
    second = decide(engine, "shall I   proceed with the setup")
    clock.advance(6)
    third = decide(engine, "Shall I proceed with the setup?")

    assert not first.suppressed
    assert second.suppressed
    assert second.response_text == ""
    assert not third.suppressed
    assert engine.get_statistics()["suppressed"] == 1


def test_released_question_is_answered_again(provider):
    clock = FakeClock()
    engine = DecisionEngine(provider, clock=clock)

    first = decide(engine, "Shall I proceed with the setup?")
    engine.release("Shall I proceed with the setup?")
    clock.advance(1)
    second = decide(engine, "Shall I proceed with the setup?")

    assert not first.suppressed
    assert not second.suppressed
    assert engine.get_statistics()["suppressed"] == 0


def test_history_is_bounded(provider):
    engine = DecisionEngine(provider, history_limit=3)

    for i in range(5):
        decide(engine, f"Error: step {i} failed to run")

    history = engine.get_decision_history(limit=10)
    assert len(history) == 3
    assert history[-1].question_text == "Error: step 4 failed to run"
    assert engine.get_statistics()["total_decisions"] == 5


def test_statistics(provider):
    engine = DecisionEngine(provider)

    decide(engine, "May I create the following files: a, b, c?")
    decide(engine, "Would you like me to delete the old files?")

    stats = engine.get_statistics()
    assert stats["auto_approved"] == 1
    assert stats["manual_review"] == 1
    assert stats["by_category"] == {"permission": 2}
    assert stats["auto_approval_rate"] == pytest.approx(0.5)


def test_normalize_question():
    assert normalize_question("  Shall I   PROCEED?! ") == "shall i proceed"


@pytest.mark.asyncio
async def test_throttle_spaces_sequential_deliveries():
    clock = FakeClock()
    throttle = ResponseThrottle(min_interval=3.0, clock=clock, sleep=clock.sleep)

    times = [await throttle.wait_for_slot() for _ in range(5)]

    assert times[0] == 1000.0
    for earlier, later in zip(times, times[1:]):
        assert later - earlier >= 3.0
    assert all(wait <= 3.0 for wait in clock.sleeps)


@pytest.mark.asyncio
async def test_throttle_spaces_concurrent_deliveries():
    clock = FakeClock()
    throttle = ResponseThrottle(min_interval=3.0, clock=clock, sleep=clock.sleep)

    times = await asyncio.gather(*(throttle.wait_for_slot() for _ in range(4)))

    ordered = sorted(times)
    for earlier, later in zip(ordered, ordered[1:]):
        assert later - earlier >= 3.0


@pytest.mark.asyncio
async def test_throttle_does_not_wait_after_idle_period():
    clock = FakeClock()
    throttle = ResponseThrottle(min_interval=3.0, clock=clock, sleep=clock.sleep)

    await throttle.wait_for_slot()
    clock.advance(10)
    await throttle.wait_for_slot()

    assert clock.sleeps == []

from __future__ import annotations

from datetime import datetime, timezone

from quiz_core.engine import Phase
from quiz_core.storage import scoped_key
from quiz_core.types import CompletionStatus
from tests.conftest import ARTIFACT, build_quiz, make_session, tf_question


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def test_true_false_scenario_and_attempt_limit(store, clock):
    quiz = build_quiz([tf_question("q1", points=10)], maxAttempts=1)

    s = make_session(quiz, store, clock)
    assert s.open().phase == Phase.IN_PROGRESS
    s.answer("q1", "True")
    assert s.submit().phase == Phase.REPORTED
    assert (s.result.score, s.result.max_score, s.result.tier) == (10.0, 10.0, "fullMark")
    assert s.feedback_message() == quiz.settings.feedback_messages.full_mark

    again = make_session(quiz, store, clock)
    st = again.open()
    assert st.phase == Phase.BLOCKED
    assert st.block_reason == "attempts-exhausted"
    assert again.current_question() is None


def test_wrong_answer_is_poor(store, clock):
    quiz = build_quiz([tf_question("q1", points=10)], maxAttempts=1)
    s = make_session(quiz, store, clock)
    s.open()
    s.answer("q1", "False")
    s.submit()
    assert (s.result.score, s.result.max_score, s.result.tier) == (0.0, 10.0, "poor")


def test_third_attempt_blocked_with_two_allowed(store, clock):
    quiz = build_quiz(maxAttempts=2)
    for _ in range(2):
        s = make_session(quiz, store, clock)
        s.open()
        s.submit()
        assert s.state.phase == Phase.REPORTED
    third = make_session(quiz, store, clock)
    assert third.open().phase == Phase.BLOCKED
    assert store.get(scoped_key(ARTIFACT, "attempts"))["count"] == 2


def test_unlimited_attempts_by_default(store, clock):
    quiz = build_quiz()
    for n in range(1, 4):
        s = make_session(quiz, store, clock)
        s.open()
        assert s.state.attempt == n
        s.submit()


def test_scheduling_window(store, clock):
    quiz = build_quiz(
        schedulingEnabled=True,
        startTime=_iso(clock.now + 3600),
        endTime=_iso(clock.now + 7200),
        schedulingMessage="Opens at nine",
    )
    s = make_session(quiz, store, clock)
    st = s.open()
    assert (st.phase, st.block_reason, st.block_message) == (Phase.BLOCKED, "not-open", "Opens at nine")

    clock.advance(3700)
    assert s.retry().phase == Phase.IN_PROGRESS

    late = make_session(quiz, store, clock)
    clock.advance(4000)
    assert late.open().block_reason == "closed"


def test_scheduling_checked_before_attempts(store, clock):
    quiz = build_quiz(maxAttempts=1, schedulingEnabled=True, endTime=_iso(clock.now - 10))
    s = make_session(quiz, store, clock)
    assert s.open().block_reason == "closed"


def test_name_entry_and_welcome_delay(store, clock):
    quiz = build_quiz(skipNameEntry=False, messageDuration=3)
    s = make_session(quiz, store, clock)
    assert s.open().phase == Phase.WELCOME
    assert s.enter_name("   ").phase == Phase.WELCOME
    assert s.enter_name(" Mona ").phase == Phase.WELCOME
    clock.advance(1)
    assert s.tick().phase == Phase.WELCOME
    clock.advance(3)
    assert s.tick().phase == Phase.IN_PROGRESS
    s.submit()
    assert s.result.name == "Mona"


def test_events_in_wrong_phase_are_ignored(store, clock):
    quiz = build_quiz(skipNameEntry=False)
    s = make_session(quiz, store, clock)
    before = s.open()
    after = s.answer("q1", "True")
    assert after == before
    assert s.submit().phase == Phase.WELCOME


def test_answer_only_for_current_question(store, clock):
    s = make_session(build_quiz(), store, clock)
    s.open()
    s.answer("q3", ["b"])
    assert s.state.answers == {}
    s.answer("q1", "True")
    s.answer("q1", "")
    assert "q1" not in s.state.answers


def test_shuffle_uses_injected_rng(store, clock):
    quiz = build_quiz(
        [tf_question(f"q{i}") for i in range(8)],
        shuffleQuestions=True,
    )
    a = make_session(quiz, store, clock, seed=1)
    b = make_session(quiz, store, clock, seed=1)
    a.open()
    order_a = list(a.state.order)
    a.submit()
    b.open()
    assert sorted(order_a) == sorted(q.id for q in quiz.questions)
    assert b.state.order == order_a


def test_clock_failure_opens_schedule_and_disables_timers(store, clock):
    quiz = build_quiz(
        schedulingEnabled=True,
        startTime=_iso(clock.now + 3600),
        timerEnabled=True,
        timerSeconds=30,
    )
    clock.broken = True
    s = make_session(quiz, store, clock)
    st = s.open()
    assert st.phase == Phase.IN_PROGRESS
    assert st.timers_enabled is False
    assert s.remaining_seconds() is None
    s.submit()
    assert s.result.status == CompletionStatus.COMPLETED


def test_revisit_allowed_within_visited_range(store, clock):
    s = make_session(build_quiz(), store, clock)
    s.open()
    s.next()
    s.next()
    assert s.state.position == 2
    s.goto(0)
    assert s.state.position == 0
    s.goto(5)
    assert s.state.position == 0
    s.next()
    assert s.previous().position == 0


def test_revisit_disabled_by_policy(store, clock):
    s = make_session(build_quiz(policy={"allowRevisit": False}), store, clock)
    s.open()
    s.next()
    assert s.previous().position == 1

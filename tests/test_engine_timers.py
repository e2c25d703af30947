from __future__ import annotations

from quiz_core.engine import Phase
from quiz_core.types import CompletionStatus
from tests.conftest import build_quiz, make_session, tf_question


def test_total_timer_expiry_auto_submits(store, clock):
    quiz = build_quiz(timerEnabled=True, timerMode="total", timerSeconds=60)
    s = make_session(quiz, store, clock)
    s.open()
    start = clock.now
    s.answer("q1", "True")
    clock.advance(30)
    assert s.remaining_seconds() == 30
    clock.advance(31)
    assert s.tick().phase == Phase.REPORTED
    assert s.result.status == CompletionStatus.TIMEOUT
    assert s.result.ended_at == start + 60
    assert s.result.score == 10.0


def test_expired_deadline_wins_over_late_answer(store, clock):
    quiz = build_quiz(timerEnabled=True, timerSeconds=10)
    s = make_session(quiz, store, clock)
    s.open()
    clock.advance(11)
    s.answer("q1", "True")
    assert s.state.phase == Phase.REPORTED
    assert s.result.answers == {}


def test_question_timer_advances_and_locks(store, clock):
    quiz = build_quiz(timerEnabled=True, timerMode="question", timerSeconds=30)
    s = make_session(quiz, store, clock)
    s.open()
    t0 = clock.now
    s.answer("q1", "True")

    clock.advance(31)
    st = s.tick()
    assert (st.position, st.timed_out) == (1, ["q1"])
    assert st.question_deadline == t0 + 60
    assert st.answers == {}

    s.answer("q1", "False")
    assert "q1" not in s.state.answers
    assert s.previous().position == 1

    clock.advance(40)
    assert s.tick().position == 2
    assert s.state.timed_out == ["q1", "q2"]

    clock.advance(20)
    s.tick()
    assert s.result.status == CompletionStatus.TIMEOUT
    assert s.result.ended_at == t0 + 90


def test_question_timer_restarts_on_next(store, clock):
    quiz = build_quiz(timerEnabled=True, timerMode="question", timerSeconds=30)
    s = make_session(quiz, store, clock)
    s.open()
    clock.advance(10)
    st = s.next()
    assert st.position == 1
    assert s.remaining_seconds() == 30


def test_timer_off_never_expires(store, clock):
    s = make_session(build_quiz(), store, clock)
    s.open()
    clock.advance(10_000)
    assert s.tick().phase == Phase.IN_PROGRESS
    assert s.remaining_seconds() is None


def test_question_timeout_scores_zero_even_if_answered_in_time(store, clock):
    quiz = build_quiz([tf_question("q1"), tf_question("q2")], timerEnabled=True, timerMode="question", timerSeconds=30)
    s = make_session(quiz, store, clock)
    s.open()
    s.answer("q1", "True")
    clock.advance(31)
    s.tick()
    clock.advance(31)
    s.tick()

    assert s.result.status == CompletionStatus.TIMEOUT
    assert s.result.score == 0.0
    assert [(o.question_id, o.status) for o in s.result.outcomes] == [("q1", "unanswered"), ("q2", "unanswered")]
    assert s.result.answers == {}

from __future__ import annotations

from quiz_core.engine import Phase, SessionState
from quiz_core.storage import MemoryStore, scoped_key
from quiz_core.types import CompletionStatus
from tests.conftest import ARTIFACT, build_quiz, make_session


def _timed_quiz(**extra):
    return build_quiz(timerEnabled=True, timerMode="total", timerSeconds=300, **extra)


def _leave_midway(store, clock, quiz):
    s = make_session(quiz, store, clock)
    s.open()
    s.answer("q1", "True")
    s.next()
    return s


def test_resume_restores_position_answers_and_time(store, clock):
    quiz = _timed_quiz()
    first = _leave_midway(store, clock, quiz)
    clock.advance(100)

    again = make_session(quiz, store, clock)
    st = again.open()
    assert st.phase == Phase.GATING
    assert st.resume_offer == first.state.session_id

    st = again.resume(True)
    assert st.phase == Phase.IN_PROGRESS
    assert st.session_id == first.state.session_id
    assert (st.position, st.answers) == (1, {"q1": "True"})
    assert again.remaining_seconds() == 200

    again.submit()
    assert again.result.session_id == first.state.session_id
    assert store.get(scoped_key(ARTIFACT, "attempts"))["count"] == 1


def test_deadline_keeps_running_while_closed(store, clock):
    quiz = _timed_quiz()
    first = _leave_midway(store, clock, quiz)
    deadline = first.state.deadline
    clock.advance(1000)

    again = make_session(quiz, store, clock)
    again.open()
    again.resume(True)
    assert again.state.phase == Phase.REPORTED
    assert again.result.status == CompletionStatus.TIMEOUT
    assert again.result.ended_at == deadline


def test_decline_records_abandoned_without_attempt(store, clock):
    quiz = _timed_quiz(maxAttempts=1)
    first = _leave_midway(store, clock, quiz)

    again = make_session(quiz, store, clock)
    again.open()
    st = again.resume(False)
    assert st.phase == Phase.IN_PROGRESS
    assert st.session_id != first.state.session_id
    assert st.attempt == 1

    abandoned = again.reporter.abandoned()
    assert [r["sessionId"] for r in abandoned] == [first.state.session_id]
    assert abandoned[0]["status"] == "abandoned"
    assert abandoned[0]["percentage"] is None
    assert store.get(scoped_key(ARTIFACT, "attempts")) is None

    snap = store.get(scoped_key(ARTIFACT, "session"))
    assert snap["session_id"] == st.session_id


def test_resume_offer_bypasses_attempt_limit(store, clock):
    quiz = _timed_quiz(maxAttempts=1)
    # a snapshot left by another tab before the limit was reached
    stale = _leave_midway(MemoryStore(), clock, quiz)
    done = make_session(quiz, store, clock)
    done.open()
    done.submit()
    store.put_many({scoped_key(ARTIFACT, "session"): stale.state.to_dict()})

    again = make_session(quiz, store, clock)
    assert again.open().resume_offer == stale.state.session_id
    st = again.resume(False)
    assert (st.phase, st.block_reason) == (Phase.BLOCKED, "attempts-exhausted")


def test_completed_snapshot_is_finished_on_open(store, clock):
    quiz = build_quiz()
    s = make_session(quiz, store, clock)
    s.open()
    s.answer("q1", "True")
    # crash between scoring and the report write
    s.state.phase = Phase.COMPLETED
    s.state.status = CompletionStatus.COMPLETED
    store.put_many({scoped_key(ARTIFACT, "session"): s.state.to_dict()})

    again = make_session(quiz, store, clock)
    assert again.open().phase == Phase.REPORTED
    assert again.result.score == 10.0
    assert store.get(scoped_key(ARTIFACT, "session")) is None
    assert store.get(scoped_key(ARTIFACT, "attempts"))["count"] == 1
    assert len(again.reporter.results()) == 1


def test_corrupted_snapshot_and_counter_treated_as_absent(store, clock):
    store.put_raw(scoped_key(ARTIFACT, "session"), "{not json")
    store.put_raw(scoped_key(ARTIFACT, "attempts"), '{"count": "many"}')
    s = make_session(build_quiz(maxAttempts=1), store, clock)
    st = s.open()
    assert st.phase == Phase.IN_PROGRESS
    assert st.attempt == 1


def test_malformed_snapshot_dict_is_rejected():
    assert SessionState.from_dict({"session_id": "x", "phase": "nope"}) is None
    assert SessionState.from_dict({"phase": "in-progress"}) is None
    assert SessionState.from_dict(["x"]) is None


def test_snapshot_round_trip(store, clock):
    s = _leave_midway(store, clock, _timed_quiz(preventSplitScreen=True))
    s.focus_lost("blur")
    restored = SessionState.from_dict(store.get(scoped_key(ARTIFACT, "session")))
    assert restored == s.state

from __future__ import annotations

import json
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest

from quiz_core.compiler import compile_quiz
from tests.conftest import build_quiz, mc_question, tf_question

NODE = shutil.which("node")
HARNESS = Path(__file__).parent / "js" / "harness.js"
T0 = 1_700_000_000.0

pytestmark = pytest.mark.skipif(NODE is None, reason="node is not installed")

OPEN = {"open": True}
SNAP = {"snap": True}
TICK = {"tick": True}
SUBMIT = {"dispatch": {"type": "submit"}}


def answer(qid: str, value) -> dict:
    return {"dispatch": {"type": "answer", "questionId": qid, "value": value}}


def advance(secs: float) -> dict:
    return {"advance": secs}


def run_page(tmp_path, quiz, steps) -> list[dict]:
    """Compile ``quiz``, run its embedded script through ``steps`` and return the snapshots."""

    page = compile_quiz(quiz).write(tmp_path / "quiz.html")
    script = tmp_path / "steps.json"
    script.write_text(json.dumps(steps), encoding="utf-8")
    proc = subprocess.run(
        [NODE, str(HARNESS), str(page), str(script)],
        capture_output=True, text=True, timeout=60, check=True,
    )
    return json.loads(proc.stdout)


@pytest.mark.parametrize("choice,score,tier", [("True", 10, "fullMark"), ("False", 0, "poor")])
def test_true_false_scenario_then_blocked(tmp_path, choice, score, tier):
    quiz = build_quiz([tf_question("q1", points=10)], maxAttempts=1)
    done, again = run_page(tmp_path, quiz, [OPEN, answer("q1", choice), SUBMIT, SNAP, OPEN, SNAP])

    assert done["state"]["phase"] == "reported"
    assert (done["result"]["score"], done["result"]["maxScore"], done["result"]["tier"]) == (score, 10, tier)
    assert done["doc"]["attempts"]["count"] == 1
    assert "session" not in done["doc"]

    assert again["state"]["phase"] == "blocked"
    assert again["state"]["blockReason"] == "attempts-exhausted"
    assert again["state"]["order"] == []


def test_third_attempt_blocked_when_two_allowed(tmp_path):
    quiz = build_quiz(maxAttempts=2)
    (snap,) = run_page(tmp_path, quiz, [OPEN, SUBMIT, OPEN, SUBMIT, OPEN, SNAP])
    assert snap["state"]["phase"] == "blocked"
    assert snap["doc"]["attempts"]["count"] == 2
    assert len(snap["doc"]["results"]) == 2


def test_total_timer_expiry_submits_captured_answers(tmp_path):
    quiz = build_quiz([tf_question("q1", points=10)], timerEnabled=True, timerMode="total", timerSeconds=60)
    (snap,) = run_page(tmp_path, quiz, [OPEN, answer("q1", "True"), advance(61), TICK, SNAP])
    result = snap["result"]
    assert result["status"] == "auto-submitted-on-timeout"
    assert result["endedAt"] == T0 + 60
    assert result["score"] == 10


def test_question_timeout_counts_as_unanswered(tmp_path):
    quiz = build_quiz([tf_question("q1"), tf_question("q2")], timerEnabled=True, timerMode="question", timerSeconds=30)
    (snap,) = run_page(tmp_path, quiz, [OPEN, answer("q1", "True"), advance(31), TICK, advance(31), TICK, SNAP])
    result = snap["result"]
    assert result["status"] == "auto-submitted-on-timeout"
    assert result["score"] == 0
    assert [o["status"] for o in result["outcomes"]] == ["unanswered", "unanswered"]
    assert result["answers"] == {}


def test_reload_offers_resume_with_same_deadline(tmp_path):
    quiz = build_quiz(timerEnabled=True, timerMode="total", timerSeconds=300)
    steps = [
        OPEN, answer("q1", "True"), {"dispatch": {"type": "navigate", "target": "next"}}, SNAP,
        advance(100), OPEN, SNAP,
        {"dispatch": {"type": "resume", "accept": True}}, SNAP,
    ]
    left, offered, resumed = run_page(tmp_path, quiz, steps)

    assert offered["state"]["phase"] == "gating"
    assert offered["state"]["resumeOffer"] == left["state"]["sessionId"]

    st = resumed["state"]
    assert st["phase"] == "in-progress"
    assert st["sessionId"] == left["state"]["sessionId"]
    assert (st["position"], st["answers"]) == (1, {"q1": "True"})
    assert st["deadline"] == left["state"]["deadline"]
    assert st["deadline"] - resumed["now"] == 200


@pytest.mark.parametrize("naive", [False, True])
def test_future_start_blocks_until_open(tmp_path, naive):
    opens = datetime.fromtimestamp(T0 + 3600, tz=timezone.utc)
    if naive:
        opens = opens.astimezone().replace(tzinfo=None)
    quiz = build_quiz(schedulingEnabled=True, startTime=opens.isoformat())
    steps = [OPEN, SNAP, advance(3601), {"dispatch": {"type": "retry"}}, SNAP]
    blocked, started = run_page(tmp_path, quiz, steps)
    assert (blocked["state"]["phase"], blocked["state"]["blockReason"]) == ("blocked", "not-open")
    assert started["state"]["phase"] == "in-progress"


def test_choice_scoring_and_strike_escalation(tmp_path):
    quiz = build_quiz(
        [mc_question("m", correct=("b", "c"), points=2), tf_question("t", points=2)],
        preventSplitScreen=True,
        policy={"anticheat": {"strikeLimit": 2, "reaction": "submit"}},
    )
    blur = {"dispatch": {"type": "focusLost", "kind": "blur"}}
    steps = [OPEN, answer("m", ["c", "b"]), blur, advance(0.5), blur, SNAP, advance(2), blur, SNAP]
    warned, ended = run_page(tmp_path, quiz, steps)

    assert warned["state"]["phase"] == "in-progress"
    assert [s["reaction"] for s in warned["state"]["strikes"]] == ["warn"]
    assert warned["state"]["warning"] == "blur"

    result = ended["result"]
    assert result["status"] == "auto-submitted-on-violation"
    assert result["outcomes"][0]["status"] == "correct"
    assert (result["score"], result["percentage"], result["tier"]) == (2, 50, "fair")


def test_screen_kept_while_typing(tmp_path):
    fill = {"id": "f", "type": "Fill in the blank", "text": "2+2", "correctAnswer": "4"}
    quiz = build_quiz([fill], skipNameEntry=False)
    steps = [
        OPEN, SNAP,
        {"dispatch": {"type": "focusLost", "kind": "blur"}}, {"dispatch": {"type": "focusRegained"}}, SNAP,
        {"dispatch": {"type": "name", "name": "Mona"}}, SNAP,
        answer("f", " 4 "), TICK, SNAP,
        SUBMIT, SNAP,
    ]
    welcome, after_blur, started, typed, done = run_page(tmp_path, quiz, steps)

    assert welcome["state"]["phase"] == "welcome"
    assert after_blur["screenBuilds"] == welcome["screenBuilds"]
    assert started["screenBuilds"] == welcome["screenBuilds"] + 1
    assert typed["screenBuilds"] == started["screenBuilds"]
    assert done["result"]["outcomes"][0]["status"] == "correct"
    assert done["result"]["name"] == "Mona"

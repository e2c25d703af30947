from __future__ import annotations

import random
from typing import Any

import pytest

from quiz_core.content import quiz_from_dict
from quiz_core.engine import DeliverySession
from quiz_core.reporter import ResultReporter
from quiz_core.storage import MemoryStore
from quiz_core.types import QuizData

ARTIFACT = "a1b2c3d4e5f60718"


def tf_question(qid: str = "q1", points: float = 10, correct: str = "True") -> dict[str, Any]:
    return {
        "id": qid,
        "type": "True/False",
        "text": f"Statement {qid}",
        "points": points,
        "choices": [
            {"id": "True", "text": "True", "isCorrect": correct == "True"},
            {"id": "False", "text": "False", "isCorrect": correct == "False"},
        ],
    }


def mc_question(qid: str, correct: tuple[str, ...] = ("b",), points: float = 1) -> dict[str, Any]:
    return {
        "id": qid,
        "type": "Multiple Choice",
        "text": f"Pick for {qid}",
        "points": points,
        "choices": [{"id": c, "text": c.upper(), "isCorrect": c in correct} for c in ("a", "b", "c", "d")],
    }


def build_quiz_dict(
    questions: list[dict[str, Any]] | None = None,
    policy: dict[str, Any] | None = None,
    **settings: Any,
) -> dict[str, Any]:
    """Deterministic quiz document in the editor's JSON shape."""

    base = {"title": "Sample quiz", "skipNameEntry": True, "messageDuration": 0}
    base.update(settings)
    raw: dict[str, Any] = {
        "questions": questions if questions is not None else [tf_question("q1"), mc_question("q2"), mc_question("q3")],
        "settings": base,
    }
    if policy is not None:
        raw["policy"] = policy
    return raw


def build_quiz(questions=None, policy=None, **settings) -> QuizData:
    return quiz_from_dict(build_quiz_dict(questions, policy, **settings))


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.broken = False

    def __call__(self) -> float:
        if self.broken:
            raise OSError("clock unavailable")
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


class RecordingTransport:
    def __init__(self, fail: int = 0):
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url: str, payload: dict, timeout: float) -> None:
        self.calls.append((url, payload))
        if self.fail:
            self.fail -= 1
            raise ConnectionError("network down")


def make_session(quiz: QuizData, store=None, clock=None, transport=None, seed: int = 7) -> DeliverySession:
    store = store if store is not None else MemoryStore()
    clock = clock or FakeClock()
    reporter = ResultReporter(
        store,
        ARTIFACT,
        quiz.settings,
        transport=transport or RecordingTransport(),
        clock=clock,
        sleep=lambda s: None,
        background=False,
    )
    return DeliverySession(quiz, ARTIFACT, store, reporter=reporter, clock=clock, rng=random.Random(seed))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()

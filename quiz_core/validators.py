from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from .types import QuestionType, QuizData, Question

CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)


class ValidationError(ValueError):
    """Compile-time rejection of a quiz; ``problems`` maps question ids to messages."""

    def __init__(self, problems: Dict[str, List[str]]):
        self.problems = {k: list(v) for k, v in problems.items()}
        detail = "; ".join(f"{k}: {', '.join(v)}" for k, v in self.problems.items())
        super().__init__(f"invalid quiz ({detail})")

    @property
    def question_ids(self) -> List[str]:
        return [k for k in self.problems if k not in ("quiz", "settings", "policy")]


def parse_timestamp(raw: Optional[str]) -> Optional[float]:
    """ISO-8601 -> epoch seconds; naive values are local wall time, as an editor datetime field produces."""

    if raw is None or str(raw).strip() == "":
        return None
    txt = str(raw).strip()
    if txt.endswith("Z"):
        txt = txt[:-1] + "+00:00"
    return datetime.fromisoformat(txt).timestamp()


def _question_problems(q: Question) -> List[str]:
    out: List[str] = []
    if not q.text.strip() and not q.image:
        out.append("empty prompt")
    if q.points < 0:
        out.append("negative points")
    ids = [c.id for c in q.choices]
    if len(set(ids)) != len(ids):
        out.append("duplicate choice ids")
    t = q.type
    if t in CHOICE_TYPES:
        if not q.choices:
            out.append("no choices")
        elif not q.correct_choice_ids():
            out.append("no choice marked correct")
        if t == QuestionType.TRUE_FALSE and len(q.choices) != 2:
            out.append("true/false needs exactly two choices")
    elif t == QuestionType.MATCHING:
        if not q.choices:
            out.append("no pairs")
        missing = [c.id for c in q.choices if not (c.match_text or "").strip()]
        if missing:
            out.append(f"pairs without match text: {', '.join(missing)}")
    elif t == QuestionType.FILL_IN_THE_BLANK:
        if not (q.correct_answer or "").strip():
            out.append("missing correctAnswer")
    return out


def _settings_problems(quiz: QuizData) -> List[str]:
    s = quiz.settings
    out: List[str] = []
    if s.timer_enabled and int(s.timer_seconds) <= 0:
        out.append("timerSeconds must be positive when the timer is enabled")
    if int(s.max_attempts) < 0:
        out.append("maxAttempts must be 0 (unlimited) or positive")
    if s.message_duration < 0:
        out.append("messageDuration must not be negative")
    try:
        start = parse_timestamp(s.start_time)
        end = parse_timestamp(s.end_time)
    except ValueError as e:
        out.append(f"scheduling: {e}")
    else:
        if s.scheduling_enabled and start is not None and end is not None and start >= end:
            out.append("startTime must be before endTime")
    return out


def _policy_problems(quiz: QuizData) -> List[str]:
    out: List[str] = []
    bounds = [v for _, v in quiz.policy.bands.ordered()]
    if any(not (0.0 < b < 100.0) for b in bounds):
        out.append("feedback bands must lie strictly between 0 and 100")
    if any(a <= b for a, b in zip(bounds, bounds[1:])):
        out.append("feedback bands must be strictly decreasing")
    if quiz.policy.anticheat.strike_limit < 1:
        out.append("anticheat strikeLimit must be at least 1")
    return out


def collect_problems(quiz: QuizData) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    if not quiz.questions:
        problems["quiz"] = ["quiz has no questions"]
    seen: set[str] = set()
    for q in quiz.questions:
        msgs = _question_problems(q)
        if q.id in seen:
            msgs.append("duplicate question id")
        seen.add(q.id)
        if msgs:
            problems.setdefault(q.id, []).extend(msgs)
    s_msgs = _settings_problems(quiz)
    if s_msgs:
        problems["settings"] = s_msgs
    p_msgs = _policy_problems(quiz)
    if p_msgs:
        problems["policy"] = p_msgs
    return problems


def validate_quiz(quiz: QuizData) -> None:
    problems = collect_problems(quiz)
    if problems:
        raise ValidationError(problems)

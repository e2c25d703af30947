from __future__ import annotations
from typing import Any, List, Mapping, Optional, Tuple
import re
import unicodedata

from .types import FeedbackBands, Question, QuestionOutcome, QuestionType

_WS_RX = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    """Fill-in-blank comparison key: NFKC, trimmed, single spaces, casefolded."""

    txt = unicodedata.normalize("NFKC", "" if value is None else str(value))
    return _WS_RX.sub(" ", txt).strip().casefold()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _selected_ids(value: Any) -> set[str]:
    if isinstance(value, str):
        return {value}
    if isinstance(value, (list, tuple, set)):
        return {str(v) for v in value}
    return set()


def _score_choice(q: Question, value: Any) -> bool:
    expected = set(q.correct_choice_ids())
    chosen = _selected_ids(value)
    return chosen == expected


def _score_matching(q: Question, value: Any) -> bool:
    pairs: Mapping[str, Any] = value if isinstance(value, Mapping) else {}
    authored = {c.id: normalize_text(c.match_text) for c in q.choices}
    wrong = [cid for cid, txt in pairs.items() if authored.get(str(cid)) != normalize_text(txt)]
    missing = [cid for cid in authored if cid not in pairs]
    return not wrong and not missing


def _score_blank(q: Question, value: Any) -> bool:
    return normalize_text(value) == normalize_text(q.correct_answer)


def is_auto_scorable(q: Question) -> bool:
    t = q.type
    if t == QuestionType.ESSAY:
        return False
    if t == QuestionType.OTHER:
        return bool(q.correct_choice_ids()) or bool((q.correct_answer or "").strip())
    return True


def score_question(q: Question, value: Any) -> QuestionOutcome:
    """
    Outcome for one question.
    Essays (and unkeyed "Other" questions) are flagged for manual review and
    contribute nothing to the automatic total.
    """
    possible = float(q.points)
    if not is_auto_scorable(q):
        status = "unanswered" if is_blank(value) else "manual_review"
        return QuestionOutcome(q.id, status, 0.0, 0.0, False)
    if is_blank(value):
        return QuestionOutcome(q.id, "unanswered", 0.0, possible, True)

    t = q.type
    if t == QuestionType.MATCHING:
        ok = _score_matching(q, value)
    elif t == QuestionType.FILL_IN_THE_BLANK:
        ok = _score_blank(q, value)
    elif t == QuestionType.OTHER and not q.correct_choice_ids():
        ok = _score_blank(q, value)
    else:
        ok = _score_choice(q, value)
    return QuestionOutcome(q.id, "correct" if ok else "incorrect", possible if ok else 0.0, possible, True)


def feedback_tier(percentage: Optional[float], bands: FeedbackBands) -> Optional[str]:
    if percentage is None:
        return None
    if percentage >= 100.0:
        return "fullMark"
    for name, lower in bands.ordered():
        if percentage >= lower:
            return name
    return "poor"


def score_answers(
    questions: List[Question], answers: Mapping[str, Any], bands: FeedbackBands
) -> Tuple[List[QuestionOutcome], float, float, Optional[float], Optional[str]]:
    """Returns (outcomes, score, max_score, percentage, tier)."""

    outcomes = [score_question(q, answers.get(q.id)) for q in questions]
    score = sum(o.points_awarded for o in outcomes)
    max_score = sum(o.points_possible for o in outcomes if o.auto_scored)
    pct: Optional[float] = None
    if max_score > 0:
        pct = round(100.0 * score / max_score, 2)
    return outcomes, score, max_score, pct, feedback_tier(pct, bands)

"""Content Model wire format.

The editor stores quizzes as camelCase JSON (``{"questions": [...],
"settings": {...}}``).  This module converts that document to the typed
dataclasses in :mod:`quiz_core.types` and back.  String-keyed settings such
as ``timerMode`` become enums here, so anything downstream of
:func:`quiz_from_dict` can rely on well-formed values.
"""

from __future__ import annotations

import json
import logging
from dataclasses import MISSING, fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type

from . import config
from .types import (
    AntiCheatPolicy,
    BrandingConfig,
    Choice,
    CloudConfig,
    DeliveryPolicy,
    Difficulty,
    EducationStage,
    FeedbackBands,
    FeedbackMessages,
    Question,
    QuestionType,
    QuizAppearance,
    QuizData,
    QuizSettings,
    Reaction,
    Semester,
    TimerMode,
)
from .validators import ValidationError

log = logging.getLogger(__name__)

_KEY_OVERRIDES = {"teacher_whatsapp": "teacherWhatsApp"}


def _camel(name: str) -> str:
    if name in _KEY_OVERRIDES:
        return _KEY_OVERRIDES[name]
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _enum(enum_cls: Type[Enum], value: Any, owner: str, key: str) -> Optional[Enum]:
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError({owner: [f"{key}: unsupported value {value!r}"]}) from None


def _scalar(default: Any, val: Any, key: str) -> Any:
    """Check ``val`` against the kind of the field's default; returns the coerced value or raises TypeError."""

    if isinstance(default, bool):
        if not isinstance(val, bool):
            raise TypeError(f"{key}: expected true or false, got {val!r}")
        return val
    if isinstance(default, int):
        if isinstance(val, bool) or not isinstance(val, (int, float)) or (isinstance(val, float) and not val.is_integer()):
            raise TypeError(f"{key}: expected a whole number, got {val!r}")
        return int(val)
    if isinstance(default, float):
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise TypeError(f"{key}: expected a number, got {val!r}")
        return float(val)
    return val


def _flat(cls, raw: Optional[Mapping[str, Any]], owner: str, enums: Optional[Dict[str, Type[Enum]]] = None):
    """Build a flat dataclass from camelCase keys; unknown keys are ignored."""

    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ValidationError({owner: [f"expected an object, got {type(raw).__name__}"]})
    enums = enums or {}
    kwargs: Dict[str, Any] = {}
    problems: List[str] = []
    for f in fields(cls):
        key = _camel(f.name)
        if key not in raw:
            continue
        val = raw[key]
        if f.name in enums:
            val = _enum(enums[f.name], val, owner, key)
            if val is None:
                continue
        elif f.default is not MISSING:
            try:
                val = _scalar(f.default, val, key)
            except TypeError as e:
                problems.append(str(e))
                continue
        kwargs[f.name] = val
    if problems:
        raise ValidationError({owner: problems})
    return cls(**kwargs)


def _choice_from_dict(raw: Mapping[str, Any], qid: str) -> Choice:
    if not isinstance(raw, Mapping) or raw.get("id") in (None, ""):
        raise ValidationError({qid: ["choice without an id"]})
    return Choice(
        id=str(raw["id"]),
        text=str(raw.get("text") or ""),
        is_correct=bool(raw.get("isCorrect", False)),
        image=raw.get("image") or None,
        match_text=raw.get("matchText"),
    )


def question_from_dict(raw: Mapping[str, Any], index: int = 0) -> Question:
    if not isinstance(raw, Mapping) or raw.get("id") in (None, ""):
        raise ValidationError({f"#{index + 1}": ["question without an id"]})
    qid = str(raw["id"])
    qtype = _enum(QuestionType, raw.get("type"), qid, "type")
    if qtype is None:
        raise ValidationError({qid: ["type is required"]})
    try:
        points = float(raw.get("points", 1))
    except (TypeError, ValueError):
        raise ValidationError({qid: [f"points: not a number {raw.get('points')!r}"]}) from None
    correct = raw.get("correctAnswer")
    return Question(
        id=qid,
        type=qtype,
        text=str(raw.get("text") or ""),
        choices=[_choice_from_dict(c, qid) for c in (raw.get("choices") or [])],
        points=points,
        difficulty=_enum(Difficulty, raw.get("difficulty"), qid, "difficulty") or Difficulty.MEDIUM,
        category=str(raw.get("category") or ""),
        image=raw.get("image") or None,
        correct_answer=None if correct is None else str(correct),
        bg_color=raw.get("bgColor") or None,
        stage=_enum(EducationStage, raw.get("stage"), qid, "stage"),
        grade=raw.get("grade"),
        subject=raw.get("subject"),
        semester=_enum(Semester, raw.get("semester"), qid, "semester"),
        branch=raw.get("branch"),
    )


def settings_from_dict(raw: Optional[Mapping[str, Any]]) -> QuizSettings:
    raw = dict(raw or {})
    nested = {
        "appearance": _flat(QuizAppearance, raw.pop("appearance", None), "settings"),
        "cloud_config": _flat(CloudConfig, raw.pop("cloudConfig", None), "settings"),
        "branding": _flat(BrandingConfig, raw.pop("branding", None), "settings"),
        "feedback_messages": _flat(FeedbackMessages, raw.pop("feedbackMessages", None), "settings"),
    }
    settings = _flat(
        QuizSettings,
        raw,
        "settings",
        enums={
            "timer_mode": TimerMode,
            "default_stage": EducationStage,
            "default_semester": Semester,
        },
    )
    for name, val in nested.items():
        setattr(settings, name, val)
    if settings.language not in ("en", "ar"):
        raise ValidationError({"settings": [f"language: unsupported value {settings.language!r}"]})
    return settings


def default_policy() -> DeliveryPolicy:
    try:
        reaction = Reaction(config.ANTICHEAT_REACTION)
    except ValueError:
        log.warning("unknown ANTICHEAT_REACTION %r; using lock", config.ANTICHEAT_REACTION)
        reaction = Reaction.LOCK
    return DeliveryPolicy(
        bands=FeedbackBands(
            excellent=config.BAND_EXCELLENT,
            very_good=config.BAND_VERY_GOOD,
            good=config.BAND_GOOD,
            fair=config.BAND_FAIR,
        ),
        allow_revisit=config.ALLOW_REVISIT,
        anticheat=AntiCheatPolicy(strike_limit=config.ANTICHEAT_STRIKE_LIMIT, reaction=reaction),
    )


def policy_from_dict(raw: Optional[Mapping[str, Any]]) -> DeliveryPolicy:
    policy = default_policy()
    if not raw:
        return policy
    bands = raw.get("bands") or {}
    for name in ("excellent", "very_good", "good", "fair"):
        key = _camel(name)
        if key in bands:
            try:
                setattr(policy.bands, name, _scalar(0.0, bands[key], f"bands.{key}"))
            except TypeError as e:
                raise ValidationError({"policy": [str(e)]}) from None
    try:
        if "allowRevisit" in raw:
            policy.allow_revisit = _scalar(True, raw["allowRevisit"], "allowRevisit")
        ac = raw.get("anticheat") or {}
        if "strikeLimit" in ac:
            policy.anticheat.strike_limit = _scalar(0, ac["strikeLimit"], "anticheat.strikeLimit")
    except TypeError as e:
        raise ValidationError({"policy": [str(e)]}) from None
    if "reaction" in ac:
        policy.anticheat.reaction = _enum(Reaction, ac["reaction"], "policy", "anticheat.reaction") or Reaction.LOCK
    return policy


def quiz_from_dict(raw: Mapping[str, Any]) -> QuizData:
    if not isinstance(raw, Mapping):
        raise ValidationError({"quiz": ["expected an object with questions and settings"]})
    questions = [question_from_dict(q, i) for i, q in enumerate(raw.get("questions") or [])]
    return QuizData(
        questions=questions,
        settings=settings_from_dict(raw.get("settings")),
        policy=policy_from_dict(raw.get("policy")),
    )


def load_quiz(path: str | Path) -> QuizData:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError({"quiz": [f"{p.name}: invalid JSON ({e.msg} at line {e.lineno})"]}) from e
    return quiz_from_dict(raw)


def _dump(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value):
        out: Dict[str, Any] = {}
        for f in fields(value):
            v = getattr(value, f.name)
            if v is None:
                continue
            out[_camel(f.name)] = _dump(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _dump(v) for k, v in value.items()}
    return value


def quiz_to_dict(quiz: QuizData) -> Dict[str, Any]:
    """Inverse of :func:`quiz_from_dict`; ``None`` fields are omitted."""

    return {
        "questions": [_dump(q) for q in quiz.questions],
        "settings": _dump(quiz.settings),
        "policy": _dump(quiz.policy),
    }


def question_to_dict(question: Question) -> Dict[str, Any]:
    return _dump(question)


def questions_to_list(questions: List[Question]) -> List[Dict[str, Any]]:
    return [question_to_dict(q) for q in questions]

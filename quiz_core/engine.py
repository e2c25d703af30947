# quiz_core/engine.py
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
import copy, logging, random, time, uuid

from .types import (
    CompletionStatus,
    Question,
    QuizData,
    Reaction,
    SessionResult,
    Strike,
    TimerMode,
)
from .scoring import is_blank, score_answers
from .anticheat import record_strike, should_shield
from .validators import parse_timestamp
from .storage import KeyValueStore, scoped_key
from .reporter import ResultReporter


log = logging.getLogger(__name__)


class Phase(str, Enum):
    GATING = "gating"
    BLOCKED = "blocked"
    WELCOME = "welcome"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    REPORTED = "reported"


# ---- events ----
@dataclass
class Open:
    pass

@dataclass
class Retry:
    pass

@dataclass
class Tick:
    pass

@dataclass
class EnterName:
    name: str

@dataclass
class ResumeChoice:
    accept: bool

@dataclass
class AnswerGiven:
    question_id: str
    value: Any

@dataclass
class Navigate:
    target: Union[str, int]  # "next" | "previous" | index

@dataclass
class Submit:
    pass

@dataclass
class FocusLost:
    kind: str  # blur | hidden | resize | printscreen | copy | contextmenu

@dataclass
class FocusRegained:
    pass

@dataclass
class MarkReported:
    pass


Event = Union[
    Open, Retry, Tick, EnterName, ResumeChoice, AnswerGiven, Navigate,
    Submit, FocusLost, FocusRegained, MarkReported,
]


@dataclass
class SessionState:
    session_id: str
    phase: Phase = Phase.GATING
    block_reason: Optional[str] = None
    block_message: Optional[str] = None
    resume_offer: Optional[str] = None
    discarded: Optional[str] = None
    welcome_until: Optional[float] = None
    name: Optional[str] = None
    order: List[str] = field(default_factory=list)
    position: int = 0
    furthest: int = 0
    answers: Dict[str, Any] = field(default_factory=dict)
    timed_out: List[str] = field(default_factory=list)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    timers_enabled: bool = False
    deadline: Optional[float] = None
    question_deadline: Optional[float] = None
    status: Optional[CompletionStatus] = None
    strikes: List[Strike] = field(default_factory=list)
    warning: Optional[str] = None
    shielded: bool = False
    attempt: int = 0

    def to_dict(self) -> Dict[str, object]:
        """Snapshot form persisted for resumability."""

        out = asdict(self)
        out["phase"] = self.phase.value
        out["status"] = self.status.value if self.status else None
        return out

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["SessionState"]:
        """Rebuild a snapshot; anything malformed is treated as no snapshot."""

        if not isinstance(raw, dict):
            return None
        try:
            data = dict(raw)
            data["phase"] = Phase(data.get("phase", Phase.GATING.value))
            data["status"] = CompletionStatus(data["status"]) if data.get("status") else None
            data["strikes"] = [Strike(**s) for s in (data.get("strikes") or [])]
            state = cls(**data)
        except (TypeError, ValueError, KeyError):
            log.warning("discarding unreadable session snapshot")
            return None
        if not isinstance(state.order, list) or not isinstance(state.answers, dict):
            log.warning("discarding malformed session snapshot %s", state.session_id)
            return None
        return state


@dataclass
class Context:
    quiz: QuizData
    now: Optional[float]
    attempts_used: int = 0
    saved: Optional[SessionState] = None
    rng: random.Random = field(default_factory=random.Random)


def _ts(raw: Optional[str]) -> Optional[float]:
    try:
        return parse_timestamp(raw)
    except ValueError:
        log.warning("unparseable scheduling timestamp %r ignored", raw)
        return None


def _block(st: SessionState, reason: str, message: Optional[str]) -> SessionState:
    st.phase = Phase.BLOCKED
    st.block_reason = reason
    st.block_message = message
    return st


def _gate(st: SessionState, ctx: Context) -> SessionState:
    s = ctx.quiz.settings
    st.phase = Phase.GATING
    st.block_reason = st.block_message = None
    if s.scheduling_enabled:
        if ctx.now is None:
            log.warning("clock unavailable; scheduling window treated as open")
        else:
            start, end = _ts(s.start_time), _ts(s.end_time)
            if start is not None and ctx.now < start:
                return _block(st, "not-open", s.scheduling_message)
            if end is not None and ctx.now > end:
                return _block(st, "closed", s.scheduling_message)
    saved = ctx.saved
    if saved is not None and saved.phase == Phase.IN_PROGRESS and st.discarded != saved.session_id:
        st.resume_offer = saved.session_id
        return st
    return _admit(st, ctx)


def _admit(st: SessionState, ctx: Context) -> SessionState:
    limit = int(ctx.quiz.settings.max_attempts)
    if limit > 0 and ctx.attempts_used >= limit:
        return _block(st, "attempts-exhausted", None)
    st.attempt = ctx.attempts_used + 1
    st.phase = Phase.WELCOME
    dur = float(ctx.quiz.settings.message_duration or 0)
    st.welcome_until = ctx.now + dur if (ctx.now is not None and dur > 0) else None
    return _maybe_begin(st, ctx)


def _maybe_begin(st: SessionState, ctx: Context) -> SessionState:
    s = ctx.quiz.settings
    if not s.skip_name_entry and not (st.name or "").strip():
        return st
    if st.welcome_until is not None and ctx.now is not None and ctx.now < st.welcome_until:
        return st
    return _begin(st, ctx)


def _begin(st: SessionState, ctx: Context) -> SessionState:
    s = ctx.quiz.settings
    order = [q.id for q in ctx.quiz.questions]
    if s.shuffle_questions:
        ctx.rng.shuffle(order)
    st.order = order
    st.position = st.furthest = 0
    st.phase = Phase.IN_PROGRESS
    st.started_at = ctx.now
    st.timers_enabled = bool(s.timer_enabled)
    if st.timers_enabled and ctx.now is None:
        log.warning("clock unavailable; timers disabled for session %s", st.session_id)
        st.timers_enabled = False
    if st.timers_enabled:
        secs = float(s.timer_seconds)
        if s.timer_mode == TimerMode.TOTAL:
            st.deadline = ctx.now + secs
        else:
            st.question_deadline = ctx.now + secs
    return st


def _complete(st: SessionState, status: CompletionStatus, ended_at: Optional[float]) -> SessionState:
    st.phase = Phase.COMPLETED
    st.status = status
    st.ended_at = ended_at
    st.question_deadline = None
    st.shielded = False
    return st


def _expire(st: SessionState, ctx: Context) -> SessionState:
    if st.phase != Phase.IN_PROGRESS or not st.timers_enabled or ctx.now is None:
        return st
    now = ctx.now
    if st.deadline is not None and now >= st.deadline:
        return _complete(st, CompletionStatus.TIMEOUT, st.deadline)
    secs = float(ctx.quiz.settings.timer_seconds)
    # each question's window starts where the previous one ended
    while st.question_deadline is not None and now >= st.question_deadline:
        qid = st.order[st.position]
        if qid not in st.timed_out:
            st.timed_out.append(qid)
        st.answers.pop(qid, None)
        if st.position >= len(st.order) - 1:
            return _complete(st, CompletionStatus.TIMEOUT, st.question_deadline)
        st.position += 1
        st.furthest = max(st.furthest, st.position)
        st.question_deadline += secs
    return st


def _revisit_allowed(ctx: Context) -> bool:
    s = ctx.quiz.settings
    if s.timer_enabled and s.timer_mode == TimerMode.QUESTION:
        return False
    return bool(ctx.quiz.policy.allow_revisit)


def _navigate(st: SessionState, target: Union[str, int], ctx: Context) -> SessionState:
    last = len(st.order) - 1
    if target == "next":
        if st.position >= last:
            return st
        dest = st.position + 1
    else:
        if isinstance(target, str) and target != "previous":
            return st
        if not _revisit_allowed(ctx):
            log.debug("navigation back refused for session %s", st.session_id)
            return st
        dest = st.position - 1 if target == "previous" else int(target)
        if dest < 0 or dest > st.furthest:
            return st
    st.position = dest
    st.furthest = max(st.furthest, dest)
    if st.timers_enabled and st.question_deadline is not None and ctx.now is not None:
        st.question_deadline = ctx.now + float(ctx.quiz.settings.timer_seconds)
    return st


def _on_focus(st: SessionState, kind: str, ctx: Context) -> SessionState:
    s = ctx.quiz.settings
    if should_shield(kind, s):
        st.shielded = True
    strike = record_strike(st.strikes, kind, ctx.now, s, ctx.quiz.policy.anticheat)
    if strike is None:
        return st
    log.info("session %s strike %s #%d -> %s", st.session_id, kind, strike.count, strike.reaction)
    if strike.reaction == Reaction.SUBMIT.value:
        return _complete(st, CompletionStatus.VIOLATION, ctx.now)
    if strike.reaction == Reaction.LOCK.value:
        return _complete(st, CompletionStatus.LOCKED, ctx.now)
    st.warning = kind
    return st


def transition(state: SessionState, event: Event, ctx: Context) -> SessionState:
    """Pure step function: returns the next state, never mutates ``state``."""

    st = copy.deepcopy(state)
    phase = st.phase

    if isinstance(event, Open):
        if phase == Phase.GATING and st.resume_offer is None:
            return _gate(st, ctx)
        return st
    if isinstance(event, Retry):
        return _gate(st, ctx) if phase == Phase.BLOCKED else st
    if isinstance(event, ResumeChoice):
        if phase != Phase.GATING or st.resume_offer is None or ctx.saved is None:
            return st
        if event.accept:
            resumed = copy.deepcopy(ctx.saved)
            resumed.shielded = False
            resumed.warning = None
            return _expire(resumed, ctx)
        st.discarded = st.resume_offer
        st.resume_offer = None
        return _admit(st, ctx)
    if isinstance(event, EnterName):
        if phase != Phase.WELCOME:
            return st
        if event.name.strip():
            st.name = event.name.strip()
        return _maybe_begin(st, ctx)
    if isinstance(event, Tick):
        if phase == Phase.WELCOME:
            return _maybe_begin(st, ctx)
        return _expire(st, ctx)
    if isinstance(event, MarkReported):
        if phase == Phase.COMPLETED:
            st.phase = Phase.REPORTED
        return st

    if phase != Phase.IN_PROGRESS:
        log.debug("ignoring %s in phase %s", type(event).__name__, phase.value)
        return st
    st = _expire(st, ctx)
    if st.phase != Phase.IN_PROGRESS:
        return st

    if isinstance(event, AnswerGiven):
        current = st.order[st.position]
        if event.question_id != current or current in st.timed_out:
            log.debug("answer for %s refused (current %s)", event.question_id, current)
            return st
        if is_blank(event.value):
            st.answers.pop(current, None)
        else:
            st.answers[current] = event.value
        return st
    if isinstance(event, Navigate):
        return _navigate(st, event.target, ctx)
    if isinstance(event, Submit):
        return _complete(st, CompletionStatus.COMPLETED, ctx.now)
    if isinstance(event, FocusLost):
        return _on_focus(st, event.kind, ctx)
    if isinstance(event, FocusRegained):
        st.shielded = False
        st.warning = None
        return st
    return st


def build_result(
    st: SessionState,
    quiz: QuizData,
    artifact_id: str,
    status: Optional[CompletionStatus] = None,
) -> SessionResult:
    status = status or st.status or CompletionStatus.COMPLETED
    if status == CompletionStatus.ABANDONED:
        return SessionResult(
            session_id=st.session_id, artifact_id=artifact_id, name=st.name,
            answers=dict(st.answers), outcomes=[], score=0.0, max_score=0.0,
            percentage=None, tier=None, started_at=st.started_at, ended_at=None,
            attempt=st.attempt, status=status, strikes=list(st.strikes),
        )
    qmap = quiz.question_map()
    ordered = [qmap[qid] for qid in (st.order or list(qmap)) if qid in qmap]
    # a question whose own countdown ran out counts as unanswered
    answers = {qid: v for qid, v in st.answers.items() if qid not in st.timed_out}
    outcomes, score, max_score, pct, tier = score_answers(ordered, answers, quiz.policy.bands)
    return SessionResult(
        session_id=st.session_id,
        artifact_id=artifact_id,
        name=st.name,
        answers=answers,
        outcomes=outcomes,
        score=score,
        max_score=max_score,
        percentage=pct,
        tier=tier,
        started_at=st.started_at,
        ended_at=st.ended_at,
        attempt=st.attempt,
        status=status,
        strikes=list(st.strikes),
        manual_review=[o.question_id for o in outcomes if o.status == "manual_review"],
    )


def _system_clock() -> float:
    return time.time()


class DeliverySession:
    """Drives one test-taking session against an injected store, clock and reporter."""

    def __init__(
        self,
        quiz: QuizData,
        artifact_id: str,
        store: KeyValueStore,
        reporter=None,
        clock: Callable[[], float] = _system_clock,
        rng: Optional[random.Random] = None,
    ):
        self.quiz = quiz
        self.artifact_id = artifact_id
        self.store = store
        self.clock = clock
        self.rng = rng or random.Random()
        self.reporter = reporter or ResultReporter(store, artifact_id, quiz.settings)
        self.state = SessionState(session_id=uuid.uuid4().hex)
        self.result: Optional[SessionResult] = None
        self._saved: Optional[SessionState] = None
        self._questions: Dict[str, Question] = quiz.question_map()

    # ---- persisted state ----
    def _key(self, name: str) -> str:
        return scoped_key(self.artifact_id, name)

    def _now(self) -> Optional[float]:
        try:
            return float(self.clock())
        except Exception as e:
            log.warning("clock read failed (%s); enforcing nothing time-based", e)
            return None

    def _attempts(self) -> Dict[str, Any]:
        raw = self.store.get(self._key("attempts"))
        if raw is None:
            return {"count": 0, "sessions": []}
        try:
            count = int(raw["count"])
            sessions = [str(s) for s in raw["sessions"]]
        except (TypeError, KeyError, ValueError):
            log.warning("attempt counter for %s unreadable; treating as unused", self.artifact_id)
            return {"count": 0, "sessions": []}
        return {"count": max(count, 0), "sessions": sessions}

    def device_id(self) -> str:
        key = self._key("device")
        dev = self.store.get(key)
        if not isinstance(dev, str) or not dev:
            dev = uuid.uuid4().hex
            self.store.put_many({key: dev})
        return dev

    def _context(self) -> Context:
        return Context(
            quiz=self.quiz,
            now=self._now(),
            attempts_used=self._attempts()["count"],
            saved=self._saved,
            rng=self.rng,
        )

    def _persist(self) -> None:
        if self.state.phase in (Phase.IN_PROGRESS, Phase.COMPLETED):
            self.store.put_many({self._key("session"): self.state.to_dict()})

    # ---- lifecycle ----
    def open(self) -> SessionState:
        self.device_id()
        saved = SessionState.from_dict(self.store.get(self._key("session")))
        if saved is not None and saved.phase == Phase.COMPLETED:
            log.info("finishing interrupted report for session %s", saved.session_id)
            self.state = saved
            self._finalize()
            return self.state
        if saved is not None and saved.phase != Phase.IN_PROGRESS:
            self.store.put_many({}, delete=(self._key("session"),))
            saved = None
        self._saved = saved
        return self.dispatch(Open())

    def dispatch(self, event: Event) -> SessionState:
        before = self.state.phase
        ctx = self._context()
        new = transition(self.state, event, ctx)
        if new.discarded and self._saved is not None and new.discarded == self._saved.session_id:
            self.reporter.record_abandoned(
                build_result(self._saved, self.quiz, self.artifact_id, CompletionStatus.ABANDONED),
                delete=(self._key("session"),),
            )
            self._saved = None
        elif isinstance(event, ResumeChoice) and event.accept and new.session_id != self.state.session_id:
            self._saved = None
        self.state = new
        if new.phase != before:
            log.info("session %s: %s -> %s", new.session_id, before.value, new.phase.value)
        if new.phase == Phase.COMPLETED:
            self._finalize()
        else:
            self._persist()
        return self.state

    def _finalize(self) -> None:
        """Score, persist and count the attempt in one batch, then enter Reported."""

        self._persist()
        result = build_result(self.state, self.quiz, self.artifact_id)
        attempts = self._attempts()
        extra: Dict[str, Any] = {}
        if result.session_id not in attempts["sessions"]:
            attempts["count"] += 1
            attempts["sessions"].append(result.session_id)
            extra[self._key("attempts")] = attempts
            self.reporter.commit(result, extra=extra, delete=(self._key("session"),))
        else:
            log.info("session %s already counted; not re-reporting", result.session_id)
            self.store.put_many({}, delete=(self._key("session"),))
        self.result = result
        self.state = transition(self.state, MarkReported(), self._context())
        self.reporter.deliver_detached()

    # ---- convenience wrappers ----
    def retry(self) -> SessionState:
        return self.dispatch(Retry())

    def tick(self) -> SessionState:
        return self.dispatch(Tick())

    def enter_name(self, name: str) -> SessionState:
        return self.dispatch(EnterName(name))

    def resume(self, accept: bool = True) -> SessionState:
        return self.dispatch(ResumeChoice(accept))

    def answer(self, question_id: str, value: Any) -> SessionState:
        return self.dispatch(AnswerGiven(question_id, value))

    def next(self) -> SessionState:
        return self.dispatch(Navigate("next"))

    def previous(self) -> SessionState:
        return self.dispatch(Navigate("previous"))

    def goto(self, index: int) -> SessionState:
        return self.dispatch(Navigate(index))

    def submit(self) -> SessionState:
        return self.dispatch(Submit())

    def focus_lost(self, kind: str = "blur") -> SessionState:
        return self.dispatch(FocusLost(kind))

    def focus_regained(self) -> SessionState:
        return self.dispatch(FocusRegained())

    # ---- views ----
    def current_question(self) -> Optional[Question]:
        if self.state.phase != Phase.IN_PROGRESS or not self.state.order:
            return None
        return self._questions.get(self.state.order[self.state.position])

    def remaining_seconds(self) -> Optional[float]:
        st = self.state
        if st.phase != Phase.IN_PROGRESS or not st.timers_enabled:
            return None
        now = self._now()
        target = st.deadline if st.deadline is not None else st.question_deadline
        if now is None or target is None:
            return None
        return max(0.0, target - now)

    def feedback_message(self) -> Optional[str]:
        if self.result is None or self.result.status == CompletionStatus.LOCKED:
            return None
        return self.quiz.settings.feedback_messages.for_tier(self.result.tier) or None

from __future__ import annotations
import argparse, logging, random, sys, time
from pathlib import Path

from quiz_core.compiler import compile_quiz
from quiz_core.config import load_config
from quiz_core.content import load_quiz
from quiz_core.engine import DeliverySession, Phase
from quiz_core.i18n import BLOCK_KEYS, strings_for
from quiz_core.report_html import export_result_html
from quiz_core.storage import JsonFileStore
from quiz_core.types import CompletionStatus, Question, QuestionType
from quiz_core.validators import ValidationError

HELP = "Enter = skip/next · < = previous · ! = submit now · q = leave (progress is kept)"


class Leave(Exception):
    pass


def ask(prompt: str) -> str:
    try:
        return input(prompt + " ").strip()
    except EOFError:
        raise Leave() from None


def _yes(prompt: str) -> bool:
    return ask(prompt + " [y/N]").lower() in {"y", "yes"}


def read_answer(q: Question, raw: str, T: dict):
    """Terminal input -> answer value in the shape the engine scores."""
    if q.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE) or (
        q.type == QuestionType.OTHER and q.choices
    ):
        picked = []
        for tok in raw.replace(",", " ").split():
            if tok.isdigit() and 1 <= int(tok) <= len(q.choices):
                picked.append(q.choices[int(tok) - 1].id)
        if not picked:
            return None
        return picked[0] if len(q.correct_choice_ids()) <= 1 and len(picked) == 1 else picked
    if q.type == QuestionType.MATCHING:
        options = sorted(c.match_text or "" for c in q.choices)
        for i, opt in enumerate(options, 1):
            print(f"    ({i}) {opt}")
        pairs = {}
        for c in q.choices:
            v = ask(f"  {c.text} -> {T['selectMatch']}:")
            if v == "q":
                raise Leave()
            if v.isdigit() and 1 <= int(v) <= len(options):
                pairs[c.id] = options[int(v) - 1]
        return pairs
    return raw


def show_question(session: DeliverySession, T: dict) -> None:
    st = session.state
    q = session.current_question()
    left = session.remaining_seconds()
    clock = f"  [{T['timeLeft']} {int(left // 60)}:{int(left % 60):02d}]" if left is not None else ""
    print(f"\n{T['question']} {st.position + 1} {T['of']} {len(st.order)} · {q.points:g} {T['points']}{clock}")
    print(q.text)
    if q.image:
        print("  [image]")
    if q.type != QuestionType.MATCHING:
        for i, c in enumerate(q.choices, 1):
            print(f"  {i}. {c.text}")
    prev = st.answers.get(q.id)
    if prev is not None:
        print(f"  (current answer: {prev})")


def play_question(session: DeliverySession, T: dict) -> None:
    show_question(session, T)
    q = session.current_question()
    last = session.state.position >= len(session.state.order) - 1
    prompt = T["typeAnswer"] + ":" if q.type != QuestionType.MATCHING else "Enter to match, or a command:"
    raw = ask(prompt)
    session.tick()
    if session.state.phase != Phase.IN_PROGRESS:
        return
    if raw == "q":
        raise Leave()
    if raw == "!":
        session.submit()
        return
    if raw == "<":
        before = session.state.position
        session.previous()
        if session.state.position == before:
            print("  (going back is not allowed here)")
        return
    if raw or q.type == QuestionType.MATCHING:
        value = read_answer(q, raw, T)
        if value is not None:
            session.answer(q.id, value)
    if session.state.phase == Phase.IN_PROGRESS:
        if last:
            if _yes(T["submit"] + "?"):
                session.submit()
        else:
            session.next()


def show_result(session: DeliverySession, T: dict, reports_dir: str | None) -> None:
    res = session.result
    if res is None:
        return
    print(f"\n== {session.quiz.settings.final_score_header or T['score']} ==")
    if res.status == CompletionStatus.LOCKED:
        print(T["locked"])
    else:
        pct = f" ({res.percentage:.2f}%)" if res.percentage is not None else ""
        print(f"{res.score:g} / {res.max_score:g}{pct}")
        msg = session.feedback_message()
        if msg:
            print(msg)
        if res.status == CompletionStatus.TIMEOUT:
            print(T["timeout"])
        if res.manual_review:
            print(T["manualReview"])
    if reports_dir:
        Path(reports_dir).mkdir(parents=True, exist_ok=True)
        out = export_result_html(res.to_dict(), str(Path(reports_dir) / f"result_{res.session_id}.html"),
                                 title=session.quiz.settings.title)
        print(f"Review page saved to: {out}")


def run(session: DeliverySession, T: dict, reports_dir: str | None = None) -> int:
    s = session.quiz.settings
    session.open()
    print(s.title)
    print(HELP)
    while True:
        st = session.state
        if st.phase == Phase.REPORTED:
            show_result(session, T, reports_dir)
            return 0
        if st.phase == Phase.GATING and st.resume_offer:
            session.resume(_yes(T["resumePrompt"]))
        elif st.phase == Phase.BLOCKED:
            print(st.block_message or T[BLOCK_KEYS[st.block_reason]])
            if st.block_reason == "attempts-exhausted" or not _yes(T["retry"] + "?"):
                return 2
            session.retry()
        elif st.phase == Phase.WELCOME:
            print(s.welcome_message)
            if not s.skip_name_entry and not (st.name or "").strip():
                session.enter_name(ask(T["enterName"] + ":"))
            else:
                now = time.time()
                if st.welcome_until is not None and st.welcome_until > now:
                    time.sleep(st.welcome_until - now)
                session.tick()
        elif st.phase == Phase.IN_PROGRESS:
            play_question(session, T)
        else:
            print(f"unexpected session phase {st.phase.value}", file=sys.stderr)
            return 1


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="quiz-take", description="Take a quiz in the terminal.")
    ap.add_argument("quiz", help="quiz JSON")
    ap.add_argument("--store", default=".quiz_store.json", help="JSON file holding attempts, snapshots and results")
    ap.add_argument("--asset-root", default=None)
    ap.add_argument("--reports", default="reports", help="directory for the result review page ('' to skip)")
    a = ap.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] %(message)s")

    try:
        quiz = load_quiz(a.quiz)
        doc = compile_quiz(quiz, asset_root=a.asset_root or str(Path(a.quiz).resolve().parent))
    except ValidationError as e:
        print(f"{a.quiz}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Cannot read {a.quiz}: {e}", file=sys.stderr)
        return 1

    cfg = load_config()
    rng = random.Random(cfg["SEED"]) if "SEED" in cfg else random.Random()
    session = DeliverySession(quiz, doc.artifact_id, JsonFileStore(a.store), rng=rng)
    T = strings_for(quiz.settings.language)
    try:
        return run(session, T, a.reports or None)
    except (Leave, KeyboardInterrupt):
        print("\nLeft the quiz; reopen it to continue where you stopped.")
        return 130


if __name__ == "__main__":
    sys.exit(main())

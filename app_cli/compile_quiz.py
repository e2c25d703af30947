from __future__ import annotations
import argparse, logging, sys
from pathlib import Path

from quiz_core.compiler import compile_quiz
from quiz_core.config import load_config
from quiz_core.content import load_quiz, questions_to_list
from quiz_core.reporter import ResultReporter, Transport, post_json
from quiz_core.storage import JsonFileStore
from quiz_core.types import QuizData
from quiz_core.validators import ValidationError, collect_problems


def apply_overrides(quiz: QuizData, cfg: dict) -> QuizData:
    """Deployment config (config.json / QUIZ_* env) wins over the authored cloud settings."""
    cloud = quiz.settings.cloud_config
    if cfg.get("cloudUrl"):
        cloud.cloud_url = str(cfg["cloudUrl"])
    if cfg.get("folderName"):
        cloud.folder_name = str(cfg["folderName"])
    if "offlineMode" in cfg:
        quiz.settings.offline_mode = bool(cfg["offlineMode"])
    return quiz


def _print_problems(err: ValidationError) -> None:
    for owner, problems in sorted(err.problems.items()):
        for p in problems:
            print(f"  {owner}: {p}", file=sys.stderr)


def publish(quiz: QuizData, html: str, artifact_id: str, store_path: str, transport: Transport = post_json) -> dict:
    reporter = ResultReporter(JsonFileStore(store_path), artifact_id, quiz.settings, transport=transport, background=False)
    queued = []
    if reporter.enqueue("tests", {"artifactId": artifact_id, "title": quiz.settings.title, "html": html}):
        queued.append("tests")
    bank = {"artifactId": artifact_id, "questions": questions_to_list(quiz.questions)}
    if reporter.enqueue("bank", bank):
        queued.append("bank")
    stats = reporter.flush() if queued else {"sent": 0, "retry": 0, "dead": 0}
    return {"queued": queued, **stats}


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="quiz-compile", description="Compile a quiz JSON into one HTML file.")
    ap.add_argument("quiz", help="quiz JSON (questions + settings [+ policy])")
    ap.add_argument("-o", "--output", help="output HTML path (default: QUIZ with .html)")
    ap.add_argument("--asset-root", default=None, help="directory relative image paths resolve against")
    ap.add_argument("--check", action="store_true", help="validate only, write nothing")
    ap.add_argument("--publish", action="store_true", help="upload the test and its questions to the cloud folder")
    ap.add_argument("--store", default=".quiz_outbox.json", help="outbox file used by --publish")
    ap.add_argument("-v", "--verbose", action="store_true")
    a = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if a.verbose else logging.INFO, format="[%(levelname)s] %(message)s")

    try:
        quiz = apply_overrides(load_quiz(a.quiz), load_config())
    except ValidationError as e:
        print(f"Cannot read {a.quiz}:", file=sys.stderr)
        _print_problems(e)
        return 1
    except OSError as e:
        print(f"Cannot read {a.quiz}: {e}", file=sys.stderr)
        return 1

    if a.check:
        problems = collect_problems(quiz)
        if problems:
            print(f"{a.quiz}: {sum(len(v) for v in problems.values())} problem(s)", file=sys.stderr)
            _print_problems(ValidationError(problems))
            return 1
        print(f"{a.quiz}: OK ({len(quiz.questions)} questions)")
        return 0

    asset_root = a.asset_root or str(Path(a.quiz).resolve().parent)
    try:
        doc = compile_quiz(quiz, asset_root=asset_root)
    except ValidationError as e:
        print(f"Compilation failed for {a.quiz}:", file=sys.stderr)
        _print_problems(e)
        return 1

    out = doc.write(a.output or Path(a.quiz).with_suffix(".html"))
    print(f"Wrote {out} (artifact {doc.artifact_id})")

    if a.publish:
        stats = publish(quiz, doc.html, doc.artifact_id, a.store)
        if not stats["queued"]:
            print("Publishing skipped: cloud sync is off for tests and bank.")
        else:
            print(f"Published {', '.join(stats['queued'])}: sent={stats['sent']} retry={stats['retry']} dead={stats['dead']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, List, Optional

from .types import CompletionStatus

_STATUS_LABELS = {
    CompletionStatus.COMPLETED.value: "Submitted",
    CompletionStatus.TIMEOUT.value: "Auto-submitted (time up)",
    CompletionStatus.VIOLATION.value: "Auto-submitted (violation)",
    CompletionStatus.LOCKED.value: "Locked (violation)",
    CompletionStatus.ABANDONED.value: "Abandoned",
}


def _when(ts: Any) -> str:
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    except (TypeError, ValueError, OverflowError):
        return "-"


def _answer(value: Any) -> str:
    if value is None or value == "" or value == [] or value == {}:
        return "<i>no answer</i>"
    if isinstance(value, dict):
        return "<br/>".join(f"{escape(str(k))} &rarr; {escape(str(v))}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return escape(", ".join(str(v) for v in value))
    return escape(str(value))


def _row(o: Dict[str, Any], answers: Dict[str, Any]) -> str:
    qid = str(o.get("questionId", ""))
    status = str(o.get("status", ""))
    pts = f"{float(o.get('pointsAwarded', 0) or 0):g} / {float(o.get('pointsPossible', 0) or 0):g}"
    if not o.get("autoScored", True):
        pts = "-"
    return (
        f"<tr class=\"{escape(status)}\"><td>{escape(qid)}</td><td>{escape(status.replace('_', ' '))}</td>"
        f"<td>{pts}</td><td>{_answer(answers.get(qid))}</td></tr>"
    )


def _strike_row(s: Dict[str, Any]) -> str:
    return (
        f"<tr><td>{_when(s.get('t'))}</td><td>{escape(str(s.get('kind', '')))}</td>"
        f"<td>{int(s.get('count', 0) or 0)}</td><td>{escape(str(s.get('reaction', '')))}</td></tr>"
    )


def render_result_html(result: Dict[str, Any], title: Optional[str] = None) -> str:
    """Review page for one stored session result (the dict form of ``SessionResult``)."""

    outcomes: List[Dict[str, Any]] = [o for o in result.get("outcomes") or [] if isinstance(o, dict)]
    answers: Dict[str, Any] = result.get("answers") or {}
    strikes: List[Dict[str, Any]] = [s for s in result.get("strikes") or [] if isinstance(s, dict)]
    manual = result.get("manualReview") or []
    status = str(result.get("status") or "")

    pct = result.get("percentage")
    score_line = f"{float(result.get('score', 0) or 0):g} / {float(result.get('maxScore', 0) or 0):g}"
    if pct is not None:
        score_line += f" ({float(pct):.2f}%)"

    banner = ""
    if status in (CompletionStatus.LOCKED.value, CompletionStatus.VIOLATION.value):
        banner = f"<div class=\"banner warning\">{escape(_STATUS_LABELS[status])} after {len(strikes)} recorded strike(s)</div>"
    manual_html = ""
    if manual:
        items = "".join(f"<li>{escape(str(q))}</li>" for q in manual)
        manual_html = f"<h3>Needs manual grading</h3><ul>{items}</ul>"

    strikes_html = ""
    if strikes:
        strikes_html = (
            "<h3>Anti-cheat strikes</h3>"
            "<table border='1' cellpadding='6' cellspacing='0'>"
            "<thead><tr><th>When</th><th>Kind</th><th>#</th><th>Reaction</th></tr></thead>"
            f"<tbody>{''.join(_strike_row(s) for s in strikes)}</tbody></table>"
        )

    rows = "\n".join(_row(o, answers) for o in outcomes)
    heading = escape(title or "Quiz Result")
    return f"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>{heading}</title>
<style>
 body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu,'Helvetica Neue',Arial}}
 .wrap{{max-width:960px;margin:40px auto;padding:0 16px}}
 h1{{margin:0 0 16px}}
 .overall{{font-size:1.1rem;margin:8px 0 16px}}
 .banner{{padding:12px 16px;border-radius:6px;margin:16px 0}}
 .banner.warning{{background:#ffe7d9;border:1px solid #f5a623;color:#7a2d00}}
 table{{border-collapse:collapse;width:100%}}
 th,td{{text-align:left;vertical-align:top}}
 tr.correct td:nth-child(2){{color:#166534}} tr.incorrect td:nth-child(2){{color:#b91c1c}}
 tr.manual_review td:nth-child(2){{color:#92400e}}
</style>
</head>
<body>
<div class="wrap">
  <h1>{heading}</h1>
  <p><b>Name:</b> {escape(str(result.get('name') or '-'))} · <b>Attempt:</b> {int(result.get('attempt', 0) or 0)} · <b>Session:</b> {escape(str(result.get('sessionId', '')))}</p>
  <div class="overall"><b>Score:</b> {score_line} · <b>Tier:</b> {escape(str(result.get('tier') or '-'))} · <b>Status:</b> {escape(_STATUS_LABELS.get(status, status))}</div>
  <p><b>Started:</b> {_when(result.get('startedAt'))} · <b>Ended:</b> {_when(result.get('endedAt'))}</p>
  {banner}

  <table border='1' cellpadding='6' cellspacing='0'>
    <thead><tr><th>Question</th><th>Outcome</th><th>Points</th><th>Answer</th></tr></thead>
    <tbody>{rows}</tbody>
  </table>

  {manual_html}

  {strikes_html}
</div>
</body>
</html>"""


def export_result_html(result: Dict[str, Any], path: str, title: Optional[str] = None) -> str:
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_result_html(result, title))
    return path

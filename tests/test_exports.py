from __future__ import annotations

from quiz_core.audit_export import to_csv, to_json
from quiz_core.report_html import export_result_html
from tests.conftest import build_quiz, make_session


def _finished_result(store, clock):
    quiz = build_quiz(
        [
            {"id": "essay", "type": "Essay", "text": "Explain", "points": 5},
            {"id": "tf", "type": "True/False", "text": "Sky is blue", "points": 5,
             "choices": [{"id": "T", "text": "True", "isCorrect": True}, {"id": "F", "text": "False"}]},
        ],
        skipNameEntry=False,
        preventScreenshot=True,
    )
    s = make_session(quiz, store, clock)
    s.open()
    s.enter_name("Layla <b>")
    s.answer("essay", "Because <reasons>")
    s.focus_lost("copy")
    s.next()
    s.answer("tf", "F")
    s.submit()
    return s.result.to_dict()


def test_grade_sheet_fields(store, clock):
    result = _finished_result(store, clock)
    rows = to_json([result, {"sessionId": "partial"}])["results"]
    assert rows[0]["name"] == "Layla <b>"
    assert rows[0]["score"] == 0.0
    assert rows[0]["max_score"] == 5.0
    assert rows[0]["strikes"] == 1
    assert rows[0]["manual_review"] == "essay"
    assert rows[1] == {
        "session_id": "partial", "artifact_id": "", "name": "", "attempt": 0, "status": "",
        "score": 0.0, "max_score": 0.0, "percentage": None, "tier": "", "started_at": None,
        "ended_at": None, "strikes": 0, "manual_review": "",
    }


def test_grade_sheet_csv_has_fixed_header(store, clock):
    body = to_csv([_finished_result(store, clock)])
    lines = body.strip().splitlines()
    assert lines[0] == (
        "session_id,artifact_id,name,attempt,status,score,max_score,percentage,"
        "tier,started_at,ended_at,strikes,manual_review"
    )
    assert len(lines) == 2


def test_result_page_escapes_and_lists_review(tmp_path, store, clock):
    out = export_result_html(_finished_result(store, clock), str(tmp_path / "r.html"), title="Week 3")
    html = (tmp_path / "r.html").read_text(encoding="utf-8")
    assert out.endswith("r.html")
    assert "Layla &lt;b&gt;" in html
    assert "Because &lt;reasons&gt;" in html
    assert "Needs manual grading" in html
    assert "Anti-cheat strikes" in html
    assert "<title>Week 3</title>" in html

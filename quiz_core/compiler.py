"""Compile a quiz into one self-contained HTML document.

Compilation is pure: the same quiz (and the same asset bytes) always yields
the same document.  Shuffling and every other random decision happen in the
embedded runtime when a session starts, so one artifact serves any number of
independent attempts.
"""

from __future__ import annotations

import base64
import copy
import hashlib
import html
import importlib.resources as ir
import json
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .content import quiz_to_dict
from .i18n import strings_for
from .types import QuizAppearance, QuizData, BrandingConfig, QuizSettings
from .validators import ValidationError, collect_problems

log = logging.getLogger(__name__)

_SCHEME_RX = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.I)


@dataclass(frozen=True)
class Document:
    html: str
    artifact_id: str

    def write(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.html, encoding="utf-8")
        return p


def _inline_asset(ref: Optional[str], root: Optional[Path], owner: str, problems: Dict[str, List[str]]) -> Optional[str]:
    if not ref:
        return ref
    if ref.startswith("data:"):
        return ref
    if _SCHEME_RX.match(ref):
        problems.setdefault(owner, []).append(f"external asset not allowed: {ref}")
        return ref
    path = Path(ref)
    if not path.is_absolute():
        path = (root or Path.cwd()) / path
    if not path.is_file():
        problems.setdefault(owner, []).append(f"missing asset: {ref}")
        return ref
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{data}"


def inline_assets(quiz: QuizData, asset_root: Optional[str | Path] = None) -> QuizData:
    """Return a copy of ``quiz`` whose image references are all ``data:`` URIs."""

    root = Path(asset_root) if asset_root else (Path(config.ASSET_ROOT) if config.ASSET_ROOT else None)
    out = copy.deepcopy(quiz)
    problems: Dict[str, List[str]] = {}
    for q in out.questions:
        q.image = _inline_asset(q.image, root, q.id, problems)
        for c in q.choices:
            c.image = _inline_asset(c.image, root, q.id, problems)
    s = out.settings
    s.appearance.background_image = _inline_asset(s.appearance.background_image, root, "settings", problems)
    s.branding.designer_logo = _inline_asset(s.branding.designer_logo, root, "settings", problems)
    s.designer_logo = _inline_asset(s.designer_logo, root, "settings", problems)
    if problems:
        raise ValidationError(problems)
    return out


def _canonical(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def artifact_id_for(quiz_dict: Dict[str, Any]) -> str:
    return hashlib.sha256(_canonical(quiz_dict).encode("utf-8")).hexdigest()[:16]


def _runtime_script() -> str:
    return ir.files(__package__).joinpath("assets/runtime.js").read_text(encoding="utf-8")


_SHAPES = {"rounded": "14px", "square": "0", "pill": "999px", "leaf": "22px 0 22px 0"}
_EFFECTS = {
    "flat": "none",
    "3d": "0 5px 0 rgba(15,23,42,.25)",
    "glow": "0 0 14px var(--selected)",
    "glass": "0 8px 24px rgba(15,23,42,.12)",
    "neon": "0 0 4px var(--selected), 0 0 16px var(--selected)",
}


def _css(a: QuizAppearance, b: BrandingConfig) -> str:
    bg_image = f"url('{a.background_image}')" if a.background_image else "none"
    border = "none" if a.border_style == "none" else f"2px {a.border_style} rgba(15,23,42,.18)"
    glass = "backdrop-filter:blur(8px);background:rgba(255,255,255,.55);" if a.box_effect == "glass" else ""
    return f"""
 :root{{--bg:{a.background_color};--box:{a.answer_box_bg};--text:{a.answer_text_color};--selected:{a.selected_color};--selected-text:{a.selected_text_color}}}
 body{{margin:0;font-family:{b.font_family},system-ui,-apple-system,Segoe UI,Roboto,Arial;background:var(--bg) {bg_image} center/cover fixed;color:#0f172a;min-height:100vh}}
 .wrap{{max-width:880px;margin:32px auto;padding:0 16px}}
 .wrap.side{{border-inline-start:6px solid var(--selected);padding-inline-start:22px}}
 h1{{margin:0 0 4px}}
 .meta{{color:#475569;margin:0 0 20px;font-size:.95rem}}
 .card{{background:#fff;border-radius:16px;padding:20px;box-shadow:0 4px 18px rgba(15,23,42,.08)}}
 .choices{{display:flex;flex-direction:column;gap:{int(a.spacing_choices)}px;margin-top:16px}}
 .choice{{background:var(--box);color:var(--text);font-size:{int(a.font_size_choices)}px;border:{border};border-radius:{_SHAPES.get(a.answer_box_shape, "14px")};box-shadow:{_EFFECTS.get(a.box_effect, "none")};padding:12px 16px;cursor:pointer;text-align:start;{glass}}}
 .choice.selected{{background:var(--selected);color:var(--selected-text)}}
 .qimg{{max-width:100%;margin:12px 0}}
 .qimg.rounded{{border-radius:16px}} .qimg.square_frame{{border:6px solid #fff;box-shadow:0 2px 10px rgba(0,0,0,.2)}} .qimg.square{{aspect-ratio:1/1;object-fit:cover}}
 .bar{{display:flex;justify-content:space-between;align-items:center;margin-top:18px;gap:8px}}
 button.nav{{padding:10px 18px;border-radius:10px;border:0;background:var(--selected);color:var(--selected-text);font-weight:600;cursor:pointer}}
 button.nav[disabled]{{opacity:.4;cursor:default}}
 .timer{{font-variant-numeric:tabular-nums;font-weight:700}}
 .warning{{background:#ffe7d9;border:1px solid #f5a623;color:#7a2d00;padding:10px 14px;border-radius:8px;margin-bottom:12px}}
 .shield #screen{{filter:blur(18px)}}
 #watermark{{position:fixed;inset:0;pointer-events:none;opacity:.07;font-size:28px;display:flex;flex-wrap:wrap;gap:60px;transform:rotate(-24deg);overflow:hidden;z-index:5}}
 .copyright{{color:{b.text_color};font-size:{int(b.font_size)}px;padding:16px;display:flex;align-items:center;gap:8px}}
 .copyright.pos-left{{justify-content:flex-start}} .copyright.pos-center{{justify-content:center}} .copyright.pos-right{{justify-content:flex-end}}
 .copyright.layout-top,.copyright.layout-bottom{{flex-direction:column}} .copyright.layout-top img{{order:2}}
 .copyright.layout-circular img{{border-radius:50%}}
 .fx-fade{{animation:fade .35s ease}} .fx-slide{{animation:slide .35s ease}} .fx-zoom{{animation:zoom .3s ease}} .fx-flip{{animation:flip .45s ease}}
 .tap-pulse{{animation:pulse .3s}} .tap-scale{{animation:scale .25s}} .tap-wobble{{animation:wobble .4s}} .tap-shake{{animation:shake .35s}}
 @keyframes fade{{from{{opacity:0}}to{{opacity:1}}}}
 @keyframes slide{{from{{transform:translateX(24px);opacity:0}}to{{transform:none;opacity:1}}}}
 @keyframes zoom{{from{{transform:scale(.94);opacity:0}}to{{transform:none;opacity:1}}}}
 @keyframes flip{{from{{transform:rotateY(90deg)}}to{{transform:none}}}}
 @keyframes pulse{{50%{{transform:scale(1.03)}}}}
 @keyframes scale{{50%{{transform:scale(.96)}}}}
 @keyframes wobble{{25%{{transform:rotate(-2deg)}}75%{{transform:rotate(2deg)}}}}
 @keyframes shake{{25%{{transform:translateX(-4px)}}75%{{transform:translateX(4px)}}}}
 @media print{{body{{display:none}}}}
"""


def _footer(s: QuizSettings) -> str:
    b = s.branding
    name = b.designer_name or s.designer_name or ""
    logo = b.designer_logo or s.designer_logo
    if not name and not logo:
        return ""
    img = ""
    if logo:
        img = f'<img src="{html.escape(logo, quote=True)}" alt="" width="{int(b.logo_width)}" height="{int(b.logo_height)}"/>'
    pos = s.copyright_position or b.position
    return (
        f'<footer class="copyright pos-{html.escape(pos)} layout-{html.escape(b.text_layout)}">'
        f"{img}<span>{html.escape(name)}</span></footer>"
    )


def _embed_json(payload: Dict[str, Any]) -> str:
    # keeps "</script>" and "<!--" inert inside the data block
    return _canonical(payload).replace("<", "\\u003c")


def render_document(quiz: QuizData, artifact_id: str, quiz_dict: Dict[str, Any]) -> str:
    s = quiz.settings
    a = s.appearance
    payload = {
        "artifactId": artifact_id,
        "quiz": quiz_dict,
        "strings": strings_for(s.language),
        "runtime": {
            "pollMs": config.RUNTIME_POLL_MS,
            "reportMaxAttempts": config.REPORT_MAX_ATTEMPTS,
            "reportBackoffBase": config.REPORT_BACKOFF_BASE,
            "reportBackoffCap": config.REPORT_BACKOFF_CAP,
        },
    }
    meta_bits = [s.class_name, s.subject, s.branch, s.unit, s.lesson]
    meta = " · ".join(html.escape(m) for m in meta_bits if m)
    body_cls = f"fx-{html.escape(a.transition_effect)} tap-{html.escape(a.answer_animation)}"
    side = " side" if a.show_side_column else ""
    return f"""<!doctype html>
<html lang="{s.language}" dir="{s.direction}">
<head>
<meta charset="utf-8"/>
<meta name="viewport" content="width=device-width,initial-scale=1"/>
<meta name="quiz-artifact" content="{artifact_id}"/>
<title>{html.escape(s.title)}</title>
<style>{_css(a, s.branding)}</style>
</head>
<body class="{body_cls}">
<div id="watermark" hidden></div>
<main class="wrap{side}">
  <h1>{html.escape(s.title)}</h1>
  <p class="meta">{meta}</p>
  <div id="warning" class="warning" hidden></div>
  <section id="screen" class="card"></section>
</main>
{_footer(s)}
<script type="application/json" id="quiz-data">{_embed_json(payload)}</script>
<script>
{_runtime_script()}
</script>
</body>
</html>
"""


def compile_quiz(quiz: QuizData, asset_root: Optional[str | Path] = None) -> Document:
    """Validate, inline assets and render; raises ``ValidationError`` without output on any problem."""

    problems = collect_problems(quiz)
    if problems:
        raise ValidationError(problems)
    frozen = inline_assets(quiz, asset_root)
    quiz_dict = quiz_to_dict(frozen)
    artifact_id = artifact_id_for(quiz_dict)
    doc = Document(html=render_document(frozen, artifact_id, quiz_dict), artifact_id=artifact_id)
    log.info("compiled quiz %r: %d questions, artifact %s", quiz.settings.title, len(quiz.questions), artifact_id)
    return doc

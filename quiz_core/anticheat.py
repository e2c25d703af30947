"""Focus-loss and capture monitoring for an in-progress session.

Split-screen detection counts focus-loss strikes and escalates to the
configured reaction once ``strike_limit`` is reached.  Screenshot prevention
is deterrence only: a page cannot stop an OS-level capture, so capture
attempts are recorded and warned about, never escalated.
"""

from __future__ import annotations
from typing import List, Optional

from .types import AntiCheatPolicy, QuizSettings, Reaction, Strike

FOCUS_KINDS = ("blur", "hidden", "resize")
CAPTURE_KINDS = ("printscreen", "copy", "contextmenu")
# blur + visibilitychange fire together on a tab switch; count them once
FOCUS_DEBOUNCE_SECONDS = 1.0


def is_monitored(kind: str, settings: QuizSettings) -> bool:
    if kind in FOCUS_KINDS:
        return bool(settings.prevent_split_screen)
    if kind in CAPTURE_KINDS:
        return bool(settings.prevent_screenshot)
    return False


def should_shield(kind: str, settings: QuizSettings) -> bool:
    """Content is hidden while the window has lost focus (blur-on-blur)."""
    return bool(settings.prevent_screenshot) and kind in ("blur", "hidden")


def reaction_for(focus_count: int, policy: AntiCheatPolicy) -> Reaction:
    if focus_count < max(1, int(policy.strike_limit)):
        return Reaction.WARN
    return policy.reaction


def record_strike(
    strikes: List[Strike],
    kind: str,
    now: Optional[float],
    settings: QuizSettings,
    policy: AntiCheatPolicy,
) -> Optional[Strike]:
    """Append and return a strike for ``kind``; ``None`` when the kind is not monitored."""

    if not is_monitored(kind, settings):
        return None
    if kind in FOCUS_KINDS and now is not None:
        last = next((s for s in reversed(strikes) if s.kind in FOCUS_KINDS), None)
        if last is not None and last.t is not None and now - last.t < FOCUS_DEBOUNCE_SECONDS:
            return None
    if kind in CAPTURE_KINDS:
        count = 1 + sum(1 for s in strikes if s.kind in CAPTURE_KINDS)
        reaction = Reaction.WARN
    else:
        count = 1 + sum(1 for s in strikes if s.kind in FOCUS_KINDS)
        reaction = reaction_for(count, policy)
    strike = Strike(t=now, kind=kind, count=count, reaction=reaction.value)
    strikes.append(strike)
    return strike

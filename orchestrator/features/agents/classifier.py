"""Display heuristic that labels plain assistant text as a plan, question or progress note.

Substring matching only: callers may use the result to pick a UI treatment,
never to drive state.
"""
from __future__ import annotations

from typing import Literal

MessageKind = Literal["plan", "question", "progress", "message"]

PLAN_MARKERS = ("what i'll do", "plan:", "here's my plan", "i propose")
QUESTION_MARKERS = ("do you want", "should i", "would you like", "can you clarify")
PROGRESS_MARKERS = ("working on", "updating", "creating", "modifying")


def classify_message_text(text: str) -> MessageKind:
    lowered = text.lower()
    if any(marker in lowered for marker in PLAN_MARKERS):
        return "plan"
    if "?" in text and any(marker in lowered for marker in QUESTION_MARKERS):
        return "question"
    if any(marker in lowered for marker in PROGRESS_MARKERS):
        return "progress"
    return "message"

from __future__ import annotations

import pytest

from orchestrator.features.agents.classifier import classify_message_text


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Here's my plan: add a toggle to the header", "plan"),
        ("What I'll do is refactor the theme provider", "plan"),
        ("Should I also update the footer?", "question"),
        ("Would you like tests for this", "message"),
        ("Creating src/theme.ts now", "progress"),
        ("Working on the header component", "progress"),
        ("All files compile.", "message"),
    ],
)
def test_classify_message_text(text, expected):
    assert classify_message_text(text) == expected


def test_plan_markers_win_over_question_markers():
    assert classify_message_text("I propose two options. Should I pick the first?") == "plan"

"""Tests for roundtable/output.py."""

from pathlib import Path

import pytest

from roundtable.models import (
    ConsensusMetrics,
    DecisionEvolution,
    Discussion,
    DiscussionPhase,
    DiscussionState,
    DynamicRoundConfig,
)
from roundtable.output import _slug, outcome_label, print_outcome, print_round_summary, render_markdown, save_to_file
from tests.conftest import make_turn


@pytest.fixture
def finished_discussion() -> Discussion:
    discussion = Discussion(
        prompt="Build an offline-first expense tracker!",
        config=DynamicRoundConfig(min_rounds=1, max_rounds=2),
    )
    discussion.rounds = [
        make_turn("Business Analyst", "We need receipts captured offline.", 1),
        make_turn("Product Owner", "MVP is capture plus CSV export.", 2),
        make_turn("Product Owner", "Final: ship capture and export.", 3),
    ]
    discussion.consensus_history = [
        ConsensusMetrics(40, ["Requirements scope needs further exploration"], {}, 60, DiscussionPhase.EXPLORATION),
    ]
    discussion.decision_evolution = [DecisionEvolution(1, "General implementation", {}, 40, False)]
    discussion.current_round = 3
    discussion.forced_final_round = True
    discussion.consensus_reached = True
    discussion.state = DiscussionState.TERMINATED_FORCED
    return discussion


def test_slug():
    assert _slug("Build an offline-first expense tracker!") == "build-an-offline-first-expense-tracker"
    assert len(_slug("x" * 100)) == 40


def test_outcome_label(finished_discussion):
    assert "Forced final round" in outcome_label(finished_discussion)


def test_render_markdown_sections(finished_discussion):
    text = render_markdown(finished_discussion)
    assert text.startswith("# Roundtable Discussion: Build an offline-first expense tracker!")
    assert "## Round 1" in text
    assert "## Round 3 (forced final round)" in text
    assert "### Product Owner (Michael Torres)" in text
    assert "| 1 | 40% | exploration | 0 | Requirements scope needs further exploration |" in text
    assert "**General implementation** (40% agreement, open)" in text
    assert "**Mode:** dynamic" in text


def test_save_to_file(tmp_path: Path, finished_discussion):
    path = save_to_file(finished_discussion, tmp_path / "out")
    assert path.exists()
    assert path.name.endswith("_build-an-offline-first-expense-tracker.md")
    assert "Final: ship capture and export." in path.read_text(encoding="utf-8")


def test_console_output_does_not_raise(finished_discussion):
    print_round_summary(1, finished_discussion.turns_for_round(1), finished_discussion.consensus_history[0])
    print_round_summary(3, finished_discussion.turns_for_round(3), None)
    print_outcome(finished_discussion)

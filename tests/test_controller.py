"""Tests for roundtable/controller.py."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import ScoringConfig
from roundtable import roster
from roundtable.consensus import ConsensusEvaluator
from roundtable.controller import EVALUATION_FAILURE_ISSUE, RoundController
from roundtable.models import ContextStrategy, DiscussionState, DynamicRoundConfig
from roundtable.strategy import RoundStrategy
from tests.conftest import ScriptedParticipant

AGREEING_TEXT = (
    "I agree with the proposed plan and the team is aligned on scope, timeline and the delivery "
    "approach for the first release of the product which covers the core workflows, the reporting "
    "features, and the integration with the existing billing platform."
)


@pytest.fixture
def agreeing_participants() -> dict[int, ScriptedParticipant]:
    return {role.index: ScriptedParticipant(role.index, AGREEING_TEXT) for role in roster.ROLES}


def _controller(participants, sample_prompts_config, evaluator=None) -> RoundController:
    return RoundController(
        participants=participants,
        evaluator=evaluator or ConsensusEvaluator(),
        strategy=RoundStrategy(),
        prompts=sample_prompts_config,
    )


async def test_empty_prompt_rejected(scripted_participants, sample_prompts_config):
    controller = _controller(scripted_participants, sample_prompts_config)
    with pytest.raises(ValueError):
        await controller.run("   ", DynamicRoundConfig())


async def test_forced_final_round_after_max_rounds(scripted_participants, sample_prompts_config):
    # The rule-based scorer tops out below 100, so consensus is never measured.
    config = DynamicRoundConfig(min_rounds=2, max_rounds=3, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("Build an expense tracker", config)

    assert discussion.current_round == 4
    assert discussion.forced_final_round is True
    assert discussion.consensus_reached is True
    assert discussion.state is DiscussionState.TERMINATED_FORCED
    assert len(discussion.consensus_history) == 2
    assert len(discussion.round_orders) == 4

    forced_turns = discussion.turns_for_round(4)
    expected = [roster.ROLES_BY_KEY[k].title for k in roster.FORCED_FINAL_ORDERS[True]]
    assert [t.role for t in forced_turns] == expected
    assert not [t for t in discussion.rounds if t.round > 4]


async def test_forced_round_carries_directive(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("Build an expense tracker", config)

    last_issues = discussion.consensus_history[-1].unresolved_issues
    for participant in scripted_participants.values():
        forced = participant.contexts[-1]
        assert forced.round_number == 3
        assert "you must reach agreement on" in forced.directive
        for issue in last_issues:
            assert issue in forced.directive
    # earlier rounds never carry a directive
    assert all(c.directive is None for c in scripted_participants[0].contexts[:-1])


async def test_forced_round_without_moderator(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100, moderator_enabled=False)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("p", config)

    roles = {t.role for t in discussion.rounds}
    assert "AI Moderator" not in roles
    assert len(discussion.turns_for_round(3)) == 5


async def test_consensus_terminates_early(agreeing_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=2, max_rounds=6, consensus_threshold=50)
    controller = _controller(agreeing_participants, sample_prompts_config)

    discussion = await controller.run("Build an expense tracker", config)

    assert discussion.state is DiscussionState.TERMINATED_CONSENSUS
    assert discussion.consensus_reached is True
    assert discussion.forced_final_round is False
    assert discussion.current_round == 3
    assert discussion.consensus_history[-1].agreement_score >= 50
    assert discussion.decision_evolution


async def test_consensus_waits_past_min_rounds(agreeing_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=3, max_rounds=6, consensus_threshold=50)
    controller = _controller(agreeing_participants, sample_prompts_config)

    discussion = await controller.run("Build an expense tracker", config)

    assert discussion.state is DiscussionState.TERMINATED_CONSENSUS
    assert discussion.current_round == 4


async def test_failing_participant_is_skipped(scripted_participants, sample_prompts_config):
    scripted_participants[1].fail = True
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("p", config)

    assert "Key User" not in {t.role for t in discussion.rounds}
    assert len(discussion.turns_for_round(1)) == 4
    assert discussion.state is DiscussionState.TERMINATED_FORCED


async def test_missing_participant_is_skipped(scripted_participants, sample_prompts_config):
    del scripted_participants[roster.moderator_index()]
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("p", config)

    assert len(discussion.turns_for_round(3)) == 5


async def test_evaluator_failure_uses_fallback_metrics(scripted_participants, sample_prompts_config):
    evaluator = MagicMock(spec=ConsensusEvaluator)
    evaluator.scoring = ScoringConfig()
    evaluator.evaluate_round = AsyncMock(side_effect=RuntimeError("scorer exploded"))
    evaluator.track_decision_evolution = AsyncMock(return_value=[])
    config = DynamicRoundConfig(min_rounds=1, max_rounds=3, consensus_threshold=10)
    controller = _controller(scripted_participants, sample_prompts_config, evaluator)

    discussion = await controller.run("p", config)

    assert [m.agreement_score for m in discussion.consensus_history] == [60, 60]
    assert discussion.consensus_history[0].unresolved_issues == [EVALUATION_FAILURE_ISSUE]
    assert discussion.state is DiscussionState.TERMINATED_FORCED


async def test_first_round_seeded_and_later_rounds_focused(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    await controller.run("p", config)

    contexts = scripted_participants[0].contexts
    assert contexts[0].round_number == 1
    assert contexts[0].focus == []
    assert contexts[0].transcript == []
    assert contexts[1].round_number == 2
    assert contexts[1].focus
    assert len(contexts[1].transcript) >= 5


async def test_context_policy_reaches_participants(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=6, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    await controller.run("p", config)

    by_round = {c.round_number: c.context_strategy for c in scripted_participants[0].contexts}
    assert by_round[1] is ContextStrategy.FULL
    assert by_round[6] is ContextStrategy.PROGRESSIVE_SUMMARY


async def test_on_round_complete_called_per_round(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=3, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)
    calls = []

    await controller.run("p", config, on_round_complete=lambda n, turns, m: calls.append((n, len(turns), m)))

    assert [c[0] for c in calls] == [1, 2, 3, 4]
    assert calls[0][2] is not None and calls[1][2] is not None
    assert calls[2][2] is None and calls[3][2] is None


async def test_fixed_mode_runs_three_rounds(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(enabled=False)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("p", config)

    assert discussion.state is DiscussionState.COMPLETED
    assert discussion.current_round == 3
    assert discussion.consensus_reached is False
    assert discussion.round_orders == [roster.indices(k) for k in roster.FIXED_ROUND_ORDERS]
    assert len(discussion.consensus_history) == 3


async def test_project_context_reaches_every_turn(scripted_participants, sample_prompts_config):
    config = DynamicRoundConfig(min_rounds=1, max_rounds=2, consensus_threshold=100)
    controller = _controller(scripted_participants, sample_prompts_config)

    discussion = await controller.run("p", config, project_context="Use PostgreSQL.")

    assert discussion.project_context == "Use PostgreSQL."
    for participant in scripted_participants.values():
        assert participant.contexts
        assert all(c.project_context == "Use PostgreSQL." for c in participant.contexts)

"""Round controller: drives rounds until consensus or the round limit."""

import logging
from collections.abc import Callable

from config.config_loader import PromptsConfig
from roundtable import roster
from roundtable.consensus import ConsensusEvaluator
from roundtable.models import (
    ConsensusMetrics,
    Discussion,
    DiscussionPhase,
    DiscussionState,
    DynamicRoundConfig,
    PromptContext,
    RoundEvaluationResult,
    Turn,
)
from roundtable.participants import Participant
from roundtable.strategy import RoundStrategy

logger = logging.getLogger(__name__)

SEED_ISSUE = "Initial discussion needed"
EVALUATION_FAILURE_ISSUE = "Evaluation unavailable, continue discussion"

RoundCallback = Callable[[int, list[Turn], ConsensusMetrics | None], None]


class RoundController:
    """Runs a discussion among participants keyed by role index.

    Participants are asked one at a time; each prompt carries the transcript
    so far. A failing participant is logged and skipped. Evaluator failures
    never end the discussion.
    """

    def __init__(
        self,
        participants: dict[int, Participant],
        evaluator: ConsensusEvaluator,
        strategy: RoundStrategy,
        prompts: PromptsConfig,
    ) -> None:
        self._participants = participants
        self._evaluator = evaluator
        self._strategy = strategy
        self._prompts = prompts
        self._fallback_score = evaluator.scoring.evaluator_failure_score

    async def run(
        self,
        prompt: str,
        config: DynamicRoundConfig,
        on_round_complete: RoundCallback | None = None,
        project_context: str = "",
    ) -> Discussion:
        """Run the discussion to completion and return its record.

        project_context is shown to every participant alongside the prompt.

        Raises:
            ValueError: If the prompt is empty.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Discussion prompt must not be empty")

        discussion = Discussion(prompt=prompt.strip(), config=config, project_context=project_context)
        if not config.enabled:
            await self._run_fixed(discussion, on_round_complete)
        else:
            await self._run_dynamic(discussion, on_round_complete)
        return discussion

    async def _run_fixed(self, discussion: Discussion, on_round_complete: RoundCallback | None) -> None:
        config = discussion.config
        focus: list[str] = []
        for number, keys in enumerate(roster.FIXED_ROUND_ORDERS, start=1):
            discussion.current_round = number
            turns = await self._run_round(discussion, roster.indices(keys), focus)

            discussion.state = DiscussionState.EVALUATING
            evaluation = await self._evaluate(discussion, config)
            discussion.consensus_history.append(evaluation.metrics)
            discussion.decision_evolution = await self._evaluator.track_decision_evolution(
                discussion.rounds,
                discussion.decision_evolution,
                number,
                evaluation.metrics,
            )
            focus = evaluation.next_round_focus
            if on_round_complete:
                on_round_complete(number, turns, evaluation.metrics)

        discussion.state = DiscussionState.COMPLETED
        logger.info("Fixed-round discussion completed after %d rounds", discussion.current_round)

    async def _run_dynamic(self, discussion: Discussion, on_round_complete: RoundCallback | None) -> None:
        config = discussion.config
        metrics = ConsensusMetrics(
            agreement_score=0,
            unresolved_issues=[SEED_ISSUE],
            discussion_phase=DiscussionPhase.EXPLORATION,
        )
        order = self._strategy.generate_next_round(0, metrics, config)
        focus: list[str] = []
        discussion.current_round = 1

        while True:
            current = discussion.current_round
            turns = await self._run_round(discussion, order, focus)

            if current >= config.max_rounds:
                if on_round_complete:
                    on_round_complete(current, turns, None)
                break

            discussion.state = DiscussionState.EVALUATING
            evaluation = await self._evaluate(discussion, config)
            metrics = evaluation.metrics
            discussion.consensus_history.append(metrics)
            discussion.decision_evolution = await self._evaluator.track_decision_evolution(
                discussion.rounds,
                discussion.decision_evolution,
                current,
                metrics,
            )
            if on_round_complete:
                on_round_complete(current, turns, metrics)

            if evaluation.should_terminate and current > config.min_rounds:
                discussion.mark_consensus()
                discussion.state = DiscussionState.TERMINATED_CONSENSUS
                logger.info(
                    "Consensus reached after round %d (agreement %d%%)",
                    current,
                    metrics.agreement_score,
                )
                return

            order = self._strategy.generate_next_round(
                current, metrics, config, discussion.round_orders
            )
            focus = evaluation.next_round_focus
            discussion.current_round = current + 1

        await self._run_forced_final_round(discussion, on_round_complete)

    async def _run_forced_final_round(
        self,
        discussion: Discussion,
        on_round_complete: RoundCallback | None,
    ) -> None:
        config = discussion.config
        discussion.current_round += 1
        discussion.forced_final_round = True
        discussion.state = DiscussionState.FORCED_FINAL_ROUND

        latest = discussion.latest_metrics
        issues = latest.unresolved_issues if latest and latest.unresolved_issues else [SEED_ISSUE]
        directive = self._prompts.forced_directive.format(issues="; ".join(issues)).strip()
        order = roster.indices(roster.FORCED_FINAL_ORDERS[config.moderator_enabled])

        logger.info(
            "No consensus after %d rounds, running forced final round %d",
            config.max_rounds,
            discussion.current_round,
        )
        turns = await self._run_round(discussion, order, list(issues), directive=directive)
        if on_round_complete:
            on_round_complete(discussion.current_round, turns, None)

        discussion.mark_consensus()
        discussion.state = DiscussionState.TERMINATED_FORCED

    async def _run_round(
        self,
        discussion: Discussion,
        order: list[int],
        focus: list[str],
        directive: str | None = None,
    ) -> list[Turn]:
        """Ask each participant in order, appending turns as they arrive."""
        if discussion.state is not DiscussionState.FORCED_FINAL_ROUND:
            discussion.state = DiscussionState.RUNNING_ROUND
        round_number = discussion.current_round
        discussion.round_orders.append(list(order))
        policy = self._strategy.optimize_context(round_number)

        logger.info("Starting round %d with %d speakers", round_number, len(order))
        turns: list[Turn] = []
        for index in order:
            participant = self._participants.get(index)
            if participant is None:
                logger.warning("No participant for role index %d in round %d, skipping", index, round_number)
                continue
            context = PromptContext(
                prompt=discussion.prompt,
                round_number=round_number,
                transcript=list(discussion.rounds),
                focus=focus,
                context_strategy=policy.strategy,
                directive=directive,
                project_context=discussion.project_context,
            )
            try:
                content = await participant.generate_turn(context)
            except Exception as exc:
                logger.warning(
                    "%s failed in round %d, skipping: %s",
                    participant.role.title,
                    round_number,
                    exc,
                )
                continue
            turn = Turn(
                round=round_number,
                speaker_name=participant.role.name,
                role=participant.role.title,
                content=content,
            )
            discussion.rounds.append(turn)
            turns.append(turn)

        logger.info("Round %d complete: %d/%d turns", round_number, len(turns), len(order))
        return turns

    async def _evaluate(self, discussion: Discussion, config: DynamicRoundConfig) -> RoundEvaluationResult:
        """Evaluate the full transcript; an evaluator exception never terminates."""
        try:
            return await self._evaluator.evaluate_round(discussion.rounds, config, discussion.current_round)
        except Exception as exc:
            logger.warning("Evaluation failed for round %d: %s", discussion.current_round, exc)
            metrics = ConsensusMetrics(
                agreement_score=self._fallback_score,
                unresolved_issues=[EVALUATION_FAILURE_ISSUE],
                discussion_phase=DiscussionPhase.EXPLORATION,
            )
            return RoundEvaluationResult(
                metrics=metrics,
                should_terminate=False,
                next_round_focus=[EVALUATION_FAILURE_ISSUE],
                recommended_order=self._strategy.get_fallback_order(),
            )

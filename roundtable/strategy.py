"""Round strategy: speaking order, moderator escalation and context policy."""

import logging
from collections.abc import Sequence

from config.config_loader import ScoringConfig
from roundtable import roster
from roundtable.models import (
    ConsensusMetrics,
    ContextPolicy,
    ContextStrategy,
    DynamicRoundConfig,
    ModeratorDecision,
    TokenEstimate,
)
from roundtable.termination import is_consensus_reached

logger = logging.getLogger(__name__)

PROGRESSIVE_SUMMARY_AFTER = 5
AGGRESSIVE_SUMMARY_AFTER = 8
PARTICIPANTS_PER_ROUND = 5
TOKEN_OVERHEAD_FACTOR = 1.3
MIN_ORDER_LENGTH = 3


def moderator_decision(
    metrics: ConsensusMetrics,
    config: DynamicRoundConfig,
    current_round: int,
    scoring: ScoringConfig | None = None,
) -> ModeratorDecision:
    """Whether the moderator speaks next round, and where in the order."""
    s = scoring or ScoringConfig()
    if not config.moderator_enabled:
        return ModeratorDecision(include=False)

    conflicts = metrics.conflict_count
    if conflicts > 0:
        reason = f"{conflicts} conflicts"
    elif current_round > 0 and current_round % s.moderator_period == 0:
        reason = "periodic consensus check"
    elif abs(metrics.agreement_score - config.consensus_threshold) <= s.borderline_margin:
        reason = f"borderline agreement ({metrics.agreement_score}% near {config.consensus_threshold}%)"
    else:
        return ModeratorDecision(include=False)

    if conflicts > s.moderator_front_conflicts:
        placement = "front"
    elif metrics.agreement_score < s.moderator_middle_score:
        placement = "middle"
    else:
        placement = "end"

    logger.debug("Including moderator (%s) at %s", reason, placement)
    return ModeratorDecision(include=True, placement=placement)


def _place(core: list[int], moderator: int, placement: str) -> list[int]:
    if placement == "front":
        return [moderator] + core
    if placement == "end":
        return core + [moderator]
    mid = len(core) // 2
    return core[:mid] + [moderator] + core[mid:]


def _placement_of(order: list[int], moderator: int) -> str | None:
    if moderator not in order:
        return None
    pos = order.index(moderator)
    if pos == 0:
        return "front"
    if pos == len(order) - 1:
        return "end"
    return "middle"


class RoundStrategy:
    """Computes the next speaking order from the latest consensus metrics."""

    def __init__(self, scoring: ScoringConfig | None = None) -> None:
        roster.validate_tables()
        self._scoring = scoring or ScoringConfig()
        self._moderator = roster.moderator_index()

    def generate_next_round(
        self,
        current_round: int,
        metrics: ConsensusMetrics,
        config: DynamicRoundConfig,
        previous_orders: Sequence[Sequence[int]] = (),
    ) -> list[int]:
        order = self.base_order(metrics)

        decision = moderator_decision(metrics, config, current_round, self._scoring)
        if decision.include and decision.placement:
            order = _place(order, self._moderator, decision.placement)

        order = self.optimize_order_for_issues(order, metrics)
        order = self.ensure_order_variety(order, previous_orders)

        logger.debug("Order for round %d: %s", current_round + 1, order)
        return order

    def base_order(self, metrics: ConsensusMetrics) -> list[int]:
        return roster.indices(roster.PHASE_ORDERS[metrics.discussion_phase])

    def optimize_order_for_issues(self, order: list[int], metrics: ConsensusMetrics) -> list[int]:
        """Stable re-sort of non-moderator speakers by how many open issues they own."""
        scores: dict[int, int] = {}
        for issue in metrics.unresolved_issues:
            lowered = issue.lower()
            for keywords, role_key in roster.ISSUE_CATEGORIES.values():
                if any(k in lowered for k in keywords):
                    idx = roster.index_of(role_key)
                    scores[idx] = scores.get(idx, 0) + 1

        if not scores:
            return order

        placement = _placement_of(order, self._moderator)
        core = sorted(
            (i for i in order if i != self._moderator),
            key=lambda i: scores.get(i, 0),
            reverse=True,
        )
        if placement is None:
            return core
        return _place(core, self._moderator, placement)

    def ensure_order_variety(
        self,
        order: list[int],
        previous_orders: Sequence[Sequence[int]],
    ) -> list[int]:
        """Swap the first two non-moderator speakers if order repeats the last one."""
        if not previous_orders or list(previous_orders[-1]) != order:
            return order

        core = [i for i in order if i != self._moderator]
        if len(core) < 2:
            return order
        logger.debug("Order repeats previous round, introducing variation")
        core[0], core[1] = core[1], core[0]

        if self._moderator not in order:
            return core
        varied = list(core)
        varied.insert(order.index(self._moderator), self._moderator)
        return varied

    def should_terminate_discussion(
        self,
        current_round: int,
        metrics: ConsensusMetrics,
        config: DynamicRoundConfig,
    ) -> bool:
        """Same policy as the evaluator; fixed-round mode never stops early."""
        if not config.enabled:
            return False
        return is_consensus_reached(metrics, config, current_round)

    def optimize_context(self, current_round: int) -> ContextPolicy:
        if current_round > AGGRESSIVE_SUMMARY_AFTER:
            strategy = ContextStrategy.AGGRESSIVE_SUMMARY
        elif current_round > PROGRESSIVE_SUMMARY_AFTER:
            strategy = ContextStrategy.PROGRESSIVE_SUMMARY
        else:
            strategy = ContextStrategy.FULL

        should_summarize = current_round > PROGRESSIVE_SUMMARY_AFTER
        if should_summarize:
            logger.debug("Context optimization: round %d, strategy=%s", current_round, strategy.value)
        return ContextPolicy(should_summarize=should_summarize, strategy=strategy)

    def estimate_token_usage(
        self,
        current_round: int,
        average_response_length: float,
        baseline_tokens: float,
    ) -> TokenEstimate:
        """Rough token growth estimate. A non-positive baseline reports 0% increase."""
        dynamic = current_round * PARTICIPANTS_PER_ROUND * average_response_length * TOKEN_OVERHEAD_FACTOR
        estimate = baseline_tokens + dynamic
        if baseline_tokens <= 0:
            return TokenEstimate(current_estimate=estimate, increase_percentage=0.0)
        return TokenEstimate(
            current_estimate=estimate,
            increase_percentage=(estimate - baseline_tokens) / baseline_tokens * 100,
        )

    def get_fallback_order(self, include_moderator: bool = False) -> list[int]:
        order = roster.core_indices()
        return order + [self._moderator] if include_moderator else order

    def validate_order(self, order: Sequence[int]) -> bool:
        valid_indices = all(i in roster.ROLES_BY_INDEX for i in order)
        no_duplicates = len(set(order)) == len(order)
        reasonable_length = MIN_ORDER_LENGTH <= len(order) <= len(roster.ROLES)
        return valid_indices and no_duplicates and reasonable_length

"""The one termination policy shared by the evaluator and the round strategy."""

import logging

from roundtable.models import ConsensusMetrics, DynamicRoundConfig

logger = logging.getLogger(__name__)


def is_consensus_reached(
    metrics: ConsensusMetrics,
    config: DynamicRoundConfig,
    current_round: int,
) -> bool:
    """Decide whether the discussion may stop after current_round.

    True at or past max_rounds regardless of metrics, False before
    min_rounds, otherwise requires score >= threshold, no conflicting
    positions and at most conflict_tolerance unresolved issues.
    """
    if current_round >= config.max_rounds:
        logger.debug("Max rounds (%d) reached, terminating", config.max_rounds)
        return True

    if current_round < config.min_rounds:
        logger.debug("Min rounds (%d) not reached yet", config.min_rounds)
        return False

    score_ok = metrics.agreement_score >= config.consensus_threshold
    conflicts_ok = not metrics.conflicting_positions
    issues_ok = len(metrics.unresolved_issues) <= config.conflict_tolerance
    result = score_ok and conflicts_ok and issues_ok

    logger.debug(
        "Termination check (round %d): score=%s (%d>=%d), conflicts=%s, issues=%s -> %s",
        current_round,
        score_ok,
        metrics.agreement_score,
        config.consensus_threshold,
        conflicts_ok,
        issues_ok,
        result,
    )
    return result

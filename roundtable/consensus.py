"""Consensus evaluation: scorer-assisted metrics with a rule-based fallback."""

import json
import logging
import math
import re

from config.config_loader import PromptsConfig, ScoringConfig
from roundtable import roster
from roundtable.degrade import degrade
from roundtable.models import (
    ConsensusMetrics,
    DecisionEvolution,
    DiscussionPhase,
    DynamicRoundConfig,
    PersonaPosition,
    RoundEvaluationResult,
    Turn,
)
from roundtable.positions import extract_persona_positions
from roundtable.providers.base import AIProvider
from roundtable.termination import is_consensus_reached

logger = logging.getLogger(__name__)

MAX_FOCUS_ITEMS = 4
MAX_ISSUE_FOCUS = 3

CONFLICT_FOCUS = "Resolve conflicting viewpoints and find common ground"
PHASE_FOCUS: dict[DiscussionPhase, str] = {
    DiscussionPhase.EXPLORATION: "Explore requirements and constraints thoroughly",
    DiscussionPhase.ALIGNMENT: "Align on technical approach and implementation strategy",
    DiscussionPhase.RESOLUTION: "Finalize decisions and resolve remaining concerns",
    DiscussionPhase.FINALIZATION: "Confirm final specifications and next steps",
}
FALLBACK_FOCUS = "Continue discussion to reach consensus"

CLARIFICATION_ISSUE = "Implementation details need clarification"
EARLY_ROUND_ISSUES = (
    "Requirements scope needs further exploration",
    "Technical approach requires consensus",
)
CONFLICT_PLACEHOLDER = "Concerns raised about approach"

# Whole-word match, unlike plain substring search: "but" does not hit "butter".
CONFLICT_PATTERN = re.compile(
    r"\b(?:however|but|alternatively|instead)\b|\b(?:concern|issue|problem|disagree)\w*",
    re.IGNORECASE,
)

DECISION_TOPICS = (
    "authentication", "database", "api", "frontend", "backend", "security", "performance",
)
GENERAL_TOPIC = "General implementation"
DEFAULT_DECISION_AGREEMENT = 70
POSITION_SNIPPET_CHARS = 100


def _first_json_object(text: str) -> dict:
    """Return the first decodable JSON object embedded in text."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            obj, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    raise ValueError("No JSON object found in scorer response")


def _coerce_score(value: object) -> int:
    """Coerce to a number clamped to [0, 100]; anything non-numeric is 0."""
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return int(round(max(0.0, min(100.0, number))))


def _coerce_phase(value: object) -> DiscussionPhase:
    try:
        return DiscussionPhase(value)
    except ValueError:
        return DiscussionPhase.EXPLORATION


def _coerce_conflicts(value: object) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    return {
        str(role): [str(p) for p in positions]
        for role, positions in value.items()
        if isinstance(positions, list)
    }


def _format_discussion(turns: list[Turn]) -> str:
    return "\n\n".join(f"{t.role}: {t.content}" for t in turns)


class ConsensusEvaluator:
    """Scores agreement for a round and recommends what happens next.

    With a scorer provider the metrics come from a JSON analysis prompt;
    without one, or whenever that path fails, the rule-based heuristic is used.
    """

    def __init__(
        self,
        scorer: AIProvider | None = None,
        prompts: PromptsConfig | None = None,
        scoring: ScoringConfig | None = None,
    ) -> None:
        if scorer is not None and prompts is None:
            raise ValueError("prompts are required when a scorer provider is given")
        self._scorer = scorer
        self._prompts = prompts
        self._scoring = scoring or ScoringConfig()

    @property
    def scoring(self) -> ScoringConfig:
        return self._scoring

    async def evaluate_round(
        self,
        turns: list[Turn],
        config: DynamicRoundConfig,
        current_round: int,
    ) -> RoundEvaluationResult:
        """Evaluate the transcript after current_round. Never raises."""
        logger.debug("Evaluating round %d with %d turns", current_round, len(turns))
        return await degrade(
            f"Round {current_round} evaluation",
            lambda: self._evaluate(turns, config, current_round),
            lambda: self.generate_fallback_evaluation(turns, config, current_round),
            lambda: self._static_evaluation(config, current_round),
        )

    async def _evaluate(
        self,
        turns: list[Turn],
        config: DynamicRoundConfig,
        current_round: int,
    ) -> RoundEvaluationResult:
        metrics = await self.generate_consensus_metrics(turns, config, current_round)
        should_terminate = self.should_terminate_discussion(metrics, config, current_round)
        result = RoundEvaluationResult(
            metrics=metrics,
            should_terminate=should_terminate,
            next_round_focus=self.extract_next_round_focus(metrics),
            recommended_order=self.generate_recommended_order(metrics),
        )
        logger.info(
            "Round %d consensus: agreement=%d%%, phase=%s, conflicts=%d, issues=%d, terminate=%s",
            current_round,
            metrics.agreement_score,
            metrics.discussion_phase.value,
            metrics.conflict_count,
            len(metrics.unresolved_issues),
            should_terminate,
        )
        return result

    async def generate_consensus_metrics(
        self,
        turns: list[Turn],
        config: DynamicRoundConfig,
        current_round: int,
    ) -> ConsensusMetrics:
        if self._scorer is None:
            return self.generate_rule_based_consensus(turns, current_round)
        return await degrade(
            "Consensus scoring",
            lambda: self._scored_consensus(turns, config, current_round),
            lambda: self.generate_rule_based_consensus(turns, current_round),
            self._static_metrics,
        )

    async def _scored_consensus(
        self,
        turns: list[Turn],
        config: DynamicRoundConfig,
        current_round: int,
    ) -> ConsensusMetrics:
        if self._scorer is None or self._prompts is None:
            raise RuntimeError("No scorer provider configured")
        prompt = self._prompts.consensus_analysis.format(
            threshold=config.consensus_threshold,
            tolerance=config.conflict_tolerance,
            discussion=_format_discussion(turns),
        )
        response = await self._scorer.generate(
            prompt,
            round_number=current_round,
            system=self._prompts.consensus_system,
        )
        return self.parse_scorer_response(response.content)

    def parse_scorer_response(self, text: str) -> ConsensusMetrics:
        """Build metrics from a scorer reply, validating each field on its own.

        Raises ValueError only when the reply holds no JSON object at all.
        """
        parsed = _first_json_object(text)
        issues = parsed.get("unresolvedIssues")
        return ConsensusMetrics(
            agreement_score=_coerce_score(parsed.get("agreementScore")),
            unresolved_issues=[str(i) for i in issues] if isinstance(issues, list) else [],
            conflicting_positions=_coerce_conflicts(parsed.get("conflictingPositions")),
            confidence_level=_coerce_score(parsed.get("confidenceLevel")),
            discussion_phase=_coerce_phase(parsed.get("discussionPhase")),
        )

    def generate_rule_based_consensus(
        self,
        turns: list[Turn],
        current_round: int,
    ) -> ConsensusMetrics:
        """Lexical heuristic scoring. Deterministic, never calls out."""
        s = self._scoring
        logger.debug("Generating rule-based consensus for round %d", current_round)

        roles = {t.role for t in turns}
        participation = s.participation_bonus * min(1.0, len(roles) / s.expected_roster_size)
        depth = s.depth_bonus * min(1.0, len(turns) / s.expected_turn_volume)

        score = s.base_score + participation + depth
        if current_round <= s.early_round_limit:
            score = min(score, s.early_round_ceiling)
        elif current_round <= s.mid_round_limit:
            score = min(score, s.mid_round_ceiling)
        agreement_score = int(round(max(0.0, min(100.0, score))))

        issues: list[str] = []
        short_turns = sum(1 for t in turns if len(t.content.split()) < s.short_turn_words)
        if short_turns > s.short_turn_allowance:
            issues.append(CLARIFICATION_ISSUE)
        if current_round <= s.early_round_limit:
            issues.extend(EARLY_ROUND_ISSUES)

        conflicts: dict[str, list[str]] = {}
        for turn in turns:
            if turn.role not in conflicts and CONFLICT_PATTERN.search(turn.content):
                conflicts[turn.role] = [CONFLICT_PLACEHOLDER]

        return ConsensusMetrics(
            agreement_score=agreement_score,
            unresolved_issues=issues,
            conflicting_positions=conflicts,
            confidence_level=s.rule_confidence,
            discussion_phase=self.phase_for(current_round, agreement_score),
        )

    def phase_for(self, current_round: int, score: int) -> DiscussionPhase:
        """Map (round, score) to a phase; monotone in both arguments."""
        s = self._scoring
        if score >= s.finalization_band and current_round > s.mid_round_limit:
            return DiscussionPhase.FINALIZATION
        if score >= s.resolution_band and current_round > s.early_round_limit:
            return DiscussionPhase.RESOLUTION
        if score >= s.alignment_band and current_round >= s.early_round_limit:
            return DiscussionPhase.ALIGNMENT
        return DiscussionPhase.EXPLORATION

    def should_terminate_discussion(
        self,
        metrics: ConsensusMetrics,
        config: DynamicRoundConfig,
        current_round: int,
    ) -> bool:
        return is_consensus_reached(metrics, config, current_round)

    def extract_next_round_focus(self, metrics: ConsensusMetrics) -> list[str]:
        focus = list(metrics.unresolved_issues[:MAX_ISSUE_FOCUS])
        if metrics.conflicting_positions:
            focus.append(CONFLICT_FOCUS)
        # The phase line always survives truncation.
        return focus[: MAX_FOCUS_ITEMS - 1] + [PHASE_FOCUS[metrics.discussion_phase]]

    def generate_recommended_order(self, metrics: ConsensusMetrics) -> list[int]:
        order = roster.indices(roster.PHASE_ORDERS[metrics.discussion_phase])
        if metrics.conflicting_positions:
            moderator = roster.moderator_index()
            order = [moderator] + [i for i in order if i != moderator]
        return order

    def generate_fallback_evaluation(
        self,
        turns: list[Turn],
        config: DynamicRoundConfig,
        current_round: int,
    ) -> RoundEvaluationResult:
        """Rule-based metrics with a termination check on round and score only."""
        logger.debug("Generating complete fallback evaluation for round %d", current_round)
        metrics = self.generate_rule_based_consensus(turns, current_round)
        should_terminate = current_round >= config.max_rounds or (
            current_round >= config.min_rounds
            and metrics.agreement_score >= config.consensus_threshold
        )
        return RoundEvaluationResult(
            metrics=metrics,
            should_terminate=should_terminate,
            next_round_focus=[FALLBACK_FOCUS],
            recommended_order=roster.indices(roster.PHASE_ORDERS[DiscussionPhase.EXPLORATION]),
        )

    def _static_metrics(self) -> ConsensusMetrics:
        return ConsensusMetrics(
            agreement_score=self._scoring.base_score,
            unresolved_issues=[FALLBACK_FOCUS],
            confidence_level=0,
        )

    def _static_evaluation(self, config: DynamicRoundConfig, current_round: int) -> RoundEvaluationResult:
        return RoundEvaluationResult(
            metrics=self._static_metrics(),
            should_terminate=current_round >= config.max_rounds,
            next_round_focus=[FALLBACK_FOCUS],
            recommended_order=roster.indices(roster.PHASE_ORDERS[DiscussionPhase.EXPLORATION]),
        )

    async def track_decision_evolution(
        self,
        turns: list[Turn],
        previous: list[DecisionEvolution],
        current_round: int,
        metrics: ConsensusMetrics | None = None,
    ) -> list[DecisionEvolution]:
        """Append one record per key topic raised in current_round.

        Returns a new list; on any failure returns previous unchanged.
        """
        return await degrade(
            "Decision evolution tracking",
            lambda: self._track(turns, previous, current_round, metrics),
            lambda: list(previous),
            lambda: previous,
        )

    def _track(
        self,
        turns: list[Turn],
        previous: list[DecisionEvolution],
        current_round: int,
        metrics: ConsensusMetrics | None,
    ) -> list[DecisionEvolution]:
        round_turns = [t for t in turns if t.round == current_round]
        content = " ".join(t.content for t in round_turns).lower()
        topics = [k for k in DECISION_TOPICS if re.search(rf"\b{k}", content)] or [GENERAL_TOPIC]

        positions = {t.role: t.content[:POSITION_SNIPPET_CHARS] for t in round_turns}
        evolution = list(previous)
        for topic in topics:
            if metrics is None:
                agreement, resolved = DEFAULT_DECISION_AGREEMENT, False
            else:
                agreement = metrics.agreement_score
                resolved = not metrics.conflicting_positions and not any(
                    topic.lower() in issue.lower() for issue in metrics.unresolved_issues
                )
            evolution.append(
                DecisionEvolution(
                    round=current_round,
                    topic=topic,
                    positions=dict(positions),
                    agreement_level=agreement,
                    resolved=resolved,
                )
            )
        return evolution

    def extract_persona_positions(self, turns: list[Turn]) -> dict[str, list[PersonaPosition]]:
        return extract_persona_positions(turns)

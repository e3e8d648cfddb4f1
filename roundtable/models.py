"""Dataclasses for the roundtable discussion pipeline. No I/O, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class DiscussionPhase(str, Enum):
    """Coarse stage of a discussion, ordered from earliest to latest."""

    EXPLORATION = "exploration"
    ALIGNMENT = "alignment"
    RESOLUTION = "resolution"
    FINALIZATION = "finalization"


class ContextStrategy(str, Enum):
    FULL = "full"
    PROGRESSIVE_SUMMARY = "progressive_summary"
    AGGRESSIVE_SUMMARY = "aggressive_summary"


class DiscussionState(str, Enum):
    """Round controller states."""

    IDLE = "idle"
    RUNNING_ROUND = "running_round"
    EVALUATING = "evaluating"
    FORCED_FINAL_ROUND = "forced_final_round"
    TERMINATED_CONSENSUS = "terminated_consensus"
    TERMINATED_FORCED = "terminated_forced"
    COMPLETED = "completed"  # fixed-round mode


@dataclass(frozen=True)
class Turn:
    round: int
    speaker_name: str
    role: str              # stable role title, e.g. "Solutions Architect"
    content: str


@dataclass(frozen=True)
class ConsensusMetrics:
    agreement_score: int
    unresolved_issues: list[str] = field(default_factory=list)
    conflicting_positions: dict[str, list[str]] = field(default_factory=dict)
    confidence_level: int = 0
    discussion_phase: DiscussionPhase = DiscussionPhase.EXPLORATION

    def __post_init__(self) -> None:
        for name in ("agreement_score", "confidence_level"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within [0, 100], got {value}")

    @property
    def conflict_count(self) -> int:
        return len(self.conflicting_positions)


@dataclass(frozen=True)
class DynamicRoundConfig:
    enabled: bool = True
    min_rounds: int = 2
    max_rounds: int = 10
    consensus_threshold: int = 85
    conflict_tolerance: int = 15
    moderator_enabled: bool = True

    def __post_init__(self) -> None:
        if self.min_rounds < 1:
            raise ValueError(f"min_rounds must be >= 1, got {self.min_rounds}")
        if self.max_rounds < self.min_rounds:
            raise ValueError(
                f"max_rounds ({self.max_rounds}) must be >= min_rounds ({self.min_rounds})"
            )
        if not 0 <= self.consensus_threshold <= 100:
            raise ValueError(f"consensus_threshold must be within [0, 100], got {self.consensus_threshold}")
        if self.conflict_tolerance < 0:
            raise ValueError(f"conflict_tolerance must be >= 0, got {self.conflict_tolerance}")


@dataclass(frozen=True)
class RoundEvaluationResult:
    metrics: ConsensusMetrics
    should_terminate: bool
    next_round_focus: list[str]
    recommended_order: list[int]


@dataclass
class DecisionEvolution:
    round: int
    topic: str
    positions: dict[str, str]
    agreement_level: int
    resolved: bool


@dataclass(frozen=True)
class PersonaPosition:
    role: str
    position: str
    reasoning: str
    confidence: int


@dataclass(frozen=True)
class ModeratorDecision:
    include: bool
    placement: str | None = None   # "front", "middle", "end"


@dataclass(frozen=True)
class ContextPolicy:
    should_summarize: bool
    strategy: ContextStrategy


@dataclass(frozen=True)
class TokenEstimate:
    current_estimate: float
    increase_percentage: float


@dataclass
class Completion:
    provider: str
    model: str
    round_number: int
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class PromptContext:
    """Everything a participant sees when asked for a turn."""

    prompt: str
    round_number: int
    transcript: list[Turn]
    focus: list[str] = field(default_factory=list)
    context_strategy: ContextStrategy = ContextStrategy.FULL
    directive: str | None = None
    project_context: str = ""


@dataclass
class Discussion:
    """Finished (or in-progress) discussion record, owned by the controller."""

    prompt: str
    config: DynamicRoundConfig
    project_context: str = ""
    rounds: list[Turn] = field(default_factory=list)
    consensus_history: list[ConsensusMetrics] = field(default_factory=list)
    decision_evolution: list[DecisionEvolution] = field(default_factory=list)
    round_orders: list[list[int]] = field(default_factory=list)
    current_round: int = 0
    consensus_reached: bool = False
    forced_final_round: bool = False
    state: DiscussionState = DiscussionState.IDLE

    def turns_for_round(self, round_number: int) -> list[Turn]:
        return [t for t in self.rounds if t.round == round_number]

    def mark_consensus(self) -> None:
        """Set consensus_reached. One-way: never reverts to False."""
        self.consensus_reached = True

    @property
    def latest_metrics(self) -> ConsensusMetrics | None:
        return self.consensus_history[-1] if self.consensus_history else None

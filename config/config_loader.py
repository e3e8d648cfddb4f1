"""Load settings.yaml into typed dataclasses. Checks provider API keys at startup."""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from roundtable.models import DynamicRoundConfig

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str | None
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None


@dataclass
class PromptsConfig:
    persona_system: str
    turn: str
    consensus_system: str
    consensus_analysis: str
    forced_directive: str


@dataclass
class ScoringConfig:
    """Tuning constants for the rule-based scorer and the round strategy.

    Values are the historical defaults; change them in settings.yaml, not here.
    """

    base_score: int = 20
    participation_bonus: int = 20
    depth_bonus: int = 15
    expected_roster_size: int = 5
    expected_turn_volume: int = 15
    early_round_limit: int = 2
    early_round_ceiling: int = 45
    mid_round_limit: int = 4
    mid_round_ceiling: int = 65
    alignment_band: int = 45
    resolution_band: int = 65
    finalization_band: int = 85
    short_turn_words: int = 30
    short_turn_allowance: int = 2
    rule_confidence: int = 60
    evaluator_failure_score: int = 60
    borderline_margin: int = 10
    moderator_period: int = 3
    moderator_front_conflicts: int = 2
    moderator_middle_score: int = 60


@dataclass
class DefaultsConfig:
    provider: str
    output_dir: Path
    dynamic: DynamicRoundConfig = field(default_factory=DynamicRoundConfig)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_scoring(raw: dict | None) -> ScoringConfig:
    if not raw:
        return ScoringConfig()
    known = {f.name for f in fields(ScoringConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown scoring keys in settings: {sorted(unknown)}")
    return ScoringConfig(**{k: int(v) for k, v in raw.items()})


def _load_dynamic(raw: dict | None) -> DynamicRoundConfig:
    if not raw:
        return DynamicRoundConfig()
    return DynamicRoundConfig(
        enabled=bool(raw.get("enabled", True)),
        min_rounds=int(raw.get("min_rounds", 2)),
        max_rounds=int(raw.get("max_rounds", 10)),
        consensus_threshold=int(raw.get("consensus_threshold", 85)),
        conflict_tolerance=int(raw.get("conflict_tolerance", 15)),
        moderator_enabled=bool(raw.get("moderator_enabled", True)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError if the
    dynamic round section or scoring section is invalid.
    Logs missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        output_dir=Path(defaults_raw["output_dir"]),
        dynamic=_load_dynamic(defaults_raw.get("dynamic")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        persona_system=prompts_raw["persona_system"],
        turn=prompts_raw["turn"],
        consensus_system=prompts_raw["consensus_system"],
        consensus_analysis=prompts_raw["consensus_analysis"],
        forced_directive=prompts_raw["forced_directive"],
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw.get("api_key_env"),
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(model_raw.get("temperature", 0.7)),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        if not model_cfg.api_key_env:
            # Local endpoints (Ollama) take no key.
            available_providers.add(provider_name)
            logger.info("Provider available (no key required): %s", provider_name)
            continue

        api_key = os.environ.get(model_cfg.api_key_env, "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_cfg.api_key_env,
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        scoring=_load_scoring(raw.get("scoring")),
        available_providers=available_providers,
    )

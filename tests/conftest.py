"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig, ScoringConfig
from roundtable.models import Completion, DynamicRoundConfig, PromptContext, Turn
from roundtable.participants import Participant
from roundtable.providers.base import AIProvider
from roundtable.roster import ROLES, ROLES_BY_INDEX


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        persona_system="You are {name}, the {title}.\nObjectives:\n{objectives}\nAt most {max_words} words.",
        turn="Problem: {prompt}\n{context}\nRound {round}\n{transcript}\nFocus:\n{focus}\n{directive}As {title}:",
        consensus_system="You analyze discussions.",
        consensus_analysis="Threshold {threshold}, tolerance {tolerance}.\n{discussion}\nReply with {{}} JSON.",
        forced_directive="FINAL ROUND: you must reach agreement on: {issues}.",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(provider="ollama", output_dir=tmp_path / "output")


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="ollama",
        sdk="openai",
        model="mistral:latest",
        api_key_env=None,
        timeout_sec=60,
        max_tokens=512,
        base_url="http://localhost:11434/v1",
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"ollama": model_cfg},
        prompts=sample_prompts_config,
        scoring=ScoringConfig(),
        available_providers={"ollama"},
    )


@pytest.fixture
def dynamic_config() -> DynamicRoundConfig:
    return DynamicRoundConfig(min_rounds=2, max_rounds=4, consensus_threshold=85, conflict_tolerance=15)


def make_turn(role_title: str, content: str, round_number: int = 1) -> Turn:
    role = next(r for r in ROLES if r.title == role_title)
    return Turn(round=round_number, speaker_name=role.name, role=role.title, content=content)


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(
                provider=provider_name,
                model="mock-model",
                round_number=1,
                content=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, round_number: int, system: str | None = None) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(
            provider=self._name,
            model="mock-model",
            round_number=round_number,
            content=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )


class ScriptedParticipant(Participant):
    """Participant that replies with a fixed text, or raises when told to fail."""

    def __init__(self, index: int, reply: str = "I agree with the plan.", fail: bool = False) -> None:
        super().__init__(ROLES_BY_INDEX[index])
        self.reply = reply
        self.fail = fail
        self.contexts: list[PromptContext] = []

    async def generate_turn(self, context: PromptContext) -> str:
        self.contexts.append(context)
        if self.fail:
            raise RuntimeError(f"{self.role.title} is unavailable")
        return self.reply


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def scripted_participants() -> dict[int, ScriptedParticipant]:
    return {role.index: ScriptedParticipant(role.index) for role in ROLES}

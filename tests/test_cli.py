"""Tests for CLI config and provider selection in roundtable/cli.py."""

import pytest
from click.testing import CliRunner

from config.config_loader import ModelConfig
from roundtable.cli import _build_provider, _effective_round_config, main
from roundtable.models import DynamicRoundConfig
from roundtable.providers.base import ProviderError
from roundtable.providers.openai_provider import OpenAIProvider


def test_effective_round_config_uses_settings_by_default():
    base = DynamicRoundConfig(min_rounds=3, max_rounds=7)
    assert _effective_round_config(base, None, None, None, None, False, False) == base


def test_effective_round_config_flags_override():
    config = _effective_round_config(DynamicRoundConfig(), 1, 4, 70, 3, True, False)
    assert (config.min_rounds, config.max_rounds) == (1, 4)
    assert (config.consensus_threshold, config.conflict_tolerance) == (70, 3)
    assert config.moderator_enabled is False
    assert config.enabled is True


def test_effective_round_config_fixed_flag():
    assert _effective_round_config(DynamicRoundConfig(), None, None, None, None, False, True).enabled is False


def test_effective_round_config_invalid_raises():
    with pytest.raises(ValueError):
        _effective_round_config(DynamicRoundConfig(), 5, 2, None, None, False, False)


def test_build_provider_keyless_ollama(sample_app_config):
    provider = _build_provider(sample_app_config, "ollama")
    assert isinstance(provider, OpenAIProvider)
    assert provider.model_string() == "mistral:latest"


def test_build_provider_unknown(sample_app_config):
    with pytest.raises(ProviderError, match="Unknown provider"):
        _build_provider(sample_app_config, "grok")


def test_build_provider_unavailable(sample_app_config):
    sample_app_config.models["claude"] = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-3-haiku-20240307",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=512,
    )
    with pytest.raises(ProviderError, match="unavailable"):
        _build_provider(sample_app_config, "claude")


def test_build_provider_unsupported_sdk(sample_app_config):
    sample_app_config.models["ollama"].sdk = "gemini"
    with pytest.raises(ProviderError, match="Unsupported sdk"):
        _build_provider(sample_app_config, "ollama")


def test_cli_requires_prompt():
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 1


def test_cli_rejects_invalid_rounds():
    result = CliRunner().invoke(main, ["Build a tracker", "--min-rounds", "5", "--max-rounds", "2", "--dry-run"])
    assert result.exit_code == 1


def test_cli_rejects_unknown_provider():
    result = CliRunner().invoke(main, ["Build a tracker", "--provider", "nope", "--dry-run"])
    assert result.exit_code == 1


def test_cli_dry_run(tmp_path):
    prompt_file = tmp_path / "problem.md"
    prompt_file.write_text("Build an offline-first expense tracker", encoding="utf-8")
    result = CliRunner().invoke(main, ["--file", str(prompt_file), "--fixed", "--dry-run"])
    assert result.exit_code == 0
    assert "Dry run" in result.output


def test_cli_dry_run_reads_project_root(tmp_path):
    (tmp_path / "CLAUDE.md").write_text("Use PostgreSQL.", encoding="utf-8")
    result = CliRunner().invoke(main, ["Add SSO", "--project-root", str(tmp_path), "--dry-run"])
    assert result.exit_code == 0
    assert "CLAUDE.md" in result.output


def test_cli_rejects_missing_project_root(tmp_path):
    result = CliRunner().invoke(main, ["Add SSO", "--project-root", str(tmp_path / "nope"), "--dry-run"])
    assert result.exit_code != 0

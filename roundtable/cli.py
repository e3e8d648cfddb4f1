"""Click CLI: loads config, builds the provider and participants, runs the discussion, saves output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from roundtable import roster
from roundtable.consensus import ConsensusEvaluator
from roundtable.context import format_for_personas, read_project_context
from roundtable.controller import RoundController
from roundtable.issues import write_unresolved_issues
from roundtable.models import ConsensusMetrics, Discussion, DynamicRoundConfig, Turn
from roundtable.output import console, print_outcome, print_round_summary, save_to_file
from roundtable.participants import build_participants
from roundtable.providers.anthropic import AnthropicProvider
from roundtable.providers.base import AIProvider, ProviderError
from roundtable.providers.openai_provider import OpenAIProvider
from roundtable.strategy import RoundStrategy

logger = logging.getLogger(__name__)

# Keyed by the `sdk` field of a model entry in settings.yaml.
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_provider(config: AppConfig, name: str) -> AIProvider:
    """Instantiate the named provider.

    Raises:
        ProviderError: If the provider is unknown, unavailable or fails to build.
    """
    if name not in config.models:
        raise ProviderError(name, f"Unknown provider; configured: {', '.join(sorted(config.models))}")
    if name not in config.available_providers:
        raise ProviderError(name, f"Provider unavailable, set {config.models[name].api_key_env} in .env")
    model_cfg = config.models[name]
    provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if provider_cls is None:
        raise ProviderError(name, f"Unsupported sdk '{model_cfg.sdk}'")
    return provider_cls(model_cfg)


def _effective_round_config(
    base: DynamicRoundConfig,
    min_rounds: int | None,
    max_rounds: int | None,
    threshold: int | None,
    tolerance: int | None,
    no_moderator: bool,
    fixed: bool,
) -> DynamicRoundConfig:
    """CLI flags override settings.yaml. Raises ValueError on an invalid combination."""
    return DynamicRoundConfig(
        enabled=base.enabled and not fixed,
        min_rounds=min_rounds if min_rounds is not None else base.min_rounds,
        max_rounds=max_rounds if max_rounds is not None else base.max_rounds,
        consensus_threshold=threshold if threshold is not None else base.consensus_threshold,
        conflict_tolerance=tolerance if tolerance is not None else base.conflict_tolerance,
        moderator_enabled=base.moderator_enabled and not no_moderator,
    )


def _print_plan(prompt: str, provider_name: str, round_config: DynamicRoundConfig) -> None:
    mode = "dynamic" if round_config.enabled else f"fixed ({len(roster.FIXED_ROUND_ORDERS)} rounds)"
    console.print(f"\n[bold cyan]Roundtable[/bold cyan]: {mode}, provider {provider_name}")
    if round_config.enabled:
        console.print(
            f"Rounds {round_config.min_rounds}-{round_config.max_rounds}, "
            f"threshold {round_config.consensus_threshold}%, "
            f"tolerance {round_config.conflict_tolerance}, "
            f"moderator {'on' if round_config.moderator_enabled else 'off'}"
        )
    roles = [r.title for r in roster.ROLES if round_config.moderator_enabled or not r.moderator]
    console.print(f"Participants: {', '.join(roles)}")
    console.print(f"Prompt: [italic]{prompt[:80]}{'...' if len(prompt) > 80 else ''}[/italic]\n")


async def _run_discussion(
    prompt: str,
    config: AppConfig,
    provider: AIProvider,
    round_config: DynamicRoundConfig,
    project_context: str = "",
) -> Discussion:
    participants = build_participants(provider, config.prompts, include_moderator=round_config.moderator_enabled)
    controller = RoundController(
        participants=participants,
        evaluator=ConsensusEvaluator(scorer=provider, prompts=config.prompts, scoring=config.scoring),
        strategy=RoundStrategy(config.scoring),
        prompts=config.prompts,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Running round 1...", total=None)

        def on_round_complete(round_number: int, turns: list[Turn], metrics: ConsensusMetrics | None) -> None:
            print_round_summary(round_number, turns, metrics)
            progress.update(task, description=f"Running round {round_number + 1}...")

        return await controller.run(
            prompt, round_config, on_round_complete=on_round_complete, project_context=project_context
        )


@click.command()
@click.argument("prompt", required=False)
@click.option("--file", "prompt_file", type=click.Path(exists=True), help="Read the problem statement from a file")
@click.option("--min-rounds", type=int, default=None, help="Minimum rounds before consensus can end the discussion")
@click.option("--max-rounds", type=int, default=None, help="Round limit before the forced final round")
@click.option("--threshold", type=int, default=None, help="Agreement score (0-100) required for consensus")
@click.option("--tolerance", type=int, default=None, help="Maximum unresolved issues tolerated at consensus")
@click.option("--no-moderator", is_flag=True, help="Never include the AI moderator")
@click.option("--fixed", is_flag=True, help="Run the fixed 3-round discussion instead of dynamic rounds")
@click.option("--provider", "provider_name", default=None, help="Provider from settings.yaml (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Project directory whose CLAUDE.md and docs/ are shown to every persona",
)
@click.option("--dry-run", is_flag=True, help="Validate configuration and print the plan without calling any model")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    prompt: str | None,
    prompt_file: str | None,
    min_rounds: int | None,
    max_rounds: int | None,
    threshold: int | None,
    tolerance: int | None,
    no_moderator: bool,
    fixed: bool,
    provider_name: str | None,
    output_path: str | None,
    project_root: str | None,
    dry_run: bool,
    verbose: bool,
) -> None:
    """Roundtable -- consensus-driven multi-persona discussion.

    \b
    Examples:
      python -m roundtable.cli "Build an offline-first expense tracker"
      python -m roundtable.cli --file problem.md --max-rounds 6 --threshold 80
      python -m roundtable.cli "Migrate billing to events" --fixed --provider claude
      python -m roundtable.cli "Add SSO" --project-root ../my-app
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if prompt_file:
        prompt_text = Path(prompt_file).read_text(encoding="utf-8").strip()
    else:
        prompt_text = (prompt or "").strip()
    if not prompt_text:
        console.print("[bold red]Error:[/bold red] Provide a PROMPT argument or --file.")
        sys.exit(1)

    try:
        round_config = _effective_round_config(
            config.defaults.dynamic, min_rounds, max_rounds, threshold, tolerance, no_moderator, fixed
        )
    except ValueError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_provider = provider_name or config.defaults.provider
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    if effective_provider not in config.models:
        console.print(
            f"[bold red]Config error:[/bold red] Unknown provider '{effective_provider}'; "
            f"configured: {', '.join(sorted(config.models))}"
        )
        sys.exit(1)

    project_context = ""
    if project_root:
        context = read_project_context(Path(project_root))
        project_context = format_for_personas(context)
        console.print(f"[dim]{context.summary}[/dim]")

    _print_plan(prompt_text, effective_provider, round_config)
    if dry_run:
        console.print("[dim]Dry run: no models called.[/dim]")
        return

    try:
        provider = _build_provider(config, effective_provider)
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    discussion = asyncio.run(_run_discussion(prompt_text, config, provider, round_config, project_context))

    print_outcome(discussion)
    saved_path = save_to_file(discussion, effective_output)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if discussion.forced_final_round:
        issues_path = write_unresolved_issues(discussion, effective_output)
        console.print(f"[dim]Unresolved issues: {issues_path}[/dim]")


if __name__ == "__main__":
    main()

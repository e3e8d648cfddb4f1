"""Rich console output and markdown file save for discussion results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from roundtable.models import ConsensusMetrics, Discussion, DiscussionState, Turn

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_OUTCOME_LABELS = {
    DiscussionState.TERMINATED_CONSENSUS: "Consensus reached",
    DiscussionState.TERMINATED_FORCED: "Forced final round (round limit reached)",
    DiscussionState.COMPLETED: "Fixed rounds completed",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def outcome_label(discussion: Discussion) -> str:
    return _OUTCOME_LABELS.get(discussion.state, discussion.state.value)


def print_round_summary(
    round_num: int,
    turns: list[Turn],
    metrics: ConsensusMetrics | None = None,
) -> None:
    """Print a brief summary of one round's turns and its consensus metrics."""
    console.print(Rule(f"[bold cyan]Round {round_num} Summary[/bold cyan]"))
    for turn in turns:
        console.print(
            Panel(
                _preview(turn.content),
                title=f"[bold]{turn.role}[/bold] ({turn.speaker_name})",
                border_style="dim",
            )
        )
    if metrics is not None:
        console.print(
            Text(
                f"Agreement: {metrics.agreement_score}% | "
                f"Phase: {metrics.discussion_phase.value} | "
                f"Conflicts: {metrics.conflict_count} | "
                f"Open issues: {len(metrics.unresolved_issues)}",
                style="dim",
            )
        )


def print_outcome(discussion: Discussion) -> None:
    """Print the final outcome panel and the consensus history table."""
    console.print(Rule("[bold green]Discussion Outcome[/bold green]"))

    if discussion.consensus_history:
        table = Table(title="Consensus history")
        table.add_column("Round", justify="right")
        table.add_column("Agreement", justify="right")
        table.add_column("Phase")
        table.add_column("Conflicts", justify="right")
        table.add_column("Issues", justify="right")
        for number, metrics in enumerate(discussion.consensus_history, start=1):
            table.add_row(
                str(number),
                f"{metrics.agreement_score}%",
                metrics.discussion_phase.value,
                str(metrics.conflict_count),
                str(len(metrics.unresolved_issues)),
            )
        console.print(table)

    style = "green" if discussion.state is DiscussionState.TERMINATED_CONSENSUS else "yellow"
    console.print(
        Panel(
            f"{outcome_label(discussion)}\n"
            f"Rounds: {discussion.current_round} | Turns: {len(discussion.rounds)}",
            title="[bold]Outcome[/bold]",
            border_style=style,
        )
    )


def render_markdown(discussion: Discussion) -> str:
    """Render the discussion record as a markdown document."""
    config = discussion.config
    mode = "dynamic" if config.enabled else "fixed"
    lines: list[str] = [
        f"# Roundtable Discussion: {discussion.prompt[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {mode} (rounds {config.min_rounds}-{config.max_rounds}, "
        f"threshold {config.consensus_threshold}%, tolerance {config.conflict_tolerance})",
        f"**Moderator:** {'enabled' if config.moderator_enabled else 'disabled'}",
        f"**Rounds:** {discussion.current_round}",
        f"**Outcome:** {outcome_label(discussion)}",
        "",
        "## Problem Statement",
        "",
        discussion.prompt,
        "",
        "---",
        "",
    ]

    for number in range(1, discussion.current_round + 1):
        turns = discussion.turns_for_round(number)
        label = " (forced final round)" if discussion.forced_final_round and number == discussion.current_round else ""
        lines.append(f"## Round {number}{label}")
        lines.append("")
        if not turns:
            lines += ["_No turns recorded._", ""]
        for turn in turns:
            lines.append(f"### {turn.role} ({turn.speaker_name})")
            lines.append("")
            lines.append(turn.content)
            lines.append("")

    if discussion.consensus_history:
        lines += [
            "## Consensus History",
            "",
            "| Round | Agreement | Phase | Conflicts | Unresolved issues |",
            "|---|---|---|---|---|",
        ]
        for number, metrics in enumerate(discussion.consensus_history, start=1):
            issues = "; ".join(metrics.unresolved_issues) or "-"
            lines.append(
                f"| {number} | {metrics.agreement_score}% | {metrics.discussion_phase.value} "
                f"| {metrics.conflict_count} | {issues} |"
            )
        lines.append("")

    if discussion.decision_evolution:
        lines += ["## Decision Evolution", ""]
        for record in discussion.decision_evolution:
            status = "resolved" if record.resolved else "open"
            lines.append(
                f"- Round {record.round}: **{record.topic}** "
                f"({record.agreement_level}% agreement, {status})"
            )
        lines.append("")

    return "\n".join(lines)


def save_to_file(discussion: Discussion, output_dir: Path) -> Path:
    """Save the discussion as a timestamped markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(discussion.prompt)}.md"
    filepath.write_text(render_markdown(discussion), encoding="utf-8")
    logger.info("Discussion saved to: %s", filepath)
    return filepath

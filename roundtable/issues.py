"""UNRESOLVED_ISSUES file: write persona positions for open issues, parse the user's picks."""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

from roundtable.models import Discussion, PersonaPosition
from roundtable.positions import extract_persona_positions

logger = logging.getLogger(__name__)

INDIFFERENT = "Indifferent"
CUSTOM = "Custom"

_ISSUE_HEADER = re.compile(r"^## Issue (\d+): (.+)$", re.MULTILINE)
_CHECKED = re.compile(r"^\s*-\s*\[[xX]\]\s*(.+?)\s*$", re.MULTILINE)


class IssuesFileError(Exception):
    """Raised when an issues file is malformed or incompletely resolved."""


@dataclass
class IssueResolution:
    issue_id: str
    title: str
    choice: str                  # "persona", "indifferent" or "custom"
    persona: str | None = None
    custom_text: str | None = None


@dataclass
class ResolvedIssues:
    discussion_id: str
    timestamp: str
    consensus_threshold: int
    resolutions: list[IssueResolution]


def _issue_id(index: int) -> str:
    return f"issue-{index + 1}"


def _render_issue(number: int, title: str, positions: list[PersonaPosition]) -> list[str]:
    lines = [f"## Issue {number}: {title}", "", "### Positions", ""]
    if not positions:
        lines.append("_No role stated a clear position on this issue._")
    for pos in positions:
        lines.append(f"- **{pos.role}** (confidence {pos.confidence}%): {pos.position}")
        lines.append(f"  - Reasoning: {pos.reasoning}")
    lines += ["", "### Your decision", ""]
    lines += [f"- [ ] {pos.role}" for pos in positions]
    lines += [f"- [ ] {INDIFFERENT}", f"- [ ] {CUSTOM}:", ""]
    return lines


def write_unresolved_issues(
    discussion: Discussion,
    output_dir: Path,
    timestamp: str | None = None,
) -> Path:
    """Write UNRESOLVED_ISSUES_<timestamp>.md for a discussion.

    One section per detected issue, listing each role's position and a
    checklist for the user to pick the resolution.

    Returns:
        Path to the written file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
    positions = extract_persona_positions(discussion.rounds)

    lines = [
        "# Unresolved Issues",
        "",
        f"**Discussion:** {discussion.prompt}",
        f"**Rounds:** {discussion.current_round}",
        "",
        "Tick exactly one option under each issue, then run the resolution step with this file.",
        "",
    ]
    if discussion.latest_metrics and discussion.latest_metrics.unresolved_issues:
        lines += ["**Open items at last evaluation:**", ""]
        lines += [f"- {item}" for item in discussion.latest_metrics.unresolved_issues]
        lines.append("")

    for number, (title, issue_positions) in enumerate(positions.items(), start=1):
        lines += _render_issue(number, title, issue_positions)

    post = frontmatter.Post(
        "\n".join(lines),
        discussion_id=f"{timestamp}-{uuid.uuid4().hex[:6]}",
        timestamp=timestamp,
        total_issues=len(positions),
        consensus_threshold=discussion.config.consensus_threshold,
        status="pending",
    )
    filepath = output_dir / f"UNRESOLVED_ISSUES_{timestamp}.md"
    filepath.write_text(frontmatter.dumps(post), encoding="utf-8")
    logger.info("Unresolved issues (%d) saved to: %s", len(positions), filepath)
    return filepath


def _resolve_section(index: int, title: str, body: str) -> IssueResolution:
    issue_id = _issue_id(index)
    checked = _CHECKED.findall(body)
    if not checked:
        raise IssuesFileError(f"Issue {index + 1} ({title}) has no selection")
    if len(checked) > 1:
        raise IssuesFileError(f"Issue {index + 1} ({title}) has {len(checked)} selections, expected one")

    label = checked[0]
    if label.lower() == INDIFFERENT.lower():
        return IssueResolution(issue_id, title, "indifferent")
    if label.lower().startswith(CUSTOM.lower()):
        text = label[len(CUSTOM):].lstrip(":").strip()
        if not text:
            raise IssuesFileError(f"Issue {index + 1} ({title}) selects Custom without any text")
        return IssueResolution(issue_id, title, "custom", custom_text=text)
    return IssueResolution(issue_id, title, "persona", persona=label)


def parse_resolved_issues(path: Path) -> ResolvedIssues:
    """Read back an issues file and return one resolution per issue.

    Raises:
        IssuesFileError: On missing front matter fields or an issue without
            exactly one ticked option.
    """
    post = frontmatter.load(str(path))
    discussion_id = post.metadata.get("discussion_id")
    if not discussion_id:
        raise IssuesFileError(f"{path}: missing discussion_id in front matter")

    headers = list(_ISSUE_HEADER.finditer(post.content))
    resolutions: list[IssueResolution] = []
    for i, match in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(post.content)
        body = post.content[match.end():end]
        resolutions.append(_resolve_section(i, match.group(2).strip(), body))

    logger.info("Parsed %d resolved issues from %s", len(resolutions), path)
    return ResolvedIssues(
        discussion_id=str(discussion_id),
        timestamp=str(post.metadata.get("timestamp", "")),
        consensus_threshold=int(post.metadata.get("consensus_threshold", 85)),
        resolutions=resolutions,
    )

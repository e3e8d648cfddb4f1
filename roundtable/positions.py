"""Pull per-role positions on the main open topics out of a transcript."""

import logging
import re

from roundtable.models import PersonaPosition, Turn

logger = logging.getLogger(__name__)

MAX_ISSUES = 5
CONFIDENCE_BASE = 50
CONFIDENCE_CAP = 95
REASONING_SLICE_CHARS = 150

GENERIC_DISAGREEMENT = "General disagreement on approach"
GENERIC_IMPLEMENTATION = "Implementation details"

# category -> (issue title, keywords, synonyms)
ISSUE_CATALOGUE: dict[str, tuple[str, tuple[str, ...], tuple[str, ...]]] = {
    "authentication": (
        "Authentication approach",
        ("authentica", "login", "password", "oauth", "sso", "credential"),
        ("identity", "sign-in", "signin", "session"),
    ),
    "storage": (
        "Data storage strategy",
        ("database", "storage", "persist", "sql", "postgres", "indexeddb", "cache"),
        ("data model", "schema", "backup", "retention"),
    ),
    "api": (
        "API design",
        ("api", "apis", "endpoint", "rest", "graphql", "webhook"),
        ("integration", "contract"),
    ),
    "ui": (
        "User interface design",
        ("ui", "ux", "interface", "screen", "layout"),
        ("usability", "accessibility", "visual", "design"),
    ),
    "deployment": (
        "Deployment strategy",
        ("deploy", "release", "rollout", "pipeline", "hosting"),
        ("infrastructure", "ci/cd", "environment", "rollback"),
    ),
    "testing": (
        "Testing strategy",
        ("test", "tests", "testing", "qa", "coverage"),
        ("validation", "acceptance criteria", "quality"),
    ),
    "security": (
        "Security requirements",
        ("security", "secure", "encrypt", "vulnerab", "compliance", "gdpr"),
        ("privacy", "permission", "access control"),
    ),
    "performance": (
        "Performance targets",
        ("performance", "latency", "scalab", "throughput"),
        ("speed", "response time", "load", "scale"),
    ),
}

CONFLICT_PATTERN = re.compile(r"\b(?:however|but|disagree\w*|instead|alternatively)\b", re.IGNORECASE)
RECOMMENDATION_PATTERN = re.compile(
    r"\b(?:recommend\w*|suggest\w*|propose\w*|should|must|prefer\w*|advocate\w*|need to|let's)\b",
    re.IGNORECASE,
)
CAUSAL_PATTERN = re.compile(
    r"\b(?:because|since|therefore|due to|so that|as a result|given that|which means)\b",
    re.IGNORECASE,
)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _term_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    # Short terms must match whole words; longer ones match as stems.
    parts = [
        rf"\b{re.escape(t)}\b" if len(t) <= 4 else rf"\b{re.escape(t)}"
        for t in terms
    ]
    return re.compile("|".join(parts), re.IGNORECASE)


_KEYWORD_PATTERNS = {c: _term_pattern(kw) for c, (_, kw, _) in ISSUE_CATALOGUE.items()}
_RELEVANCE_PATTERNS = {c: _term_pattern(kw + syn) for c, (_, kw, syn) in ISSUE_CATALOGUE.items()}


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def detect_issues(turns: list[Turn]) -> list[tuple[str, re.Pattern[str] | None]]:
    """Return up to MAX_ISSUES (title, relevance pattern) pairs in catalogue order.

    A None pattern means every turn is relevant (generic issue).
    """
    text = " ".join(t.content for t in turns)
    found = [
        (ISSUE_CATALOGUE[c][0], _RELEVANCE_PATTERNS[c])
        for c, pattern in _KEYWORD_PATTERNS.items()
        if pattern.search(text)
    ][:MAX_ISSUES]
    if found:
        return found
    if CONFLICT_PATTERN.search(text):
        return [(GENERIC_DISAGREEMENT, None)]
    return [(GENERIC_IMPLEMENTATION, None)]


def extract_position(turn: Turn) -> PersonaPosition:
    """Position, reasoning and a heuristic confidence from one turn."""
    content = turn.content.strip()
    sentences = _sentences(content)

    recommendation = next((s for s in sentences if RECOMMENDATION_PATTERN.search(s)), None)
    causal = next((s for s in sentences if CAUSAL_PATTERN.search(s)), None)

    position = recommendation or (max(sentences, key=len) if sentences else content)
    if causal:
        reasoning = causal
    elif len(content) > REASONING_SLICE_CHARS:
        reasoning = content[:REASONING_SLICE_CHARS].rstrip() + "..."
    else:
        reasoning = content

    words = len(content.split())
    confidence = CONFIDENCE_BASE
    if words >= 50:
        confidence += 10
    if words >= 100:
        confidence += 10
    if recommendation:
        confidence += 15
    if causal:
        confidence += 15

    return PersonaPosition(
        role=turn.role,
        position=position,
        reasoning=reasoning,
        confidence=min(confidence, CONFIDENCE_CAP),
    )


def extract_persona_positions(turns: list[Turn]) -> dict[str, list[PersonaPosition]]:
    """Map each detected issue to the positions roles took on it.

    For every issue and role, the longest relevant turn of that role is used.
    Roles with no relevant turn are left out of that issue.
    """
    by_role: dict[str, list[Turn]] = {}
    for turn in turns:
        by_role.setdefault(turn.role, []).append(turn)

    result: dict[str, list[PersonaPosition]] = {}
    for title, pattern in detect_issues(turns):
        positions: list[PersonaPosition] = []
        for role_turns in by_role.values():
            relevant = [t for t in role_turns if pattern is None or pattern.search(t.content)]
            if not relevant:
                continue
            positions.append(extract_position(max(relevant, key=lambda t: len(t.content))))
        result[title] = positions

    logger.debug("Extracted positions for %d issues across %d roles", len(result), len(by_role))
    return result

"""Project context: CLAUDE.md and docs/ files handed to every persona."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

GUIDELINES_FILE = "CLAUDE.md"
DOCS_DIR = "docs"
DOC_SUFFIXES = (".md", ".txt", ".rst", ".adoc", ".org")
NO_CONTEXT = "No specific project context available."


@dataclass
class DocFile:
    relative_path: str
    content: str


@dataclass
class ProjectContext:
    guidelines: str | None = None
    docs: list[DocFile] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.guidelines and not self.docs

    @property
    def summary(self) -> str:
        parts = []
        if self.guidelines:
            parts.append(f"project guidelines from {GUIDELINES_FILE}")
        if self.docs:
            counts = Counter(Path(d.relative_path).suffix for d in self.docs)
            parts.append("documentation: " + ", ".join(f"{n} {ext} files" for ext, n in sorted(counts.items())))
        if not parts:
            return "No project context files found"
        return "Project context includes " + " and ".join(parts)


def _read_docs(docs_dir: Path) -> list[DocFile]:
    docs: list[DocFile] = []
    for path in sorted(docs_dir.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in DOC_SUFFIXES:
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            continue
        relative = path.relative_to(docs_dir).as_posix()
        docs.append(DocFile(relative, content))
        logger.debug("Loaded doc file %s (%d chars)", relative, len(content))
    return docs


def read_project_context(project_root: Path) -> ProjectContext:
    """Load CLAUDE.md and every documentation file under docs/.

    Missing files are not an error; they are logged and left out.
    """
    logger.info("Reading project context from %s", project_root)
    context = ProjectContext()

    guidelines_path = project_root / GUIDELINES_FILE
    if guidelines_path.is_file():
        context.guidelines = guidelines_path.read_text(encoding="utf-8")
        logger.info("%s loaded (%d chars)", GUIDELINES_FILE, len(context.guidelines))
    else:
        logger.info("%s not found at %s", GUIDELINES_FILE, guidelines_path)

    docs_dir = project_root / DOCS_DIR
    if docs_dir.is_dir():
        context.docs = _read_docs(docs_dir)
        logger.info("Found %d documentation files in %s", len(context.docs), docs_dir)
    else:
        logger.info("%s/ directory not found at %s", DOCS_DIR, docs_dir)

    logger.info("%s", context.summary)
    return context


def format_for_personas(context: ProjectContext | None) -> str:
    """Render the context as the block inserted into each turn prompt."""
    if context is None or context.is_empty:
        return NO_CONTEXT
    sections = ["## PROJECT CONTEXT"]
    if context.guidelines:
        sections += [f"\n### Project Guidelines ({GUIDELINES_FILE}):", context.guidelines.strip()]
    if context.docs:
        sections.append("\n### Additional Documentation:")
        for doc in context.docs:
            sections += [f"\n#### {doc.relative_path}:", doc.content.strip()]
    return "\n".join(sections)

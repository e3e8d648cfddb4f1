"""Participants: the roles that speak in a round, backed by a text provider."""

from abc import ABC, abstractmethod

from config.config_loader import PromptsConfig
from roundtable.context import NO_CONTEXT
from roundtable.models import ContextStrategy, PromptContext, Turn
from roundtable.providers.base import AIProvider
from roundtable.roster import ROLES, Role

MAX_WORDS = 120
SUMMARY_CHARS = 50


def limit_words(text: str, max_words: int = MAX_WORDS) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text.strip()
    return " ".join(words[:max_words]) + "..."


def render_transcript(turns: list[Turn], strategy: ContextStrategy) -> str:
    """Render prior turns according to the context policy.

    full: every turn verbatim. progressive_summary: rounds before the latest
    are cut to a short snippet. aggressive_summary: only the latest round is
    kept, preceded by a one-line note of how much was dropped.
    """
    if not turns:
        return "No previous discussion yet."

    latest = max(t.round for t in turns)
    lines: list[str] = []
    if strategy is ContextStrategy.AGGRESSIVE_SUMMARY:
        dropped = sum(1 for t in turns if t.round < latest)
        if dropped:
            lines.append(f"[{dropped} earlier turns omitted]")
        turns = [t for t in turns if t.round == latest]

    for turn in turns:
        content = turn.content
        if strategy is ContextStrategy.PROGRESSIVE_SUMMARY and turn.round < latest:
            content = content[:SUMMARY_CHARS] + ("..." if len(content) > SUMMARY_CHARS else "")
        lines.append(f"{turn.role}: {content}")
    return "\n\n".join(lines)


class Participant(ABC):
    """A role that can be asked for a turn. generate_turn may raise."""

    def __init__(self, role: Role) -> None:
        self.role = role

    @abstractmethod
    async def generate_turn(self, context: PromptContext) -> str:
        ...


class PersonaParticipant(Participant):
    """Participant that speaks through an AIProvider with a persona prompt."""

    def __init__(
        self,
        role: Role,
        provider: AIProvider,
        prompts: PromptsConfig,
        max_words: int = MAX_WORDS,
    ) -> None:
        super().__init__(role)
        self._provider = provider
        self._prompts = prompts
        self._max_words = max_words

    def system_prompt(self) -> str:
        return self._prompts.persona_system.format(
            name=self.role.name,
            title=self.role.title,
            objectives="\n".join(f"- {o}" for o in self.role.objectives),
            max_words=self._max_words,
        )

    def turn_prompt(self, context: PromptContext) -> str:
        focus = "\n".join(f"- {f}" for f in context.focus) or "- Open discussion"
        directive = f"\n{context.directive}\n" if context.directive else ""
        return self._prompts.turn.format(
            prompt=context.prompt,
            context=context.project_context or NO_CONTEXT,
            round=context.round_number,
            transcript=render_transcript(context.transcript, context.context_strategy),
            focus=focus,
            directive=directive,
            title=self.role.title,
        )

    async def generate_turn(self, context: PromptContext) -> str:
        completion = await self._provider.generate(
            self.turn_prompt(context),
            round_number=context.round_number,
            system=self.system_prompt(),
        )
        text = limit_words(completion.content, self._max_words)
        if not text:
            raise ValueError(f"{self.role.title} produced an empty turn")
        return text


def build_participants(
    provider: AIProvider,
    prompts: PromptsConfig,
    include_moderator: bool = True,
) -> dict[int, Participant]:
    """One PersonaParticipant per registry role, keyed by role index."""
    return {
        role.index: PersonaParticipant(role, provider, prompts)
        for role in ROLES
        if include_moderator or not role.moderator
    }

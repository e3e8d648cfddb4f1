"""Abstract base for the text-generation providers behind participants and the scorer."""

from abc import ABC, abstractmethod

from roundtable.models import Completion


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'ollama', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        round_number: int,
        system: str | None = None,
    ) -> Completion:
        """Generate a completion for the given prompt.

        Args:
            prompt: The user prompt text to send.
            round_number: The discussion round the call belongs to (logging only).
            system: Optional system prompt (persona definition, scorer role).

        Returns:
            Completion with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...

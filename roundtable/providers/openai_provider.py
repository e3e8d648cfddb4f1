"""OpenAI-compatible provider (OpenAI, Ollama, any /v1 chat endpoint) via openai SDK."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from roundtable.models import Completion
from roundtable.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

# Ollama ignores the key but the SDK insists on one.
_LOCAL_API_KEY = "ollama"


class OpenAIProvider(AIProvider):
    """Chat-completions provider; base_url selects the endpoint."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        if config.api_key_env:
            api_key = os.environ.get(config.api_key_env, "").strip()
            if not api_key:
                raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        elif config.base_url:
            api_key = _LOCAL_API_KEY
        else:
            raise ProviderError(config.name, "Either api_key_env or base_url is required")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        prompt: str,
        round_number: int,
        system: str | None = None,
    ) -> Completion:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=messages,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.debug(
            "%s round %d: %.2fs, %s tokens",
            self._config.name,
            round_number,
            latency,
            token_count,
        )

        return Completion(
            provider=self._config.name,
            model=self._config.model,
            round_number=round_number,
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )

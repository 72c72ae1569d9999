"""LLM provider abstraction backed by the OpenAI SDK."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import openai
from openai import APIError, APITimeoutError

from tutorug.config import get_settings
from tutorug.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)

SERVICE_NAME = "llm"


@dataclass
class Completion:
    text: str
    tokens_used: int
    model_id: str


class LLMProvider(ABC):
    """Completion + moderation, both bounded by a timeout."""

    @abstractmethod
    async def complete(self, system_prompt: str, history: list[dict[str, str]]) -> Completion:
        """Generate the assistant reply for ``history`` (role/content dicts)."""
        ...

    @abstractmethod
    async def moderate(self, text: str) -> bool:
        """Return True if ``text`` is flagged."""
        ...


class OpenAIProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        max_tokens: int = 800,
        temperature: float = 0.7,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        # SDK-level retries would stretch the caller's timeout budget.
        self.client = client or openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(self, system_prompt: str, history: list[dict[str, str]]) -> Completion:
        messages = [{"role": "system", "content": system_prompt}, *history]
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except APITimeoutError as e:
            logger.warning("LLM completion timed out (model=%s)", self.model)
            raise ExternalServiceFailure(SERVICE_NAME, "The AI tutor timed out, please try again") from e
        except APIError as e:
            logger.warning("LLM completion failed: %s", e)
            raise ExternalServiceFailure(SERVICE_NAME, "The AI tutor is unavailable, please try again") from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else 0
        return Completion(text=text, tokens_used=tokens, model_id=response.model or self.model)

    async def moderate(self, text: str) -> bool:
        try:
            moderation = await self.client.moderations.create(input=text)
        except APITimeoutError as e:
            raise ExternalServiceFailure(SERVICE_NAME, "Moderation timed out") from e
        except APIError as e:
            raise ExternalServiceFailure(SERVICE_NAME, "Moderation is unavailable") from e
        return bool(moderation.results and moderation.results[0].flagged)


def create_llm_provider() -> OpenAIProvider:
    settings = get_settings()
    return OpenAIProvider(
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout=settings.external_timeout_seconds,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )

"""OpenAI chat-completion oracle."""

from __future__ import annotations

import structlog
from openai import AsyncOpenAI

from .config import OracleConfig
from .interface import CompletionOracle

logger = structlog.get_logger()


class EmptyCompletionError(Exception):
    """The model returned no content."""


class OpenAIOracle(CompletionOracle):
    """Single-turn completions against the OpenAI chat API.

    Retries are owned by the caller, so the SDK's own retries are off.
    """

    def __init__(self, config: OracleConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        self._client = client or AsyncOpenAI(
            api_key=config.api_key.get_secret_value(),
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    async def close(self) -> None:
        await self._client.close()

    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        *,
        json_output: bool = False,
    ) -> str:
        kwargs: dict = {}
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(
            model=self._config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            temperature=self._config.temperature,
            **kwargs,
        )
        content = response.choices[0].message.content
        if not content:
            raise EmptyCompletionError(f"model {self._config.model} returned no content")
        logger.debug(
            "oracle_completed",
            model=self._config.model,
            json_output=json_output,
            length=len(content),
        )
        return content

"""
deskhelp/llm/openai_service.py

Chat completion runner for any OpenAI-compatible endpoint.

Every call sends exactly one request for the configured model. SDK errors are
re-raised as LLMError subclasses (deskhelp.llm.errors) with the original chained,
so callers only ever need to catch LLMError.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List

import httpx
import openai
from openai import AsyncOpenAI

from deskhelp.config.models import Config
from .errors import LLMEmptyResponseError, translate_openai_error


class CompletionService:
    def __init__(self, client: AsyncOpenAI, model: str, max_tokens: int | None = None):
        """
        client     — a configured AsyncOpenAI (or compatible) client
        model      — model identifier sent with every request
        max_tokens — completion token cap; None leaves it to the provider
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config: Config) -> "CompletionService":
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.response_timeout, connect=10.0))
        client = AsyncOpenAI(
            base_url=config.openai_base_url,
            api_key=config.openai_api_key,
            http_client=http_client,
        )
        return cls(client, config.ai_model, config.max_tokens)

    def _request_kwargs(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        kw: Dict[str, Any] = dict(model=self.model, messages=messages)
        if self.max_tokens:
            kw["max_tokens"] = self.max_tokens
        return kw

    # ── Streaming ───────────────────────────────────────────────────────────

    async def stream_chat(self, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        """Yield text deltas until the model reports a finish reason."""
        logging.debug("CompletionService: streaming %d message(s) to %s", len(messages), self.model)
        try:
            stream = await self.client.chat.completions.create(stream=True, **self._request_kwargs(messages))
            # Released on finish, error and cancellation alike.
            try:
                async for chunk in stream:
                    choice = chunk.choices[0] if chunk.choices else None
                    if not choice:
                        continue
                    if choice.delta and choice.delta.content:
                        yield choice.delta.content
                    if choice.finish_reason:
                        logging.debug("CompletionService: finish_reason=%s", choice.finish_reason)
                        break
            finally:
                await stream.close()
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

    # ── Single shot ─────────────────────────────────────────────────────────

    async def complete(self, messages: List[Dict[str, Any]]) -> str:
        try:
            response = await self.client.chat.completions.create(**self._request_kwargs(messages))
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice and choice.message else None
        if not content or not content.strip():
            raise LLMEmptyResponseError(f"Model '{self.model}' returned no content")
        return content

    async def close(self) -> None:
        await self.client.close()

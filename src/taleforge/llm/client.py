"""Provider-agnostic model transport.

All supported providers speak the OpenAI chat completions protocol, so a
single AsyncOpenAI client covers them; only the base URL and API key
change. SDK errors are mapped onto the AIControlError hierarchy, and
rate limits are retried with exponential backoff before giving up.

Example:
    >>> client = LLMClient(get_settings().ai)
    >>> text = await client.stream_message(system_prompt, history, "I open the door", on_chunk=print)
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Sequence
from typing import Any

import openai
from openai import AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from taleforge.core.config import AIProviderSettings, get_settings
from taleforge.core.exceptions import (
    AIConnectionError,
    AIControlError,
    AIRateLimitError,
    AIResponseError,
    ConfigurationError,
    TurnCancelledError,
)
from taleforge.core.logging import get_logger


logger = get_logger(__name__)

PROVIDER_BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "openrouter": "https://openrouter.ai/api/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
}

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "openrouter": "openai/gpt-4o",
    "gemini": "gemini-2.5-pro",
}

OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/taleforge",
    "X-Title": "Taleforge",
}

ChunkCallback = Callable[[str], None]
"""Receives each streamed text fragment as it arrives."""

HistoryMessage = dict[str, str]
"""A prior turn as ``{"role": "user" | "assistant", "content": ...}``."""


def format_messages(
    system_prompt: str,
    history: Sequence[HistoryMessage],
    user_message: str,
) -> list[dict[str, str]]:
    """Build the chat completions message list.

    Any history role other than ``user`` is sent as ``assistant``.
    """
    messages = [{"role": "system", "content": system_prompt}]
    for message in history:
        role = "user" if message.get("role") == "user" else "assistant"
        messages.append({"role": role, "content": message.get("content", "")})
    messages.append({"role": "user", "content": user_message})
    return messages


class LLMClient:
    """Chat client for OpenAI, OpenRouter and Gemini.

    Attributes:
        provider: Active provider name.
        model: Model identifier sent with every request.
        retry_wait: tenacity wait strategy between rate-limited attempts.
    """

    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(
        self,
        settings: AIProviderSettings | None = None,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Provider settings; the global settings when omitted.
            client: Pre-built SDK client, mainly for tests.
        """
        self.settings = settings or get_settings().ai
        self.provider = self.settings.provider
        self.model = self.settings.model or DEFAULT_MODELS.get(self.provider, "")
        self._client = client

        logger.info("LLM client initialized", provider=self.provider, model=self.model)

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the SDK client.

        Raises:
            ConfigurationError: Unknown provider or missing API key.
        """
        if self._client is not None:
            return self._client

        if self.provider not in PROVIDER_BASE_URLS:
            raise ConfigurationError(f"Unknown provider: {self.provider}", config_key="ai.provider")

        api_key = self.settings.api_key_for(self.provider)
        if api_key is None or not api_key.get_secret_value():
            raise ConfigurationError(
                f"No API key configured for {self.provider}",
                config_key=f"ai.{self.provider}_api_key",
            )

        self._client = AsyncOpenAI(
            api_key=api_key.get_secret_value(),
            base_url=PROVIDER_BASE_URLS[self.provider],
            timeout=self.settings.timeout_seconds,
            max_retries=0,
            default_headers=OPENROUTER_HEADERS if self.provider == "openrouter" else None,
        )
        return self._client

    def _map_error(self, exc: Exception) -> AIControlError:
        if isinstance(exc, openai.RateLimitError):
            return AIRateLimitError(
                f"Rate limit exceeded after {self.settings.max_retries} retries",
                model=self.model,
                provider=self.provider,
            )
        if isinstance(exc, openai.APIConnectionError):
            return AIConnectionError(
                f"Failed to connect to AI provider: {exc}",
                model=self.model,
                provider=self.provider,
            )
        if isinstance(exc, openai.APIStatusError):
            return AIResponseError(
                f"AI API error: {exc}",
                model=self.model,
                provider=self.provider,
                details={"status_code": exc.status_code},
            )
        return AIControlError(f"AI request failed: {exc}", model=self.model, provider=self.provider)

    async def _create(self, messages: list[dict[str, str]], *, stream: bool) -> Any:
        """Issue one completion request, retrying rate limits."""
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(openai.RateLimitError),
                stop=stop_after_attempt(self.settings.max_retries + 1),
                wait=self.retry_wait,
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Rate limited, retrying",
                            attempt=attempt.retry_state.attempt_number,
                            max_retries=self.settings.max_retries,
                        )
                    return await client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=self.settings.temperature,
                        max_tokens=self.settings.max_tokens,
                        stream=stream,
                    )
        except openai.OpenAIError as exc:
            raise self._map_error(exc) from exc

    async def send_message(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        user_message: str,
    ) -> str:
        """Send a message and wait for the whole reply.

        Returns:
            The reply text, empty when the provider returned no content.

        Raises:
            ConfigurationError: Unknown provider or missing API key.
            AIControlError: Any transport failure, mapped to a subclass.
        """
        messages = format_messages(system_prompt, history, user_message)
        logger.debug("Sending message", provider=self.provider, messages=len(messages))

        response = await self._create(messages, stream=False)
        content = response.choices[0].message.content if response.choices else None
        if not content:
            logger.warning("Empty model response", provider=self.provider, model=self.model)
            return ""
        return content

    async def stream_message(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        user_message: str,
        on_chunk: ChunkCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Stream a reply, passing fragments to ``on_chunk``.

        Args:
            system_prompt: System prompt for this turn.
            history: Prior turns, oldest first.
            user_message: The new user message.
            on_chunk: Called with each text fragment.
            cancel_event: Aborts the stream when set.

        Returns:
            The fully assembled reply.

        Raises:
            TurnCancelledError: ``cancel_event`` was set before the reply finished.
            AIControlError: Any other transport failure.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise TurnCancelledError("Turn cancelled before the request", model=self.model, provider=self.provider)

        messages = format_messages(system_prompt, history, user_message)
        if cancel_event is None:
            return await self._stream(messages, on_chunk)

        stream_task = asyncio.create_task(self._stream(messages, on_chunk))
        cancel_task = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({stream_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()

        if stream_task in done:
            return stream_task.result()

        stream_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stream_task
        logger.info("Stream cancelled", provider=self.provider)
        raise TurnCancelledError("Turn cancelled during streaming", model=self.model, provider=self.provider)

    async def _stream(self, messages: list[dict[str, str]], on_chunk: ChunkCallback | None) -> str:
        stream = await self._create(messages, stream=True)
        parts: list[str] = []
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content or ""
                if text:
                    parts.append(text)
                    if on_chunk is not None:
                        on_chunk(text)
        except openai.OpenAIError as exc:
            raise self._map_error(exc) from exc
        finally:
            await stream.close()

        logger.debug("Stream complete", provider=self.provider, chars=sum(len(p) for p in parts))
        return "".join(parts)


__all__ = [
    "LLMClient",
    "ChunkCallback",
    "HistoryMessage",
    "DEFAULT_MODELS",
    "PROVIDER_BASE_URLS",
    "format_messages",
]

"""Live generation source backed by LiteLLM.

Streams component code from any provider (OpenAI, Anthropic, Google,
DeepSeek, ...) through LiteLLM's unified API. Each non-empty delta
becomes one CodeChunk. Transient failures are retried with exponential
backoff before the stream starts; anything else becomes an AdapterError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from livesynth.errors import AdapterError
from livesynth.prompts import render_prompt
from livesynth.schemas.config import ModelConfig
from livesynth.schemas.streaming import CodeChunk, SourceCompleted, SourceEvent
from livesynth.sources.base import GenerationSource

logger = logging.getLogger(__name__)

# Max retries for transient failures
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds

_PROMPT_TEMPLATE = "component"


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80]


class LiteLLMSource(GenerationSource):
    """Live, push-based source: one CodeChunk per streamed delta.

    The backend keeps producing while the controller is paused, so this
    source ignores the pause/resume hooks; the controller queues what
    arrives in the meantime.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        timeout: int = 120,
        design_style: str = "",
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._design_style = design_style
        # Resolve API key from environment
        self._api_key = os.environ.get(config.api_key_env, "")

    @property
    def name(self) -> str:
        return self._config.display_name

    @property
    def config(self) -> ModelConfig:
        return self._config

    def build_messages(self, prompt: str) -> list[dict[str, str]]:
        system = render_prompt(
            _PROMPT_TEMPLATE, prompt=prompt, design_style=self._design_style
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]

    async def subscribe(self, prompt: str) -> AsyncIterator[SourceEvent]:
        started = time.monotonic()
        kwargs = self._build_completion_kwargs(self.build_messages(prompt))
        kwargs["stream"] = True

        response = await self._call_with_retry(kwargs)

        accumulated = ""
        sequence = 0
        try:
            async for chunk in response:
                delta = ""
                if chunk.choices and chunk.choices[0].delta:
                    delta = chunk.choices[0].delta.content or ""
                if not delta:
                    continue
                sequence += 1
                accumulated += delta
                yield CodeChunk(sequence_number=sequence, text=delta)
        except (
            litellm.RateLimitError,
            litellm.ServiceUnavailableError,
            litellm.InternalServerError,
            litellm.APIConnectionError,
            litellm.Timeout,
        ) as e:
            raise AdapterError(
                f"Stream from {self._config.display_name} interrupted: {_short_error_reason(e)}"
            ) from e

        logger.info(
            "Stream from %s finished (%d chunks, %.1fs)",
            self._config.display_name, sequence, time.monotonic() - started,
        )
        yield SourceCompleted(
            total_lines=len(accumulated.splitlines()),
            elapsed_time=time.monotonic() - started,
        )

    async def complete(self, prompt: str) -> str:
        """Run one non-streamed completion and return its text."""
        kwargs = self._build_completion_kwargs(self.build_messages(prompt))
        response = await self._call_with_retry(kwargs)
        if not response.choices:
            raise AdapterError(f"{self._config.display_name} returned no choices")
        return response.choices[0].message.content or ""

    def _build_completion_kwargs(self, messages: list[dict[str, str]]) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "timeout": float(self._timeout),
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }

        # Set API key if available
        if self._api_key:
            kwargs["api_key"] = self._api_key

        # Set custom API base if configured
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        return kwargs

    async def _call_with_retry(self, kwargs: dict):
        """Call litellm.acompletion with exponential backoff retry.

        Retries on transient errors (rate limits, server errors, timeouts).
        Non-retryable errors (auth, invalid request) fail immediately.

        Raises:
            AdapterError: If the call fails or all retries are exhausted.
        """
        last_error: Exception | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                return await litellm.acompletion(**kwargs)
            except (TimeoutError, litellm.Timeout) as e:
                last_error = e
            except litellm.AuthenticationError:
                raise AdapterError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise AdapterError(f"Bad request to {self._config.model}: {e}") from e
            except (
                litellm.RateLimitError,
                litellm.ServiceUnavailableError,
                litellm.InternalServerError,
                litellm.APIConnectionError,
            ) as e:
                last_error = e

            if attempt < _MAX_RETRIES - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1, _MAX_RETRIES, self._config.display_name,
                    _short_error_reason(last_error), backoff,
                )
                await asyncio.sleep(backoff)

        raise AdapterError(
            f"Call to {self._config.display_name} failed after {_MAX_RETRIES} attempts: "
            f"{_short_error_reason(last_error)}"
        ) from last_error

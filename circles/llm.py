"""
Text-classification call used by the clustering and matching orchestrators.

The call is treated as an untrusted black box: it receives a prompt and
returns free text that is expected, but not guaranteed, to contain JSON.
No retries happen here; callers resolve failures to a fallback value.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI

from .config import DEFAULT_MODEL

logger = logging.getLogger("circles.llm")


class TextClassifier(Protocol):
    async def complete(self, prompt: str, max_output_tokens: int = ...) -> str:
        ...


class OpenAIClassifier:
    """Async OpenAI Responses API client returning the raw output text."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        client: Optional[AsyncOpenAI] = None,
        default_max_output_tokens: int = 2048,
    ):
        self.model = model
        self.default_max_output_tokens = default_max_output_tokens
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # built lazily so a missing OPENAI_API_KEY surfaces as a call failure
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def complete(self, prompt: str, max_output_tokens: Optional[int] = None) -> str:
        messages: Any = [{"role": "user", "content": prompt}]
        start = time.perf_counter()
        response = await self.client.responses.create(
            model=self.model,
            input=messages,
            max_output_tokens=max_output_tokens or self.default_max_output_tokens,
        )
        duration = time.perf_counter() - start
        text = getattr(response, "output_text", None) or ""
        if not text.strip():
            raise ValueError("Received empty content from text classifier")
        logger.info("Classifier call model=%s duration=%.3fs chars=%d", self.model, duration, len(text))
        return text

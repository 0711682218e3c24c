"""
Async client for OpenAI-compatible chat and embedding APIs.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import AsyncIterator, List, Optional

import openai
from dotenv import load_dotenv
from openai import AsyncOpenAI

from manualqa.retry import NO_RETRY, RetryPolicy, call_with_retry

# Load .env file if it exists
project_root = Path(__file__).resolve().parents[2]
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)


OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
OPENAI_PROJECT_ID = os.getenv("OPENAI_PROJECT_ID")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "30"))

# Rate limits and connection drops are the only errors worth retrying.
RETRYABLE_ERRORS = (openai.RateLimitError, openai.APIConnectionError)

logger = logging.getLogger(__name__)


class ChatClient:
    """OpenAI-compatible chat + embeddings client with explicit retry policy."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ):
        key = api_key or OPENAI_API_KEY
        if not key:
            raise ValueError("API key required. Set OPENAI_API_KEY.")
        self.model_name = model_name or CHAT_MODEL
        self.retry_policy = retry_policy
        # The SDK retries on its own by default; all retries go through retry_policy instead.
        self.client = AsyncOpenAI(
            api_key=key,
            base_url=base_url or OPENAI_BASE_URL,
            project=OPENAI_PROJECT_ID,
            timeout=timeout_s or LLM_TIMEOUT_S,
            max_retries=0,
        )

    def _messages(self, system: str, user: str) -> list[dict]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 350,
        temperature: float = 0.2,
    ) -> str:
        """Single chat completion; returns the stripped message content."""

        async def _call():
            return await self.client.chat.completions.create(
                model=self.model_name,
                messages=self._messages(system, user),
                max_tokens=max_tokens,
                temperature=temperature,
            )

        response = await call_with_retry(
            _call, self.retry_policy, retry_on=RETRYABLE_ERRORS, label="chat completion"
        )
        if response.usage is not None:
            logger.info(
                "Chat completion usage: prompt=%s completion=%s",
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
            )
        if not response.choices:
            logger.warning("Empty choices in chat completion response")
            return ""
        return (response.choices[0].message.content or "").strip()

    async def stream(
        self,
        system: str,
        user: str,
        max_tokens: int = 350,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        """Yield content deltas; the upstream stream is closed when iteration stops."""
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=self._messages(system, user),
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
        try:
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await response.close()

    async def embed(self, texts: List[str], model: str) -> List[List[float]]:
        """Embed a batch of texts, preserving input order."""

        async def _call():
            return await self.client.embeddings.create(model=model, input=texts)

        response = await call_with_retry(
            _call, self.retry_policy, retry_on=RETRYABLE_ERRORS, label="embedding"
        )
        ordered = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in ordered]


def create_client(
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    retry_policy: RetryPolicy = NO_RETRY,
) -> ChatClient:
    """Create a client from arguments, falling back to environment settings."""
    return ChatClient(
        model_name=model_name,
        api_key=api_key,
        base_url=base_url,
        retry_policy=retry_policy,
    )

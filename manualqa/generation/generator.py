"""
Answer generator: builds the grounded prompt, calls the LLM, returns answer text.
Citations are built separately from the same selected chunks (see citations.py).
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

import openai

from manualqa.errors import GenerationError
from manualqa.llm.client import ChatClient
from manualqa.rag.index import Candidate

from .config import GenerationConfig
from .context_builder import build_context
from .prompts import SYSTEM_PROMPT, USER_PROMPT

logger = logging.getLogger(__name__)


class AnswerGenerator:
    """Generate grounded answers from a query and the selected chunks."""

    def __init__(self, client: ChatClient, config: Optional[GenerationConfig] = None):
        self.client = client
        self.config = config or GenerationConfig()

    def build_prompt(self, query: str, candidates: List[Candidate]) -> str:
        return USER_PROMPT.format(query=query, context=build_context(candidates))

    async def generate(self, query: str, candidates: List[Candidate]) -> str:
        """Return the full answer text; raises GenerationError on any LLM failure."""
        prompt = self.build_prompt(query, candidates)
        logger.info("Generating answer with model %s from %s chunks", self.client.model_name, len(candidates))
        try:
            answer = await self.client.complete(
                SYSTEM_PROMPT,
                prompt,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except openai.OpenAIError as exc:
            logger.error("Answer generation failed: %s", exc)
            raise GenerationError(f"generation failed: {exc}") from exc
        if not answer:
            raise GenerationError("model returned an empty response")
        return answer

    async def generate_stream(self, query: str, candidates: List[Candidate]) -> AsyncIterator[str]:
        """Yield answer tokens. Closing this iterator closes the upstream stream."""
        prompt = self.build_prompt(query, candidates)
        stream = self.client.stream(
            SYSTEM_PROMPT,
            prompt,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        try:
            async for piece in stream:
                if piece:
                    yield piece
        except openai.OpenAIError as exc:
            logger.error("Answer streaming failed: %s", exc)
            raise GenerationError(f"generation failed: {exc}") from exc
        finally:
            await stream.aclose()

"""Fast summarizer: condense retrieved passages into flagged bullet points.

First of the two synthesis calls. The output only feeds the primary call;
it is never persisted on its own.

Two backends:
  - groq: OpenAI-compatible chat completions (AsyncOpenAI with Groq base_url)
  - anthropic: Messages API (AsyncAnthropic)
"""

from __future__ import annotations

from typing import Literal

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from app.core.llm import extract_chat_text, extract_message_text
from app.core.logging import get_logger
from app.core.provider_retry import TRANSIENT_ERRORS, RetryPolicy, call_with_retry
from app.core.training_errors import ProviderUnavailable, SynthesisError

logger = get_logger(__name__)

SummarizerProvider = Literal["groq", "anthropic"]

# ruff: noqa: E501
SYSTEM_PROMPT = (
    "You are a high-speed analyst. Summarize retrieved legal or academic passages into "
    "bullet points that preserve citations, [Source N] tags and procedural posture. "
    "Flag every statement that conflicts across sources."
)


def build_summary_prompt(context: str, query: str) -> str:
    return f"Context:\n{context}\n\nQuery: {query}"


class ContextSummarizer:
    """Summarizer call against a configurable provider."""

    def __init__(
        self,
        provider: SummarizerProvider,
        client: AsyncOpenAI | AsyncAnthropic | None,
        model: str,
        max_tokens: int = 1200,
        policy: RetryPolicy | None = None,
    ):
        self.provider = provider
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.policy = policy or RetryPolicy()

    async def summarize(self, context: str, query: str) -> str:
        """
        Condense the assembled context for the primary call.

        Raises:
            ProviderUnavailable: If the summarizer client is not configured
            SynthesisError: If the call fails or times out
            MalformedProviderResponse: If the reply holds no text
        """
        if self.client is None:
            raise ProviderUnavailable(f"{self.provider} client is not configured.")

        user_prompt = build_summary_prompt(context, query)

        try:
            if self.provider == "groq":
                response = await call_with_retry(
                    lambda: self.client.chat.completions.create(
                        model=self.model,
                        temperature=0.1,
                        max_tokens=self.max_tokens,
                        messages=[
                            {"role": "system", "content": SYSTEM_PROMPT},
                            {"role": "user", "content": user_prompt},
                        ],
                    ),
                    label="summarize_context",
                    policy=self.policy,
                )
                summary = extract_chat_text(response)
            elif self.provider == "anthropic":
                response = await call_with_retry(
                    lambda: self.client.messages.create(
                        model=self.model,
                        temperature=0.1,
                        max_tokens=self.max_tokens,
                        system=SYSTEM_PROMPT,
                        messages=[{"role": "user", "content": user_prompt}],
                    ),
                    label="summarize_context",
                    policy=self.policy,
                )
                summary = extract_message_text(response)
            else:
                raise ProviderUnavailable(f"Unknown summarizer provider: {self.provider}")
        except (openai.OpenAIError, anthropic.AnthropicError, *TRANSIENT_ERRORS) as e:
            logger.error(f"Summarizer call failed: {type(e).__name__}: {e}")
            raise SynthesisError(f"Summarizer call failed: {type(e).__name__}") from e

        logger.info(
            f"Summarized context with {self.provider}/{self.model}",
            extra={"extra_data": {"summary_chars": len(summary)}},
        )
        return summary

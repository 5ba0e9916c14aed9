"""Primary reasoning call: produce the final structured, cited analysis.

Uses the OpenAI Responses API. The prompt stacks the template instructions,
session framing, the query, the retrieved context and the summarizer output,
and asks for numbered citations that reference Source numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import openai
from openai import AsyncOpenAI

from app.core.llm import extract_response_text, output_token_count, reasoning_effort
from app.core.logging import get_logger
from app.core.provider_retry import TRANSIENT_ERRORS, RetryPolicy, call_with_retry
from app.core.schemas_training import PromptTemplate, TrainingSession
from app.core.training_errors import ProviderUnavailable, SynthesisError

logger = get_logger(__name__)

# ruff: noqa: E501
SYSTEM_PROMPT = (
    "You are a dual-domain expert (legal + academic). Provide rigorous analysis, "
    "maintain citations as [Source N] tags, and flag uncertainties. "
    "If sources conflict, explain both interpretations."
)

RESPONSE_FORMAT = (
    "RESPONSE FORMAT: Provide structured analysis with numbered citations "
    "referencing Source numbers, e.g. [Source 1]."
)


@dataclass
class SynthesisOutput:
    """Text and usage of the primary call."""

    text: str
    model: str
    output_tokens: int | None = None


def build_analysis_prompt(
    template: PromptTemplate,
    session: TrainingSession,
    query: str,
    context: str,
    summary: str,
    additional_facts: str | None = None,
) -> str:
    """Assemble the user message for the primary call."""
    sections = [
        f"PROMPT TEMPLATE INSTRUCTIONS:\n{template.instructions}",
        f"SESSION TITLE: {session.title}",
        f"SESSION OBJECTIVE: {session.objective or 'N/A'}",
        f"TRAINING QUERY: {query}",
        f"ADDITIONAL FACTS: {additional_facts or 'None provided'}",
        f"RETRIEVED CONTEXT:\n{context}",
        f"SUMMARIZER SYNTHESIS:\n{summary}",
        RESPONSE_FORMAT,
    ]
    return "\n\n".join(sections)


class AnalysisSynthesizer:
    """Primary reasoning call."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str,
        max_output_tokens: int = 2000,
        policy: RetryPolicy | None = None,
    ):
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.policy = policy or RetryPolicy()

    async def synthesize(
        self,
        prompt: str,
        reasoning_level: int | None = None,
    ) -> SynthesisOutput:
        """
        Run the primary call and decode its text.

        Raises:
            ProviderUnavailable: If the OpenAI client is not configured
            SynthesisError: If the call fails or times out
            MalformedProviderResponse: If the reply holds no text output
        """
        if self.client is None:
            raise ProviderUnavailable("OpenAI client is not configured.")

        request: dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_output_tokens": self.max_output_tokens,
        }
        effort = reasoning_effort(reasoning_level)
        if effort:
            request["reasoning"] = {"effort": effort}

        client = self.client
        try:
            response = await call_with_retry(
                lambda: client.responses.create(**request),
                label="synthesize_analysis",
                policy=self.policy,
            )
        except (openai.OpenAIError, *TRANSIENT_ERRORS) as e:
            logger.error(f"Primary synthesis call failed: {type(e).__name__}: {e}")
            raise SynthesisError(f"Primary synthesis call failed: {type(e).__name__}") from e

        text = extract_response_text(response)
        tokens = output_token_count(response)

        logger.info(
            f"Synthesized analysis with {self.model}",
            extra={"extra_data": {"output_tokens": tokens, "reasoning_effort": effort}},
        )
        return SynthesisOutput(text=text, model=self.model, output_tokens=tokens)

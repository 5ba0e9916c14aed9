"""Decoders for language-model replies.

Each provider returns a differently shaped payload. These functions walk the
documented shape and return the first usable text, or raise
MalformedProviderResponse. They never fall back to dumping the raw payload.

OpenAI Responses API ``output`` items handled:
  - ``message``: ``content`` is a list of parts; the first ``output_text`` wins
  - ``output_text``: a bare text item with ``text``
  - ``reasoning``, ``function_call``, ``file_search_call``, ``web_search_call``:
    no user-facing text, skipped
Anything else is unknown and skipped with a debug log.
"""

from typing import Any, Literal

from app.core.logging import get_logger
from app.core.training_errors import MalformedProviderResponse

logger = get_logger(__name__)

ReasoningEffort = Literal["low", "medium"]

_NON_TEXT_ITEMS = frozenset({"reasoning", "function_call", "file_search_call", "web_search_call"})


def reasoning_effort(level: int | None) -> ReasoningEffort | None:
    """Map the caller's integer reasoning level to a coarse effort signal.

    0, None or a negative level disables the reasoning parameter; 1 is low;
    2 and above is medium.
    """
    if not level or level < 1:
        return None
    return "medium" if level > 1 else "low"


def _text_of(part: Any) -> str | None:
    text = getattr(part, "text", None)
    if isinstance(text, str) and text.strip():
        return text
    return None


def extract_response_text(response: Any) -> str:
    """First textual content block of an OpenAI Responses API reply."""
    output = getattr(response, "output", None)
    if not output:
        raise MalformedProviderResponse("Primary model returned an empty output.")

    for item in output:
        item_type = getattr(item, "type", None)
        if item_type == "message":
            for part in getattr(item, "content", None) or []:
                if getattr(part, "type", None) == "output_text":
                    text = _text_of(part)
                    if text:
                        return text
        elif item_type == "output_text":
            text = _text_of(item)
            if text:
                return text
        elif item_type not in _NON_TEXT_ITEMS:
            logger.debug(f"Skipping unknown response output item type: {item_type}")

    raise MalformedProviderResponse("Primary model reply contained no text output.")


def extract_chat_text(response: Any) -> str:
    """Message text of the first choice of a chat completions reply."""
    choices = getattr(response, "choices", None)
    if not choices:
        raise MalformedProviderResponse("Summarizer returned no choices.")

    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise MalformedProviderResponse("Summarizer reply contained no text.")
    return content


def extract_message_text(response: Any) -> str:
    """First text block of an Anthropic Messages API reply."""
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            text = _text_of(block)
            if text:
                return text
    raise MalformedProviderResponse("Summarizer reply contained no text block.")


def output_token_count(response: Any) -> int | None:
    """Output tokens reported by the provider, if any."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    tokens = getattr(usage, "output_tokens", None)
    if tokens is None:
        tokens = getattr(usage, "completion_tokens", None)
    return tokens if isinstance(tokens, int) else None

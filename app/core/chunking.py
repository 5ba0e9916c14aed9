"""Text chunking utilities for corpus ingestion."""

import math
from typing import Any

DEFAULT_CHUNK_SIZE = 800
OVERLAP_RATIO = 0.2


def default_overlap(chunk_size: int) -> int:
    """Overlap used when a document does not set one: 20% of the chunk size."""
    return math.floor(chunk_size * OVERLAP_RATIO)


def approximate_tokens(content: str) -> int:
    """Rough token count (4 characters per token)."""
    return math.ceil(len(content) / 4)


def chunk_text(
    text: str,
    max_chars: int = DEFAULT_CHUNK_SIZE,
    overlap: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Split text into overlapping chunks.

    Line endings are normalized to ``\\n`` and surrounding whitespace is
    stripped before splitting; offsets refer to the normalized text.

    Args:
        text: Text to chunk
        max_chars: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks (default 20% of max_chars)
        metadata: Optional metadata to include in each chunk

    Returns:
        List of chunk dicts with:
            - chunk_index: int (0-based)
            - content: str
            - start_char: int
            - end_char: int
            - metadata: dict

    Raises:
        ValueError: If max_chars <= overlap
    """
    if overlap is None:
        overlap = default_overlap(max_chars)
    if max_chars <= overlap:
        raise ValueError(f"max_chars ({max_chars}) must be greater than overlap ({overlap})")

    clean = text.replace("\r\n", "\n").strip()
    if not clean:
        return []

    chunks = []
    chunk_index = 0
    start = 0
    text_length = len(clean)

    while start < text_length:
        end = min(start + max_chars, text_length)

        chunks.append(
            {
                "chunk_index": chunk_index,
                "content": clean[start:end],
                "start_char": start,
                "end_char": end,
                "metadata": dict(metadata or {}),
            }
        )

        chunk_index += 1

        if end >= text_length:
            break

        start = end - overlap

    return chunks

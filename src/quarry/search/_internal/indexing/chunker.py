"""Boundary-aware text chunking.

Splits long text into overlapping windows sized for a 512-token embedding
context. Token counts are approximated as 4 characters per token, which is
close enough for mixed English/German prose.

Window ends prefer, in order:
1. just after the last paragraph break ("\\n\\n") in the second half of the window
2. just after the last sentence break (". ") in the second half of the window
3. the raw window boundary
"""

from __future__ import annotations

from dataclasses import dataclass

CHARS_PER_TOKEN = 4

_PARAGRAPH_BREAK = "\n\n"
_SENTENCE_BREAK = ". "


@dataclass(frozen=True, slots=True)
class ChunkOptions:
    """Chunk sizing, in approximate tokens (min_chunk_size is in characters)."""

    max_tokens: int = 256
    overlap_tokens: int = 50
    min_chunk_size: int = 100

    @property
    def max_chars(self) -> int:
        return self.max_tokens * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        return self.overlap_tokens * CHARS_PER_TOKEN


DEFAULT_CHUNK_OPTIONS = ChunkOptions()


def _window_end(text: str, start: int, max_chars: int) -> int:
    """Pick the end offset (exclusive) of the window starting at ``start``."""
    end = start + max_chars
    if end >= len(text):
        return len(text)

    midpoint = start + max_chars // 2
    for separator in (_PARAGRAPH_BREAK, _SENTENCE_BREAK):
        pos = text.rfind(separator, midpoint, end)
        if pos != -1:
            return pos + len(separator)
    return end


def chunk_text(text: str, options: ChunkOptions = DEFAULT_CHUNK_OPTIONS) -> list[str]:
    """Split ``text`` into overlapping, boundary-aware chunks.

    Text that fits in one window is returned unchanged as a single chunk.
    Otherwise every chunk is trimmed, and chunks shorter than
    ``options.min_chunk_size`` are dropped, so the result can be shorter
    than the number of windows walked (or empty).
    """
    if not text or not text.strip():
        return []

    max_chars = options.max_chars
    if len(text) <= max_chars:
        return [text]

    overlap = options.overlap_chars
    chunks: list[str] = []
    start = 0

    while start < len(text):
        end = _window_end(text, start, max_chars)
        chunks.append(text[start:end].strip())
        if end >= len(text):
            break
        # Always advance, even if overlap swallows the whole window
        start = max(end - overlap, start + 1)

    return [c for c in chunks if len(c) >= options.min_chunk_size]

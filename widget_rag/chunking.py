"""Sentence-aware text chunking.

Provides:
- iter_sentences: lazy segmentation on sentence-ending punctuation or newlines
- chunk_text: accumulate sentences into overlapping chunks bounded by a target size

Sizes are soft bounds: a sentence is never split, so a single sentence longer than
``max_size`` becomes its own chunk. Output is deterministic for a given input.
"""
import math
import re
from typing import Iterator, List

from widget_rag.errors import InputError

# Overlap is given in characters and converted to a word count with this ratio
CHARS_PER_WORD = 6

_SENTENCE_RE = re.compile(r"[^.!?\n]*[.!?]+[\"'”’)\]]*|[^.!?\n]+")
_WS_RE = re.compile(r"\s+")


def iter_sentences(text: str) -> Iterator[str]:
    """Yield whitespace-normalized sentences from ``text`` in order.

    A sentence ends at ``.``, ``!`` or ``?`` (plus any closing quotes or brackets)
    or at a newline. Blank segments are skipped.
    """
    for match in _SENTENCE_RE.finditer(text):
        sentence = _WS_RE.sub(" ", match.group(0)).strip()
        if sentence:
            yield sentence


def _overlap_seed(chunk: str, overlap: int) -> str:
    """Trailing words of ``chunk`` sized to roughly ``overlap`` characters."""
    n_words = math.ceil(overlap / CHARS_PER_WORD)
    words = chunk.split(" ")
    return " ".join(words[-n_words:])


def chunk_text(text: str, max_size: int, overlap: int = 0) -> List[str]:
    """Split text into sentence-aligned chunks of at most ``max_size`` characters.

    Sentences are appended to a running buffer. When the next sentence would push
    the buffer past ``max_size`` the buffer is emitted and a new one started,
    seeded with the trailing words of the previous chunk when ``overlap > 0``.
    Overlap is clamped to ``max_size // 2``.

    Args:
        text: Raw document text.
        max_size: Target maximum chunk length in characters.
        overlap: Overlap in characters between consecutive chunks.

    Returns:
        List[str]: Non-empty chunks in document order.

    Raises:
        InputError: If ``max_size`` is not positive or ``overlap`` is negative.
    """
    if max_size <= 0:
        raise InputError(f"max_size must be positive, got {max_size}")
    if overlap < 0:
        raise InputError(f"overlap must be >= 0, got {overlap}")
    if not text or not text.strip():
        return []
    overlap = min(overlap, max_size // 2)

    chunks: List[str] = []
    buffer = ""
    for sentence in iter_sentences(text):
        candidate = f"{buffer} {sentence}" if buffer else sentence
        if len(candidate) > max_size and buffer:
            chunks.append(buffer)
            seed = _overlap_seed(buffer, overlap) if overlap > 0 else ""
            buffer = f"{seed} {sentence}" if seed else sentence
        else:
            buffer = candidate

    if buffer:
        chunks.append(buffer)
    return chunks

"""
Token-bounded re-chunking of a transcript.

The transcript is tokenised once and cut into chunks of at most
``max_tokens`` tokens, give or take the distance to the nearest sentence end:
each cut is moved to the closest period within :data:`PERIOD_SEARCH_WINDOW`
tokens, so chunks end on whole sentences where the text allows it.

Usage::

    from longscribe.token_chunker import chunk_for_summary

    for chunk in chunk_for_summary(transcript, max_tokens=2750):
        print(chunk.token_count, chunk.text[:40])
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Sequence

import requests
import tiktoken

from .errors import SummaryError
from .models import TokenChunk

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "r50k_base"
PERIOD_SEARCH_WINDOW = 100


@lru_cache(maxsize=4)
def get_encoding(name: str = DEFAULT_ENCODING):
    """Load a tiktoken encoding, downloading its ranks on first use."""
    try:
        return tiktoken.get_encoding(name)
    except (ValueError, OSError, requests.RequestException) as exc:
        raise SummaryError(f"Could not load tokeniser encoding {name!r}: {exc}") from exc


@dataclass
class PeriodGapInfo:
    """The longest stretch of text between two consecutive periods."""

    longest_gap_chars: int
    gap_text: str
    gap_tokens: int
    has_period: bool


def find_longest_period_gap(text: str, encoding=None) -> PeriodGapInfo:
    """Measure the longest sentence in ``text``.

    ``longest_gap_chars`` is ``-1`` when the text contains no period at all.
    """
    encoding = encoding or get_encoding()
    last_period = -1
    longest = 0
    longest_text = ""
    for index, char in enumerate(text):
        if char != ".":
            continue
        if last_period != -1:
            gap = index - last_period - 1
            if gap > longest:
                longest = gap
                longest_text = text[last_period + 1 : index]
        last_period = index
    if last_period == -1:
        return PeriodGapInfo(-1, "", 0, False)
    return PeriodGapInfo(longest, longest_text, len(_encode(encoding, longest_text)), True)


def _encode(encoding, text: str) -> List[int]:
    encode = getattr(encoding, "encode_ordinary", None) or encoding.encode
    return encode(text)


def _is_period(encoding, token) -> bool:
    return encoding.decode([token]) == "."


def _nearest_period(encoding, tokens: Sequence, cur: int, naive: int) -> Optional[int]:
    n = len(tokens)
    forward = None
    for p in range(naive, min(naive + PERIOD_SEARCH_WINDOW, n)):
        if _is_period(encoding, tokens[p]):
            forward = p
            break
    backward = None
    for p in range(naive, max(naive - PERIOD_SEARCH_WINDOW, cur - 1), -1):
        if _is_period(encoding, tokens[p]):
            backward = p
            break
    if forward is None:
        return backward
    if backward is None:
        return forward
    # Ties go backward so chunks do not grow past the limit.
    return forward if forward - naive < naive - backward else backward


def _on_char_boundary(encoding, tokens: Sequence, cur: int, end: int) -> bool:
    decode_bytes = getattr(encoding, "decode_bytes", None)
    if decode_bytes is None:
        return True
    try:
        decode_bytes(list(tokens[cur:end])).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def split_tokens(tokens: Sequence, max_tokens: int, has_period: bool, encoding=None) -> List[int]:
    """Return the end index of every chunk.

    Boundaries are strictly increasing and the last one equals
    ``len(tokens)``, so the chunks partition the token sequence.
    """
    if max_tokens <= 0:
        raise ValueError("max_tokens must be positive")
    encoding = encoding or get_encoding()
    n = len(tokens)
    boundaries: List[int] = []
    cur = 0
    while cur < n:
        naive = min(cur + max_tokens, n)
        end = naive
        if has_period and naive < n:
            period = _nearest_period(encoding, tokens, cur, naive)
            if period is not None and period + 1 > cur:
                end = period + 1
        while end < n and not _on_char_boundary(encoding, tokens, cur, end):
            end += 1
        if end != naive:
            logger.debug("Moved chunk boundary from %d to %d to keep sentences whole", naive, end)
        boundaries.append(end)
        cur = end
    return boundaries


def chunk_for_summary(text: str, max_tokens: int, encoding=None) -> List[TokenChunk]:
    """Split ``text`` into token-bounded chunks ending on sentence breaks.

    Args:
        text: The full transcript.
        max_tokens: Target chunk size in tokens.
        encoding: Object with ``encode``/``decode``; defaults to ``r50k_base``.

    Returns:
        Chunks whose texts concatenate back to ``text``.
    """
    encoding = encoding or get_encoding()
    if not text:
        return []
    gap = find_longest_period_gap(text, encoding)
    if gap.gap_tokens > max_tokens:
        logger.warning(
            "Longest sentence in the transcript (%d tokens) exceeds the max per-chunk "
            "token length of %d. Chunks will be split mid-sentence.",
            gap.gap_tokens,
            max_tokens,
        )
    tokens = _encode(encoding, text)
    chunks: List[TokenChunk] = []
    cur = 0
    for end in split_tokens(tokens, max_tokens, gap.has_period, encoding):
        chunks.append(TokenChunk(cur, end, encoding.decode(list(tokens[cur:end]))))
        cur = end
    logger.info(
        json.dumps(
            {
                "event": "chunking_done",
                "tokens": len(tokens),
                "chunks": len(chunks),
                "max_tokens": max_tokens,
                "longest_sentence_tokens": gap.gap_tokens,
            }
        )
    )
    return chunks

"""Chunking utilities.

Text is cut into blocks that tile the input exactly: a block ends at a blank
line, and a heading or an opening code fence starts a new one. Fenced code
is never split at block level. Blocks are packed into segments of at most
``target_chars`` characters; each segment after the first begins with up to
``overlap_chars`` trailing characters of the previous one (fewer when the
next block would not fit otherwise), so every segment is a contiguous
slice ``text[start:end]`` of the original.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterator

CHARS_PER_TOKEN = 4

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass(slots=True, frozen=True)
class Block:
    start: int
    end: int


@dataclass(slots=True, frozen=True)
class Chunk:
    index: int
    content: str
    start: int
    end: int
    approx_tokens: int


def approx_tokens(text: str) -> int:
    """Approximate token count using a fixed character ratio."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chunk_text(text: str, target_chars: int = 3200, overlap_chars: int = 600) -> list[Chunk]:
    """Split text into overlapping segments along paragraph boundaries."""
    if target_chars <= 0:
        raise ValueError("target_chars must be positive")
    if not 0 <= overlap_chars < target_chars:
        raise ValueError("overlap_chars must be in [0, target_chars)")
    if not text.strip():
        return []

    spans: list[tuple[int, int]] = []
    buf_start: int | None = None
    buf_end = 0
    has_new = False

    for block in split_blocks(text):
        if buf_start is not None and has_new and block.end - buf_start > target_chars:
            spans.append((buf_start, buf_end))
            buf_start = max(buf_start, buf_end - overlap_chars)
            has_new = False

        span_start = block.start if buf_start is None else buf_start
        if block.end - block.start <= target_chars:
            # Shorten the carried overlap rather than split a block that fits.
            buf_start, buf_end, has_new = max(span_start, block.end - target_chars), block.end, True
            continue

        # Oversized block: fixed-width pieces, the final piece stays buffered.
        cursor = span_start
        while True:
            piece_end = min(block.end, cursor + target_chars)
            if piece_end == block.end:
                buf_start, buf_end, has_new = cursor, block.end, True
                break
            spans.append((cursor, piece_end))
            cursor = piece_end - overlap_chars

    if buf_start is not None and has_new:
        spans.append((buf_start, buf_end))

    return [
        Chunk(
            index=idx,
            content=text[start:end],
            start=start,
            end=end,
            approx_tokens=approx_tokens(text[start:end]),
        )
        for idx, (start, end) in enumerate(spans)
    ]


def split_blocks(text: str) -> list[Block]:
    """Return paragraph-like blocks covering ``text`` without gaps."""
    boundaries = [0]
    has_content = False
    pending_break = False
    in_code = False

    for start, line in _iter_lines(text):
        is_fence = bool(_FENCE_RE.match(line))
        if in_code:
            if is_fence:
                in_code = False
                pending_break = True
            continue
        if not line.strip():
            if has_content:
                pending_break = True
            continue
        if has_content and (pending_break or is_fence or _HEADING_RE.match(line)):
            boundaries.append(start)
        has_content = True
        pending_break = False
        if is_fence:
            in_code = True

    boundaries.append(len(text))
    return [Block(start=a, end=b) for a, b in zip(boundaries, boundaries[1:]) if b > a]


def _iter_lines(text: str) -> Iterator[tuple[int, str]]:
    offset = 0
    for line in text.split("\n"):
        yield offset, line
        offset += len(line) + 1


__all__ = ["Chunk", "Block", "chunk_text", "split_blocks", "approx_tokens", "CHARS_PER_TOKEN"]

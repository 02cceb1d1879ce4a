"""Tests for chunker."""

import pytest

from knowledge_desk.ingest.chunker import approx_tokens, chunk_text, split_blocks


def _reconstruct(chunks) -> str:
    text = chunks[0].content
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.start <= prev.end
        text += cur.content[prev.end - cur.start :]
    return text


def test_small_input_is_single_chunk() -> None:
    text = "Title\n\nParagraph one.\n\nParagraph two is here."
    chunks = chunk_text(text)
    assert len(chunks) == 1
    assert chunks[0].start == 0
    assert chunks[0].end == len(text)
    assert chunks[0].content == text
    assert chunks[0].index == 0


def test_empty_input_yields_nothing() -> None:
    assert chunk_text("") == []
    assert chunk_text("   \n\n  ") == []


def test_invalid_sizes_rejected() -> None:
    with pytest.raises(ValueError):
        chunk_text("abc", target_chars=100, overlap_chars=100)
    with pytest.raises(ValueError):
        chunk_text("abc", target_chars=0, overlap_chars=0)


def test_overlap_and_reconstruction() -> None:
    text = "\n\n".join(f"Paragraph {idx} " + "word " * 10 for idx in range(20))
    chunks = chunk_text(text, target_chars=200, overlap_chars=40)

    assert len(chunks) > 1
    assert chunks[0].start == 0
    assert chunks[-1].end == len(text)
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert chunk.content == text[chunk.start : chunk.end]
        assert len(chunk.content) <= 200
    for prev, cur in zip(chunks, chunks[1:]):
        assert prev.end - cur.start == 40
    assert _reconstruct(chunks) == text


def test_oversized_block_is_force_split() -> None:
    text = "x" * 1000
    chunks = chunk_text(text, target_chars=300, overlap_chars=50)
    assert [(c.start, c.end) for c in chunks] == [(0, 300), (250, 550), (500, 800), (750, 1000)]
    assert _reconstruct(chunks) == text


def test_fitting_block_kept_whole_when_overlap_would_overflow() -> None:
    text = "a" * 80 + "\n\n" + "b" * 80
    block_ends = {block.end for block in split_blocks(text)}
    chunks = chunk_text(text, target_chars=100, overlap_chars=60)

    assert [(c.start, c.end) for c in chunks] == [(0, 82), (62, 162)]
    assert all(chunk.end in block_ends for chunk in chunks)
    assert all(len(chunk.content) <= 100 for chunk in chunks)
    assert _reconstruct(chunks) == text


def test_code_fence_is_never_split() -> None:
    text = "Intro paragraph.\n\n```\nline1\n\nline2\n```\n\nAfter."
    blocks = [text[b.start : b.end] for b in split_blocks(text)]
    fenced = [block for block in blocks if "line1" in block]
    assert len(fenced) == 1
    assert "line2" in fenced[0]
    assert "".join(blocks) == text


def test_heading_starts_block() -> None:
    text = "Para\n# Heading\nbody"
    blocks = [text[b.start : b.end] for b in split_blocks(text)]
    assert blocks == ["Para\n", "# Heading\nbody"]


def test_approx_tokens() -> None:
    assert approx_tokens("") == 0
    assert approx_tokens("abcd") == 1
    assert approx_tokens("abcde") == 2

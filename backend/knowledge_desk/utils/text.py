"""Text processing helpers."""

from __future__ import annotations

import re

NEWLINE_RE = re.compile("\r\n?|\u2028|\u2029")
BLANK_RUN_RE = re.compile(r"\n{3,}")
MOJIBAKE_RE = re.compile("[\u00c3\u00c2\u00e2\u20ac\u00a2\u201e\u2122\u0153\ufffd]")
CJK_RE = re.compile("[\u4e00-\u9fff]")


def sanitize(text: str, max_chars: int | None = None) -> str:
    """Strip BOM, normalise newlines and tabs, collapse long blank runs."""
    if not text:
        return ""
    cleaned = text.lstrip("\ufeff")
    cleaned = NEWLINE_RE.sub("\n", cleaned)
    cleaned = cleaned.replace("\t", "  ")
    cleaned = BLANK_RUN_RE.sub("\n\n", cleaned)
    if max_chars is not None and len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars]
    return cleaned


def snippet(text: str, limit: int = 800) -> str:
    return text[:limit]


def repair_mojibake(value: str | None) -> str | None:
    """Undo UTF-8 bytes that were decoded as Latin-1/CP1252 somewhere upstream.

    The repaired form is used only when the original carries typical
    mis-decoding marker characters, or when the repair yields CJK text the
    original lacked.
    """
    if not value:
        return value
    repaired = _reinterpret_as_utf8(value)
    if repaired is None or repaired == value:
        return value
    looks_garbled = bool(MOJIBAKE_RE.search(value))
    gained_cjk = bool(CJK_RE.search(repaired)) and not CJK_RE.search(value)
    if looks_garbled or gained_cjk:
        return repaired
    return value


def _reinterpret_as_utf8(value: str) -> str | None:
    for codec in ("latin-1", "cp1252"):
        try:
            raw = value.encode(codec)
        except UnicodeEncodeError:
            continue
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


__all__ = ["sanitize", "snippet", "repair_mojibake"]

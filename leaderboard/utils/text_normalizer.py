"""Text normalization for blacklist matching and published text.

Two concerns live here:

1. **Match normalization** -- authors and titles are folded to a canonical
   form (accents stripped, lowercased, punctuation turned into spaces,
   whitespace collapsed) before any blacklist comparison, so
   "J.R.R. Tolkien", "j r r tolkien" and "J. R. R.  Tolkien" compare equal.

2. **HTML entity decoding** -- scraped titles arrive with entities such as
   ``&amp;`` and ``&#39;`` that must not leak into the public leaderboard.
"""

from __future__ import annotations

import html
import re
import unicodedata

_PUNCTUATION = re.compile(r"[^\w\s]|_", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")

# Last-name heuristic only fires on surnames longer than this, so short
# tokens like "doe" or "jr" do not produce matches on their own.
_MIN_SURNAME_LENGTH = 3


def normalize_text(value: str | None) -> str:
    """Fold *value* into the canonical comparison form.

    Args:
        value: Raw author name, title or pattern.  ``None`` yields ``""``.

    Returns:
        Lowercase ASCII-folded text with punctuation replaced by spaces and
        runs of whitespace collapsed to a single space.
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    lowered = stripped.lower()
    without_punct = _PUNCTUATION.sub(" ", lowered)
    return _WHITESPACE.sub(" ", without_punct).strip()


def authors_match(candidate: str | None, pattern: str | None) -> bool:
    """Return ``True`` when a stored author matches a blacklist author entry.

    Normalized forms match when any of these hold:

    * they are equal;
    * one fully contains the other ("jane doe" / "jane doe phd");
    * they share a last token longer than three characters ("j doe" does
      not match "jane doe" because "doe" is too short, "john tolkien"
      matches "j r r tolkien").
    """
    normalized_candidate = normalize_text(candidate)
    normalized_pattern = normalize_text(pattern)
    if not normalized_candidate or not normalized_pattern:
        return False

    if normalized_candidate == normalized_pattern:
        return True
    if normalized_pattern in normalized_candidate or normalized_candidate in normalized_pattern:
        return True

    candidate_last = normalized_candidate.rsplit(" ", 1)[-1]
    pattern_last = normalized_pattern.rsplit(" ", 1)[-1]
    return candidate_last == pattern_last and len(pattern_last) > _MIN_SURNAME_LENGTH


def title_matches(title: str | None, pattern: str | None) -> bool:
    """Return ``True`` when *pattern* occurs in *title* as whole words.

    The normalized pattern is wrapped in ``\\b`` word boundaries; when that
    cannot form a meaningful expression (pattern edges are not word
    characters, or the regex fails to compile) plain substring containment
    is used instead.
    """
    normalized_title = normalize_text(title)
    normalized_pattern = normalize_text(pattern)
    if not normalized_title or not normalized_pattern:
        return False

    if not (_is_word_char(normalized_pattern[0]) and _is_word_char(normalized_pattern[-1])):
        return normalized_pattern in normalized_title

    try:
        expression = re.compile(rf"\b{re.escape(normalized_pattern)}\b")
    except re.error:
        return normalized_pattern in normalized_title
    return expression.search(normalized_title) is not None


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char == "_"


# ------------------------------------------------------------------
# HTML entity decoding
# ------------------------------------------------------------------

def decode_html_entities(value: str | None) -> str:
    """Decode HTML entities (``&amp;``, ``&#39;``, ``&nbsp;`` ...) in *value*.

    Non-breaking spaces become ordinary spaces.
    """
    if not value:
        return ""
    return html.unescape(value).replace("\xa0", " ")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()

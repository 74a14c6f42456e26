"""Field extraction from retail product pages.

Each field has an ordered list of extraction strategies; the first one that
yields a non-empty value wins and a field with no match is ``None``.  DOM
lookups through BeautifulSoup come first, followed by regex fallbacks over
the raw HTML for page layouts where the markup is broken or unusual.

The format check is different: it collects *independent* textual signals
(format label, binding row, ISBN, physical dimensions ...) and passes when
any one of them is present.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Tag

from leaderboard.utils.logging import get_logger
from leaderboard.utils.text_normalizer import collapse_whitespace, decode_html_entities

logger = get_logger(__name__)

_TITLE_RE = re.compile(r'<span id="productTitle"[^>]*>([^<]+)</span>')
_BRACKETED_RE = re.compile(r"\s*[\(\[].+?[\)\]]\s*")
_TITLE_SEPARATOR_RE = re.compile(r"[;:]")

# Raw-HTML author patterns, tried in order after the DOM byline lookup.
_AUTHOR_PATTERNS = (
    re.compile(r"<a[^>]*>([^<]+)</a>[^<]*<span[^>]*>\s*\(Author\)"),
    re.compile(
        r'<div class="contribution">[^<]*<span class="a-color-secondary">[^<]*</span>[^<]*<a[^>]*>([^<]+)</a>'
    ),
    re.compile(r'<span class="author[^"]*">[^<]*<a[^>]*>([^<]+)</a>'),
    re.compile(r'<span class="author notFaded"[^>]*>(?:[^<]*<span[^>]*>)*[^<]*<a[^>]*>([^<]+)</a>'),
    re.compile(r'<tr class="author">[^<]*<td[^>]*>[^<]*<a[^>]*>([^<]+)</a>'),
    re.compile(r'<span id="productTitle"[^>]*>[^<]*?by\s+([^<]+?)\s*<', re.IGNORECASE),
    re.compile(r'<meta name="author" content="([^"]+)"'),
)
_LEADING_BY_RE = re.compile(r"^by\s+", re.IGNORECASE)
_PARENTHETICAL_RE = re.compile(r"\s*\([^)]*\)")

_RANK_PATTERNS = (
    re.compile(r"#([0-9,]+)[^#]*?in Books"),
    re.compile(r"Best Sellers Rank:\s*#([0-9,]+)[^#]*?in Books"),
    re.compile(r"Books\s*\(See Top 100[^#]*#([0-9,]+)"),
    re.compile(r"Clasificación en los más vendidos[^#]*#([0-9,]+)"),
)

_COVER_IMAGE_IDS = ("landingImage", "imgBlkFront")


@dataclass(frozen=True)
class ParsedPage:
    """Fields extracted from one product page.

    ``format_signals`` names every format indicator that was found; the page
    is of the expected format when the tuple is non-empty.
    """

    title: str | None = None
    author: str | None = None
    cover_url: str | None = None
    rank_value: int | None = None
    format_signals: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_expected_format(self) -> bool:
        return bool(self.format_signals)


# ---------------------------------------------------------------------------
# Cleaning helpers
# ---------------------------------------------------------------------------

def clean_title(raw: str | None) -> str | None:
    """Drop bracketed segments and everything after the first ``:`` or ``;``."""
    if not raw:
        return None
    title = _BRACKETED_RE.sub(" ", decode_html_entities(raw).strip())
    title = _TITLE_SEPARATOR_RE.split(title, maxsplit=1)[0]
    title = collapse_whitespace(title)
    return title or None


def clean_author(raw: str | None) -> str | None:
    if not raw:
        return None
    author = collapse_whitespace(decode_html_entities(raw))
    author = _LEADING_BY_RE.sub("", author)
    author = _PARENTHETICAL_RE.sub("", author).strip()
    return author or None


def parse_rank_number(raw: str) -> int | None:
    """``"1,234"`` -> 1234; ``None`` unless the value is a positive integer."""
    digits = raw.replace(",", "").strip()
    if not digits.isdigit():
        return None
    value = int(digits)
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class ProductPageParser:
    """Extracts title, author, cover, rank value and format signals.

    Parameters
    ----------
    expected_format:
        Binding label the item must carry, e.g. ``"Paperback"``.
    """

    def __init__(self, expected_format: str = "Paperback") -> None:
        self._expected_format = expected_format
        self._format_checks = self._build_format_checks(expected_format)

    def parse(self, html: str) -> ParsedPage:
        soup = BeautifulSoup(html, "html.parser")
        return ParsedPage(
            title=self.extract_title(soup, html),
            author=self.extract_author(soup, html),
            cover_url=self.extract_cover_url(soup),
            rank_value=self.extract_rank_value(soup, html),
            format_signals=self.format_signals(html),
        )

    # -- Title ----------------------------------------------------------------

    def extract_title(self, soup: BeautifulSoup, html: str) -> str | None:
        node = soup.find(id="productTitle")
        if isinstance(node, Tag):
            title = clean_title(node.get_text())
            if title:
                return title
        match = _TITLE_RE.search(html)
        return clean_title(match.group(1)) if match else None

    # -- Author ---------------------------------------------------------------

    def extract_author(self, soup: BeautifulSoup, html: str) -> str | None:
        author = self._author_from_byline(soup)
        if author:
            return author

        for pattern in _AUTHOR_PATTERNS:
            match = pattern.search(html)
            if match:
                author = clean_author(match.group(1))
                if author:
                    return author

        return self._author_from_structured_data(soup)

    @staticmethod
    def _author_from_byline(soup: BeautifulSoup) -> str | None:
        for span in soup.select("span.author"):
            role = span.find(class_="contribution")
            link = span.find("a")
            if isinstance(link, Tag) and role is not None and "author" in role.get_text().lower():
                author = clean_author(link.get_text())
                if author:
                    return author
        return None

    @staticmethod
    def _author_from_structured_data(soup: BeautifulSoup) -> str | None:
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            try:
                data = json.loads(script.get_text())
            except json.JSONDecodeError:
                logger.debug("structured_data_unparseable")
                continue
            candidates = data if isinstance(data, list) else [data]
            for candidate in candidates:
                if not isinstance(candidate, dict):
                    continue
                author = candidate.get("author")
                if isinstance(author, list) and author:
                    author = author[0]
                if isinstance(author, dict):
                    author = author.get("name")
                if isinstance(author, str):
                    cleaned = clean_author(author)
                    if cleaned:
                        return cleaned
        return None

    # -- Cover ----------------------------------------------------------------

    def extract_cover_url(self, soup: BeautifulSoup) -> str | None:
        """Largest image from the ``data-a-dynamic-image`` map, else a plain attribute."""
        for image_id in _COVER_IMAGE_IDS:
            node = soup.find(id=image_id)
            if not isinstance(node, Tag):
                continue
            dynamic = node.get("data-a-dynamic-image")
            if isinstance(dynamic, str):
                best = _largest_image(dynamic)
                if best:
                    return best
            for attribute in ("data-old-hires", "src"):
                value = node.get(attribute)
                if isinstance(value, str) and value.startswith("http"):
                    return value
        return None

    # -- Rank value -------------------------------------------------------------

    def extract_rank_value(self, soup: BeautifulSoup, html: str) -> int | None:
        # Visible text first: raw HTML is full of '#' from CSS colours and anchors.
        text = collapse_whitespace(soup.get_text(" "))
        for haystack in (text, html):
            for pattern in _RANK_PATTERNS:
                for match in pattern.finditer(haystack):
                    value = parse_rank_number(match.group(1))
                    if value is not None:
                        return value
        return None

    # -- Format -------------------------------------------------------------------

    def format_signals(self, html: str) -> tuple[str, ...]:
        return tuple(name for name, check in self._format_checks if check(html))

    @staticmethod
    def _build_format_checks(label: str) -> tuple[tuple[str, Callable[[str], bool]], ...]:
        return (
            ("product_subtitle", lambda h: 'id="productSubtitle"' in h and label in h),
            ("format_button", lambda h: f'aria-label="{label} Format:">{label}<' in h),
            ("format_span", lambda h: f">{label}</span>" in h),
            ("format_table_row", lambda h: (">Format:</th>" in h or ">Format:</td>" in h) and f">{label}<" in h),
            ("title_attribute", lambda h: f'title="{label}:' in h),
            ("binding_row", lambda h: ">Binding</th>" in h and f">{label}<" in h),
            ("format_selector", lambda h: f'data-a-html-content="{label}"' in h),
            ("edition_dash", lambda h: f"{label} – " in h or f"{label}:" in h),
            ("binding_json", lambda h: f'"binding":"{label}"' in h or f'"format":"{label}"' in h),
            # Digital editions carry neither an ISBN nor physical dimensions.
            ("isbn", lambda h: "ISBN-13" in h or "ISBN-10" in h),
            ("dimensions", lambda h: "Dimensions" in h and "inches" in h),
        )


def _largest_image(dynamic_image: str) -> str | None:
    """Pick the URL with the largest width*height from a dynamic-image map."""
    try:
        images = json.loads(decode_html_entities(dynamic_image))
    except json.JSONDecodeError:
        logger.debug("dynamic_image_unparseable")
        return None
    if not isinstance(images, dict):
        return None

    best_url: str | None = None
    best_area = 0
    for url, dimensions in images.items():
        try:
            area = int(dimensions[0]) * int(dimensions[1])
        except (TypeError, ValueError, IndexError):
            continue
        if area > best_area:
            best_area = area
            best_url = url
    return best_url

"""Unit tests for product page field extraction."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from leaderboard.services.page_parser import (
    ProductPageParser,
    clean_author,
    clean_title,
    parse_rank_number,
)


class TestCleaningHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("  The Hobbit  ", "The Hobbit"),
            ("Dune (Dune Chronicles, Book 1)", "Dune"),
            ("Atomic Habits: An Easy & Proven Way", "Atomic Habits"),
            ("Tom &amp; Jerry [Illustrated]; Extra", "Tom & Jerry"),
            ("", None),
            (None, None),
        ],
    )
    def test_clean_title(self, raw: str | None, expected: str | None) -> None:
        assert clean_title(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("by Jane Doe", "Jane Doe"),
            ("  Jane   Doe (Author) ", "Jane Doe"),
            ("O&#39;Brien", "O'Brien"),
            ("", None),
        ],
    )
    def test_clean_author(self, raw: str, expected: str | None) -> None:
        assert clean_author(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [("1,234", 1234), ("7", 7), ("0", None), ("", None), ("12a", None)],
    )
    def test_parse_rank_number(self, raw: str, expected: int | None) -> None:
        assert parse_rank_number(raw) == expected


class TestProductPageParser:
    @pytest.fixture()
    def parser(self) -> ProductPageParser:
        return ProductPageParser(expected_format="Paperback")

    def test_parses_complete_page(
        self, parser: ProductPageParser, product_page: Callable[..., str], cover_large: str
    ) -> None:
        parsed = parser.parse(product_page(title="T", author="A", rank="1,234"))

        assert parsed.title == "T"
        assert parsed.author == "A"
        assert parsed.rank_value == 1234
        assert parsed.cover_url == cover_large
        assert parsed.is_expected_format
        assert "product_subtitle" in parsed.format_signals

    def test_missing_rank(self, parser: ProductPageParser, product_page: Callable[..., str]) -> None:
        parsed = parser.parse(product_page(rank=None))
        assert parsed.rank_value is None

    def test_missing_cover(self, parser: ProductPageParser, product_page: Callable[..., str]) -> None:
        parsed = parser.parse(product_page(with_cover=False))
        assert parsed.cover_url is None

    def test_wrong_format_has_no_signals(
        self, parser: ProductPageParser, product_page: Callable[..., str]
    ) -> None:
        parsed = parser.parse(product_page(binding="Kindle Edition"))
        assert parsed.format_signals == ()
        assert not parsed.is_expected_format

    def test_isbn_alone_counts_as_physical(self, parser: ProductPageParser) -> None:
        html = "<html><body><li><span>ISBN-13 : 978-0000000000</span></li></body></html>"
        assert parser.format_signals(html) == ("isbn",)

    def test_rank_from_table_layout(self, parser: ProductPageParser) -> None:
        html = (
            "<table><tr><th>Best Sellers Rank</th>"
            "<td><span>#52 in Books (<a href='#top'>See Top 100 in Books</a>)</span></td></tr></table>"
        )
        assert parser.parse(html).rank_value == 52

    def test_rank_ignores_css_hashes(self, parser: ProductPageParser) -> None:
        html = (
            "<html><head><style>.x{color:#333}</style></head>"
            "<body><span>Best Sellers Rank: #9,876 in Books</span></body></html>"
        )
        assert parser.parse(html).rank_value == 9876

    def test_author_from_meta_tag(self, parser: ProductPageParser) -> None:
        html = '<html><head><meta name="author" content="Mary Shelley"></head><body></body></html>'
        assert parser.parse(html).author == "Mary Shelley"

    def test_author_from_structured_data(self, parser: ProductPageParser) -> None:
        html = (
            '<html><body><script type="application/ld+json">'
            '{"@type": "Book", "author": [{"@type": "Person", "name": "Bram Stoker"}]}'
            "</script></body></html>"
        )
        assert parser.parse(html).author == "Bram Stoker"

    def test_cover_falls_back_to_old_hires(self, parser: ProductPageParser) -> None:
        html = '<img id="imgBlkFront" data-old-hires="https://img.example.com/big.jpg" src="data:image/gif;base64,AA">'
        assert parser.parse(html).cover_url == "https://img.example.com/big.jpg"

    def test_empty_page(self, parser: ProductPageParser) -> None:
        parsed = parser.parse("<html></html>")
        assert parsed.title is None
        assert parsed.author is None
        assert parsed.cover_url is None
        assert parsed.rank_value is None

"""Shared pytest fixtures for the leaderboard test suite."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import structlog

from leaderboard.storage.documents import DocumentRepository
from leaderboard.storage.json_store import JsonStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _test_logging() -> None:
    """Quiet, uncached structlog so loggers never hold a captured stdout."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# ---------------------------------------------------------------------------
# Data directory
# ---------------------------------------------------------------------------


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir: Path) -> JsonStore:
    return JsonStore(data_dir)


@pytest.fixture
def repository(store: JsonStore) -> DocumentRepository:
    return DocumentRepository(store)


@pytest.fixture
def write_document(data_dir: Path) -> Callable[[str, Any], Path]:
    """Write raw JSON into the data directory, bypassing the store."""

    def _write(name: str, document: Any) -> Path:
        path = data_dir / name
        path.write_text(json.dumps(document, indent=4), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def read_document(data_dir: Path) -> Callable[[str], Any]:
    def _read(name: str) -> Any:
        return json.loads((data_dir / name).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Drop-in for ``asyncio.sleep`` that returns immediately."""
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# Product pages
# ---------------------------------------------------------------------------

_COVER_SMALL = "https://m.media-amazon.com/images/I/cover-small.jpg"
_COVER_LARGE = "https://m.media-amazon.com/images/I/cover-large.jpg"


def _product_page(
    title: str = "T",
    author: str = "A",
    rank: str | None = "1,234",
    binding: str = "Paperback",
    with_cover: bool = True,
) -> str:
    cover = ""
    if with_cover:
        dynamic = json.dumps({_COVER_SMALL: [200, 300], _COVER_LARGE: [500, 750]})
        cover = f"<img id=\"landingImage\" src=\"{_COVER_SMALL}\" data-a-dynamic-image='{dynamic}'>"
    rank_block = ""
    if rank is not None:
        rank_block = (
            "<ul><li><span>Best Sellers Rank: "
            f"#{rank} in Books (See Top 100 in Books)</span></li></ul>"
        )
    return f"""<html>
<head><title>{title}: Amazon.com: Books</title></head>
<body>
<span id="productTitle" class="a-size-extra-large">  {title} (Book 1): A Novel  </span>
<div id="bylineInfo">
  <span class="author notFaded">
    <a class="a-link-normal" href="/e/B000EXAMPLE">{author}</a>
    <span class="contribution"><span class="a-color-secondary">(Author)</span></span>
  </span>
</div>
<span id="productSubtitle">{binding} – March 1, 2024</span>
{cover}
<div id="detailBulletsWrapper_feature_div">{rank_block}</div>
</body>
</html>"""


@pytest.fixture
def product_page() -> Callable[..., str]:
    """Factory building a product page: ``product_page(title=..., rank=...)``."""
    return _product_page


@pytest.fixture
def cover_large() -> str:
    return _COVER_LARGE

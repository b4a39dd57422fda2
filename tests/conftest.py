"""Shared fixtures for the pipeline test suite.

No network or model downloads: the OpenAI client and the Docling converter
are replaced by small fakes.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from PIL import Image

from docextract.cache import CacheStore
from docextract.models import ExtractionFragment, PageImage, PageResult

# ---------------------------------------------------------------------------
# Configure verbose logging for test debugging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)
log = logging.getLogger("conftest")


# ---------------------------------------------------------------------------
# Fake OpenAI client
# ---------------------------------------------------------------------------


class FakeCompletions:
    """Returns scripted contents (or raises scripted exceptions) in order."""

    def __init__(self, replies: list[Any]):
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_client(replies: list[Any]) -> SimpleNamespace:
    completions = FakeCompletions(replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


@pytest.fixture
def fake_client() -> Callable[[list[Any]], SimpleNamespace]:
    return make_client


# ---------------------------------------------------------------------------
# Scripted extractor
# ---------------------------------------------------------------------------


class ScriptedExtractor:
    """Page extractor driven by a ``{page: data | None | exception}`` script.

    A dict yields an ``extracted`` fragment, ``None`` yields ``no_data``.
    Pages missing from the script yield a fragment ``{"page_id": page}``.
    """

    def __init__(self, script: dict[int, Any] | None = None):
        self.script = script or {}
        self.calls: list[int] = []

    def extract_page(self, image: bytes, page_number: int) -> PageResult:
        self.calls.append(page_number)
        entry = self.script.get(page_number, {"page_id": page_number})
        if isinstance(entry, BaseException):
            raise entry
        if entry is None:
            return PageResult(page=page_number, status="no_data")
        return PageResult(
            page=page_number,
            status="extracted",
            fragment=ExtractionFragment(page=page_number, data=entry),
        )


@pytest.fixture
def scripted_extractor() -> Callable[..., ScriptedExtractor]:
    return ScriptedExtractor


# ---------------------------------------------------------------------------
# Pages, stores, converters
# ---------------------------------------------------------------------------


def make_pages(count: int) -> list[PageImage]:
    return [
        PageImage(page=i, data=f"png-{i}".encode(), filename=f"page.{i}.png")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def pages() -> Callable[[int], list[PageImage]]:
    return make_pages


@pytest.fixture
def tmp_output(tmp_path: Path) -> Path:
    """Return a temporary output directory for a single test."""
    return tmp_path / "output"


@pytest.fixture
def store(tmp_output: Path) -> CacheStore:
    return CacheStore(tmp_output)


class FakeDoclingConverter:
    """Mimics ``DocumentConverter.convert`` with page images only."""

    def __init__(self, page_count: int = 2, error: Exception | None = None):
        self.page_count = page_count
        self.error = error
        self.sources: list[str] = []

    def convert(self, source):
        self.sources.append(source)
        if self.error is not None:
            raise self.error
        pages = {
            page_no: SimpleNamespace(
                page_no=page_no,
                image=SimpleNamespace(
                    pil_image=Image.new("RGB", (8 + page_no, 8), (255, 255, 255))
                ),
            )
            for page_no in range(1, self.page_count + 1)
        }
        return SimpleNamespace(document=SimpleNamespace(pages=pages))


@pytest.fixture
def docling_converter() -> Callable[..., FakeDoclingConverter]:
    return FakeDoclingConverter


@pytest.fixture
def sample_pdf(tmp_path: Path) -> Path:
    pdf = tmp_path / "extrato.pdf"
    pdf.write_bytes(b"%PDF-1.4 sample")
    return pdf

"""Resumable page-by-page extraction.

``extract`` walks a document's pages in ascending order, calling the page
extractor only for pages that no earlier run has attempted, and checkpoints
the cache after every page.  Once every page has been attempted the fragments
are consolidated and the record is marked completed; later calls with the
same page count return the cached result directly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from .cache import CacheStore
from .consolidation import consolidate
from .errors import PageRenderError
from .models import CacheRecord, ExtractionFragment, PageImage, PageResult
from .sources import load_page_images
from .utils import DOCUMENT_LABEL, SOURCE_LABEL

log = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract_page(self, image: bytes, page_number: int) -> PageResult: ...


@dataclass(frozen=True)
class ExtractionProgress:
    """Accumulated state of one document's extraction, threaded through the loop."""

    total_pages: int
    processed_pages: tuple[int, ...] = ()
    extracted_data: tuple[ExtractionFragment, ...] = ()

    @classmethod
    def from_record(cls, total_pages: int, record: Optional[CacheRecord]) -> "ExtractionProgress":
        if record is None:
            return cls(total_pages=total_pages)
        return cls(
            total_pages=total_pages,
            processed_pages=tuple(sorted(set(record.processed_pages))),
            extracted_data=tuple(record.extracted_data),
        )

    def is_processed(self, page: int) -> bool:
        return page in self.processed_pages

    def record(
        self, page: int, fragment: Optional[ExtractionFragment]
    ) -> "ExtractionProgress":
        """Return the progress after *page* was attempted."""
        data = self.extracted_data
        if fragment is not None:
            data = data + (fragment,)
        return replace(
            self,
            processed_pages=tuple(sorted(set(self.processed_pages) | {page})),
            extracted_data=data,
        )

    def to_record(self, result: Optional[dict[str, Any]] = None) -> CacheRecord:
        completed = result is not None
        return CacheRecord(
            total_pages=self.total_pages,
            processed_pages=list(self.processed_pages),
            extracted_data=list(self.extracted_data),
            completed=completed,
            result=result,
        )


@dataclass
class RunStats:
    skipped: int = 0
    attempted: int = 0
    statuses: dict[str, int] = field(default_factory=dict)


def _checkpoint(
    store: CacheStore, document_id: str, progress: ExtractionProgress, page: int
) -> None:
    saved = store.save(document_id, progress.to_record())
    if not saved.ok:
        log.warning(
            "Checkpoint after page %s of %s not saved (%s); continuing",
            page,
            document_id,
            saved.error,
        )


def extract(
    document_id: str,
    pages: Sequence[PageImage],
    *,
    store: CacheStore,
    extractor: Extractor,
    source_label: str = SOURCE_LABEL,
    document_label: str = DOCUMENT_LABEL,
) -> dict[str, Any]:
    """Extract and consolidate structured data for *document_id*.

    Args:
        document_id: Identity owning the cache record.
        pages: Page images in page order; page numbers are their 1-based
            positions.
        store: Cache store used for resume and checkpoints.
        extractor: Object with ``extract_page(image, page_number)``.
        source_label: ``metadata.fonte`` of the consolidated document.
        document_label: ``metadata.documento`` of the consolidated document.

    Returns:
        The consolidated document.

    Raises:
        PageRenderError: if *pages* is empty.
        ModelCallError: if a page's model call fails; earlier checkpoints
            remain on disk.
    """
    total_pages = len(pages)
    if total_pages == 0:
        raise PageRenderError(f"No page images for document {document_id}")

    with store.lock(document_id):
        cached = store.load(document_id, total_pages)
        record = cached.record
        if record is not None and record.completed and record.result is not None:
            log.info("Extraction for %s already completed; returning cache", document_id)
            return record.result

        progress = ExtractionProgress.from_record(total_pages, record)
        stats = RunStats()
        log.info(
            "Extracting %s: %s page(s), %s already processed",
            document_id,
            total_pages,
            len(progress.processed_pages),
        )

        t0 = time.perf_counter()
        for page_number, page in enumerate(pages, start=1):
            if progress.is_processed(page_number):
                stats.skipped += 1
                log.debug("Page %s already processed, skipping", page_number)
                continue

            log.info("Processing page %s/%s", page_number, total_pages)
            outcome = extractor.extract_page(page.read_bytes(), page_number)
            stats.attempted += 1
            stats.statuses[outcome.status] = stats.statuses.get(outcome.status, 0) + 1

            progress = progress.record(page_number, outcome.fragment)
            _checkpoint(store, document_id, progress, page_number)

        log.info(
            "Page loop done for %s in %.2fs: attempted=%s skipped=%s outcomes=%s "
            "fragments=%s",
            document_id,
            time.perf_counter() - t0,
            stats.attempted,
            stats.skipped,
            stats.statuses,
            len(progress.extracted_data),
        )

        result = consolidate(
            progress.extracted_data,
            source_label=source_label,
            document_label=document_label,
        )
        final = store.save(document_id, progress.to_record(result))
        if not final.ok:
            log.warning("Final cache for %s not saved: %s", document_id, final.error)
        return result


def analyze_document(
    document_id: str,
    output_root: Path,
    *,
    store: CacheStore,
    extractor: Extractor,
    source_label: str = SOURCE_LABEL,
    document_label: str = DOCUMENT_LABEL,
) -> dict[str, Any]:
    """Run ``extract`` over the page images of a converted document."""
    pages = load_page_images(output_root, document_id)
    log.info("Found %s page image(s) for %s", len(pages), document_id)
    return extract(
        document_id,
        pages,
        store=store,
        extractor=extractor,
        source_label=source_label,
        document_label=document_label,
    )

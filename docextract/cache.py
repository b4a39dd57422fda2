"""On-disk extraction cache, one JSON artifact per document.

The cache never raises on I/O: ``load`` and ``save`` return a
:class:`CacheResult` that the caller inspects.  A missing or corrupt artifact
reads as "no record"; a failed write leaves the previous artifact in place.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

from .models import CacheRecord, ExtractionFragment
from .utils import (
    CACHE_FILE_NAME,
    CACHE_VERSION,
    document_dir,
    utc_now_iso,
    write_json_atomic,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheResult:
    """Result of a cache read or write."""

    ok: bool
    record: Optional[CacheRecord] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def record_to_dict(record: CacheRecord) -> dict[str, Any]:
    """Render *record* in the artifact format (camelCase keys)."""
    processed = sorted(set(record.processed_pages))
    return {
        "timestamp": record.timestamp or utc_now_iso(),
        "completed": record.completed,
        "totalPages": record.total_pages,
        "processedPages": processed,
        "extractedData": [fragment.to_dict() for fragment in record.extracted_data],
        "result": record.result if record.completed else None,
        "metadata": {
            "version": CACHE_VERSION,
            "totalExtracted": len(record.extracted_data),
            "progressPercent": record.progress_percent,
        },
    }


def record_from_dict(payload: Any) -> CacheRecord:
    """Parse an artifact payload.

    Raises:
        ValueError: if the payload is not a cache record.
    """
    if not isinstance(payload, dict):
        raise ValueError("cache artifact is not an object")

    total_pages = payload.get("totalPages")
    if not isinstance(total_pages, int) or isinstance(total_pages, bool):
        raise ValueError("cache artifact has no integer totalPages")

    raw_pages = payload.get("processedPages") or []
    if not isinstance(raw_pages, list):
        raise ValueError("processedPages is not a list")
    processed = sorted(
        {p for p in raw_pages if isinstance(p, int) and not isinstance(p, bool)}
    )
    in_range = [p for p in processed if 1 <= p <= total_pages]
    if len(in_range) != len(processed):
        log.warning(
            "Dropping %s processed page(s) outside 1..%s",
            len(processed) - len(in_range),
            total_pages,
        )

    raw_fragments = payload.get("extractedData") or []
    if not isinstance(raw_fragments, list):
        raise ValueError("extractedData is not a list")
    fragments: list[ExtractionFragment] = []
    for item in raw_fragments:
        if (
            isinstance(item, dict)
            and isinstance(item.get("page"), int)
            and isinstance(item.get("data"), dict)
        ):
            fragments.append(ExtractionFragment(page=item["page"], data=item["data"]))
        else:
            log.warning("Dropping malformed cached fragment: %r", item)

    result = payload.get("result")
    completed = bool(payload.get("completed")) and isinstance(result, dict)
    if completed and len(in_range) != total_pages:
        completed = False

    return CacheRecord(
        total_pages=total_pages,
        processed_pages=in_range,
        extracted_data=fragments,
        completed=completed,
        result=result if completed else None,
        timestamp=str(payload.get("timestamp") or ""),
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CacheStore:
    """Filesystem-backed store keyed by document identity."""

    def __init__(self, output_root: Path, file_name: str = CACHE_FILE_NAME) -> None:
        self.output_root = Path(output_root)
        self.file_name = file_name
        self._locks: dict[str, list[Any]] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, document_id: str) -> Path:
        return document_dir(self.output_root, document_id) / self.file_name

    @contextmanager
    def lock(self, document_id: str) -> Iterator[None]:
        """Hold the single-writer lock for *document_id*."""
        with self._locks_guard:
            entry = self._locks.get(document_id)
            if entry is None:
                entry = self._locks[document_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[document_id]

    def read(self, document_id: str) -> CacheResult:
        """Read the artifact without validating it against a page count."""
        path = self.path_for(document_id)
        if not path.exists():
            return CacheResult(ok=True)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
            record = record_from_dict(payload)
        except (OSError, ValueError, RecursionError) as exc:
            log.warning("Unreadable cache %s, ignoring: %s", path, exc)
            return CacheResult(ok=False, error=str(exc))
        return CacheResult(ok=True, record=record)

    def load(self, document_id: str, total_pages: int) -> CacheResult:
        """Load the record for *document_id* if it matches *total_pages*."""
        result = self.read(document_id)
        record = result.record
        if record is None:
            return result
        if record.total_pages != total_pages:
            log.info(
                "Stale cache for %s: %s pages cached, %s pages now; restarting",
                document_id,
                record.total_pages,
                total_pages,
            )
            return CacheResult(ok=True)
        log.debug(
            "Cache for %s: %s/%s pages processed, completed=%s",
            document_id,
            len(record.processed_pages),
            record.total_pages,
            record.completed,
        )
        return result

    def save(self, document_id: str, record: CacheRecord) -> CacheResult:
        """Overwrite the whole record for *document_id*."""
        record.timestamp = utc_now_iso()
        try:
            path = self.path_for(document_id)
            write_json_atomic(path, record_to_dict(record))
        except (OSError, TypeError, ValueError) as exc:
            log.warning("Failed to save cache for %s: %s", document_id, exc)
            return CacheResult(ok=False, record=record, error=str(exc))
        log.debug(
            "Cache saved: %s/%s pages processed",
            len(record.processed_pages),
            record.total_pages,
        )
        return CacheResult(ok=True, record=record)

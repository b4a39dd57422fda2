"""Shared data models for the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class PageImage:
    """One rasterized page (PNG bytes), 1-indexed.

    Pages loaded from a conversion directory carry only ``path``; their bytes
    are read on demand by :meth:`read_bytes`.
    """

    page: int
    data: Optional[bytes] = None
    filename: str = ""
    path: Optional[Path] = None

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Page {self.page} has neither data nor path")
        return self.path.read_bytes()

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return self.path.stat().st_size if self.path is not None else 0


@dataclass(frozen=True)
class ExtractionFragment:
    """Structured data extracted from a single page."""

    page: int
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "data": self.data}


@dataclass(frozen=True)
class PageResult:
    """Outcome of one per-page extraction call.

    ``status`` is one of ``extracted``, ``no_data``, ``empty`` or
    ``unparsable``; only ``extracted`` carries a fragment.
    """

    page: int
    status: str
    fragment: Optional[ExtractionFragment] = None


@dataclass
class CacheRecord:
    """Persisted extraction progress for one document."""

    total_pages: int
    processed_pages: list[int] = field(default_factory=list)
    extracted_data: list[ExtractionFragment] = field(default_factory=list)
    completed: bool = False
    result: Optional[dict[str, Any]] = None
    timestamp: str = ""

    @property
    def progress_percent(self) -> int:
        if self.total_pages <= 0:
            return 0
        return round(len(self.processed_pages) / self.total_pages * 100)


@dataclass
class ConversionRecord:
    """Tracks rasterization results for a single PDF."""

    document_id: str
    original_file: str
    output_dir: str = ""
    images: list[PageImage] = field(default_factory=list)
    conversion_time_s: float = 0.0
    timestamp: str = ""
    status: str = "pending"
    error: Optional[str] = None

    @property
    def total_pages(self) -> int:
        return len(self.images)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "original_file": self.original_file,
            "output_dir": self.output_dir,
            "total_pages": self.total_pages,
            "images": [
                {
                    "page": image.page,
                    "filename": image.filename,
                    "path": str(image.path) if image.path else None,
                    "size": image.size,
                }
                for image in self.images
            ],
            "conversion_time_s": self.conversion_time_s,
            "timestamp": self.timestamp,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class ConversionSummary:
    """Listing row for one conversion directory."""

    document_id: str
    path: str
    created_at: float
    image_files: int = 0
    total_size: int = 0
    has_analysis: bool = False
    analysis: Optional[dict[str, Any]] = None

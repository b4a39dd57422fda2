"""PDF discovery and bookkeeping of conversion directories."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Optional

from .errors import DocumentNotFoundError
from .models import CacheRecord, ConversionSummary, PageImage
from .utils import PAGE_IMAGE_PATTERN, document_dir

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


def discover_pdfs(folder: Path) -> list[Path]:
    """Recursively find all PDF files under *folder*, sorted by name."""
    if not folder.exists():
        return []
    if folder.is_file():
        return [folder] if folder.suffix.lower() == ".pdf" else []
    return sorted(p for p in folder.rglob("*") if p.suffix.lower() == ".pdf")


def _page_image_files(directory: Path) -> list[tuple[int, Path]]:
    pages = []
    for path in directory.iterdir():
        m = PAGE_IMAGE_PATTERN.match(path.name)
        if m and path.is_file():
            pages.append((int(m.group(1)), path))
    return sorted(pages)


def load_page_images(output_root: Path, document_id: str) -> list[PageImage]:
    """List the ``page.<n>.png`` images of a conversion in page order.

    Image bytes are not read here; see :meth:`PageImage.read_bytes`.

    Raises:
        DocumentNotFoundError: if the conversion directory does not exist or
            holds no page images.
    """
    directory = document_dir(output_root, document_id)
    if not directory.is_dir():
        raise DocumentNotFoundError(f"Conversion {document_id} not found")

    files = _page_image_files(directory)
    if not files:
        raise DocumentNotFoundError(f"Conversion {document_id} has no page images")

    numbers = [page for page, _ in files]
    expected = list(range(1, len(files) + 1))
    if numbers != expected:
        log.warning(
            "Conversion %s has non-contiguous pages %s; using file order",
            document_id,
            numbers,
        )

    return [
        PageImage(page=position, filename=path.name, path=path)
        for position, (_, path) in enumerate(files, start=1)
    ]


# ---------------------------------------------------------------------------
# Conversion listing
# ---------------------------------------------------------------------------


def summarize_analysis(record: Optional[CacheRecord]) -> Optional[dict[str, Any]]:
    """Short summary of a completed analysis, or ``None``."""
    if record is None or not record.completed or not record.result:
        return None
    result = record.result
    beneficiario = result.get("beneficiario")
    nome = beneficiario.get("nome") if isinstance(beneficiario, dict) else None
    contratos = result.get("contratos")
    descontos = result.get("descontos_cartao")
    return {
        "total_contratos": len(contratos) if isinstance(contratos, list) else 0,
        "total_descontos_cartao": len(descontos) if isinstance(descontos, list) else 0,
        "beneficiario": nome or "N/A",
        "data_emissao": result.get("data_emissao") or "N/A",
        "fragments": len(record.extracted_data),
    }


def list_conversions(output_root: Path, store: Any = None) -> list[ConversionSummary]:
    """List conversion directories under *output_root*, newest first.

    When *store* (a ``CacheStore``) is given, each row also carries the
    analysis summary of its cache record.
    """
    if not output_root.is_dir():
        return []

    conversions: list[ConversionSummary] = []
    for directory in output_root.iterdir():
        if not directory.is_dir():
            continue
        stat = directory.stat()
        images = _page_image_files(directory)
        summary = ConversionSummary(
            document_id=directory.name,
            path=str(directory),
            created_at=getattr(stat, "st_birthtime", stat.st_mtime),
            image_files=len(images),
            total_size=sum(path.stat().st_size for _, path in images),
        )
        if store is not None:
            try:
                cached = store.read(directory.name).record
            except DocumentNotFoundError:
                log.warning("Skipping analysis for unusable directory name %r", directory.name)
                cached = None
            analysis = summarize_analysis(cached)
            summary.has_analysis = analysis is not None
            summary.analysis = analysis
        conversions.append(summary)

    return sorted(conversions, key=lambda c: c.created_at, reverse=True)


def delete_document(output_root: Path, document_id: str) -> None:
    """Remove a conversion directory with its images and cache."""
    directory = document_dir(output_root, document_id)
    if not directory.is_dir():
        raise DocumentNotFoundError(f"Conversion {document_id} not found")
    shutil.rmtree(directory)
    log.info("Document %s deleted", document_id)

"""Docling page rasterizer and PDF-to-images conversion."""

from __future__ import annotations

import io
import logging
import shutil
import time
import traceback
from pathlib import Path
from typing import Any, Optional

from .errors import PageRenderError
from .models import ConversionRecord, PageImage
from .utils import RENDER_SCALE, new_document_id, page_image_name, utc_now_iso

log = logging.getLogger(__name__)


def create_page_converter(
    *,
    scale: float = RENDER_SCALE,
    num_threads: int = 4,
) -> Any:
    """Build a Docling ``DocumentConverter`` that only renders page images.

    Args:
        scale: Render scale relative to 72 DPI (3.0 is roughly 216 DPI).
        num_threads: Thread count used by Docling accelerator options.
    """
    t0 = time.time()
    log.info("create_page_converter: importing docling modules ...")

    from docling.datamodel.accelerator_options import AcceleratorOptions
    from docling.datamodel.base_models import InputFormat
    from docling.datamodel.pipeline_options import PdfPipelineOptions
    from docling.document_converter import DocumentConverter, PdfFormatOption

    log.info("create_page_converter: imports done in %.2fs", time.time() - t0)

    pipeline_options = PdfPipelineOptions(
        do_ocr=False,
        do_table_structure=False,
        generate_page_images=True,
        images_scale=scale,
        accelerator_options=AcceleratorOptions(num_threads=max(1, num_threads)),
    )
    converter = DocumentConverter(
        format_options={
            InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
        }
    )
    log.info("Docling page converter initialized (scale=%s)", scale)
    return converter


def _to_png(pil_image: Any) -> bytes:
    buf = io.BytesIO()
    pil_image.save(buf, format="PNG")
    return buf.getvalue()


def render_pdf_pages(converter: Any, pdf_path: Path) -> list[PageImage]:
    """Render every page of *pdf_path* to PNG, in page order.

    Raises:
        PageRenderError: if the file is missing, is not a PDF, fails to
            render, or has no pages.  No partial list is ever returned.
    """
    if not pdf_path.is_file():
        raise PageRenderError(f"PDF not found: {pdf_path}")

    t0 = time.time()
    try:
        result = converter.convert(source=str(pdf_path))
        doc_pages = result.document.pages
        images = []
        for position, page_no in enumerate(sorted(doc_pages), start=1):
            page = doc_pages[page_no]
            if page.image is None or page.image.pil_image is None:
                raise PageRenderError(f"Page {page_no} of {pdf_path.name} has no image")
            images.append(
                PageImage(
                    page=position,
                    data=_to_png(page.image.pil_image),
                    filename=page_image_name(position),
                )
            )
    except PageRenderError:
        raise
    except Exception as exc:
        raise PageRenderError(f"Failed to render {pdf_path.name}: {exc}") from exc

    if not images:
        raise PageRenderError(f"{pdf_path.name} produced no pages")

    log.info(
        "render_pdf_pages: %s page(s) from %s in %.2fs",
        len(images),
        pdf_path.name,
        time.time() - t0,
    )
    return images


def convert_pdf_to_images(
    converter: Any, pdf_path: Path, output_dir: Path
) -> list[PageImage]:
    """Render *pdf_path* and write ``page.<n>.png`` files into *output_dir*."""
    images = render_pdf_pages(converter, pdf_path)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for image in images:
        path = output_dir / image.filename
        path.write_bytes(image.data)
        written.append(
            PageImage(page=image.page, data=image.data, filename=image.filename, path=path)
        )
        log.debug("Converted page %s - %s", image.page, image.filename)
    return written


def convert_single_pdf(
    converter: Any,
    pdf_path: Path,
    output_root: Path,
    document_id: Optional[str] = None,
) -> ConversionRecord:
    """Convert one PDF into a new conversion directory.

    Never raises; errors are captured inside the returned record and any
    directory created for the conversion is removed.
    """
    document_id = document_id or new_document_id(pdf_path)
    output_dir = output_root / document_id
    record = ConversionRecord(
        document_id=document_id,
        original_file=pdf_path.name,
        output_dir=str(output_dir),
    )
    log.info("convert_single_pdf: START - %s -> %s", pdf_path.name, document_id)
    existed = output_dir.exists()
    t0 = time.time()

    try:
        record.images = convert_pdf_to_images(converter, pdf_path, output_dir)
        record.status = "success"
        log.info("convert_single_pdf: SUCCESS - pages=%s", record.total_pages)
    except Exception:
        record.status = "error"
        record.error = traceback.format_exc()
        log.error("convert_single_pdf: ERROR - %s", record.error)
        if not existed and output_dir.exists():
            shutil.rmtree(output_dir, ignore_errors=True)
    finally:
        record.conversion_time_s = round(time.time() - t0, 2)
        record.timestamp = utc_now_iso()
        log.info(
            "convert_single_pdf: DONE - %s in %ss",
            pdf_path.name,
            record.conversion_time_s,
        )

    return record

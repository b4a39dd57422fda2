"""CLI entrypoint for the PDF -> page images -> structured JSON pipeline.

Usage:
    python -m docextract convert ./statements/extrato.pdf
    python -m docextract analyze <DOCUMENT_ID>
    python -m docextract run ./statements/extrato.pdf
    python -m docextract list
    python -m docextract delete <DOCUMENT_ID>
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .errors import DocExtractError
from .utils import (
    DEFAULT_MODEL,
    DOCUMENT_LABEL,
    MAX_RESPONSE_TOKENS,
    RENDER_SCALE,
    SOURCE_LABEL,
)

log = logging.getLogger(__name__)


def _setup_logging(
    *,
    verbose: bool,
    detailed_logging: bool,
    output_dir: Path,
    log_file: Path | None,
) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    root_level = logging.DEBUG if verbose else logging.INFO
    root_logger.setLevel(root_level)

    console_fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    detailed_fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "%(threadName)s | %(filename)s:%(lineno)d | %(message)s"
    )
    formatter = logging.Formatter(
        detailed_fmt if detailed_logging else console_fmt,
        "%Y-%m-%d %H:%M:%S",
    )

    # stdout carries JSON results, so logs go to stderr.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(root_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    resolved_log_file = log_file
    if resolved_log_file is None and detailed_logging:
        resolved_log_file = output_dir / "pipeline.log"

    if resolved_log_file is not None:
        resolved_log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            resolved_log_file,
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(detailed_fmt, "%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("docling").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="PDF -> page images -> structured JSON extraction pipeline"
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Root directory for conversions (default: output/)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--detailed-logging",
        action="store_true",
        help="Enable detailed logging (thread, file/line, rotating log file)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=(
            "Optional log file path "
            "(default: <output-dir>/pipeline.log in detailed mode)"
        ),
    )

    render = argparse.ArgumentParser(add_help=False)
    render.add_argument(
        "--scale",
        type=float,
        default=RENDER_SCALE,
        help=f"Page render scale relative to 72 DPI (default: {RENDER_SCALE})",
    )
    render.add_argument(
        "--num-threads",
        type=int,
        default=4,
        help="Docling internal thread count",
    )

    model = argparse.ArgumentParser(add_help=False)
    model.add_argument(
        "--model",
        default=os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
        help=f"Vision model name (default: $OPENAI_MODEL or {DEFAULT_MODEL})",
    )
    model.add_argument(
        "--max-tokens",
        type=int,
        default=MAX_RESPONSE_TOKENS,
        help="Maximum response tokens per page",
    )
    model.add_argument("--source-label", default=SOURCE_LABEL)
    model.add_argument("--document-label", default=DOCUMENT_LABEL)

    sub = parser.add_subparsers(dest="command", required=True)

    p_convert = sub.add_parser(
        "convert", parents=[render], help="Rasterize PDFs into page images"
    )
    p_convert.add_argument("pdfs", nargs="+", type=Path, help="PDF files or folders")

    p_analyze = sub.add_parser(
        "analyze", parents=[model], help="Extract structured data from a conversion"
    )
    p_analyze.add_argument("document_id")

    p_run = sub.add_parser(
        "run", parents=[render, model], help="Convert a PDF and analyze it"
    )
    p_run.add_argument("pdf", type=Path)

    sub.add_parser("list", help="List conversions, newest first")

    p_delete = sub.add_parser("delete", help="Delete a conversion")
    p_delete.add_argument("document_id")

    return parser.parse_args(argv)


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def _build_extractor(args: argparse.Namespace):
    from .extractor import PageExtractor, create_openai_client

    return PageExtractor(
        create_openai_client(),
        model=args.model,
        max_tokens=max(1, args.max_tokens),
    )


def _cmd_convert(args: argparse.Namespace) -> int:
    from tqdm import tqdm

    from .conversion import convert_single_pdf, create_page_converter
    from .sources import discover_pdfs

    pdf_files: list[Path] = []
    for source in args.pdfs:
        pdf_files.extend(discover_pdfs(source))
    log.info("Total PDFs discovered: %s", len(pdf_files))
    if not pdf_files:
        log.warning("No PDFs found. Exiting.")
        return 0

    converter = create_page_converter(
        scale=args.scale, num_threads=max(1, args.num_threads)
    )
    failed = 0
    for pdf_path in tqdm(pdf_files, desc="Converting PDFs"):
        record = convert_single_pdf(converter, pdf_path, args.output_dir)
        if record.status != "success":
            failed += 1
        _emit(record.to_dict())

    log.info("Conversion: %s succeeded, %s failed", len(pdf_files) - failed, failed)
    return 1 if failed else 0


def _cmd_analyze(args: argparse.Namespace) -> int:
    from .cache import CacheStore
    from .orchestrator import analyze_document

    result = analyze_document(
        args.document_id,
        args.output_dir,
        store=CacheStore(args.output_dir),
        extractor=_build_extractor(args),
        source_label=args.source_label,
        document_label=args.document_label,
    )
    _emit(result)
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    from .cache import CacheStore
    from .conversion import convert_single_pdf, create_page_converter
    from .orchestrator import extract

    extractor = _build_extractor(args)
    converter = create_page_converter(
        scale=args.scale, num_threads=max(1, args.num_threads)
    )
    record = convert_single_pdf(converter, args.pdf, args.output_dir)
    # Emitted first so the document id is known even if extraction fails.
    _emit(record.to_dict())
    if record.status != "success":
        return 1

    result = extract(
        record.document_id,
        record.images,
        store=CacheStore(args.output_dir),
        extractor=extractor,
        source_label=args.source_label,
        document_label=args.document_label,
    )
    _emit({"document_id": record.document_id, "analysis": result})
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    from .cache import CacheStore
    from .sources import list_conversions

    conversions = list_conversions(args.output_dir, CacheStore(args.output_dir))
    log.info("Found %s conversions", len(conversions))
    for summary in conversions:
        _emit(
            {
                "document_id": summary.document_id,
                "path": summary.path,
                "created_at": summary.created_at,
                "total_pages": summary.image_files,
                "total_size": summary.total_size,
                "status": "analyzed" if summary.has_analysis else "converted",
                "analysis": summary.analysis,
            }
        )
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    from .sources import delete_document

    delete_document(args.output_dir, args.document_id)
    return 0


COMMANDS = {
    "convert": _cmd_convert,
    "analyze": _cmd_analyze,
    "run": _cmd_run,
    "list": _cmd_list,
    "delete": _cmd_delete,
}


def main(argv: list[str] | None = None) -> int:
    """Run one pipeline command and return its exit code."""
    args = parse_args(argv)
    _setup_logging(
        verbose=args.verbose,
        detailed_logging=args.detailed_logging,
        output_dir=args.output_dir,
        log_file=args.log_file,
    )

    t0 = time.perf_counter()
    try:
        code = COMMANDS[args.command](args)
    except DocExtractError as exc:
        log.error("%s failed: %s", args.command, exc)
        code = 1
    log.info("%s finished in %.1fs (exit=%s)", args.command, time.perf_counter() - t0, code)
    return code

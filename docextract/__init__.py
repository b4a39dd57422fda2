"""PDF -> page images -> structured JSON extraction pipeline.

Public API -- all symbols that tests and external code import live here.
Internally the code is split across focused submodules; this file
re-exports the stable public surface so ``from docextract import X`` works.
"""

from .cache import CacheResult, CacheStore
from .consolidation import consolidate, merge_value
from .conversion import (
    convert_pdf_to_images,
    convert_single_pdf,
    create_page_converter,
    render_pdf_pages,
)
from .errors import (
    ConfigurationError,
    DocExtractError,
    DocumentNotFoundError,
    ModelCallError,
    PageRenderError,
)
from .extractor import (
    PageExtractor,
    clean_model_response,
    create_openai_client,
    parse_model_response,
)
from .models import (
    CacheRecord,
    ConversionRecord,
    ConversionSummary,
    ExtractionFragment,
    PageImage,
    PageResult,
)
from .orchestrator import ExtractionProgress, analyze_document, extract
from .sources import (
    delete_document,
    discover_pdfs,
    list_conversions,
    load_page_images,
)
from .utils import CACHE_FILE_NAME, CACHE_VERSION, DEFAULT_MODEL, RENDER_SCALE

__all__ = [
    # Models
    "PageImage",
    "ExtractionFragment",
    "PageResult",
    "CacheRecord",
    "ConversionRecord",
    "ConversionSummary",
    # Errors
    "DocExtractError",
    "PageRenderError",
    "ModelCallError",
    "ConfigurationError",
    "DocumentNotFoundError",
    # Constants
    "CACHE_FILE_NAME",
    "CACHE_VERSION",
    "DEFAULT_MODEL",
    "RENDER_SCALE",
    # Cache
    "CacheStore",
    "CacheResult",
    # Conversion
    "create_page_converter",
    "render_pdf_pages",
    "convert_pdf_to_images",
    "convert_single_pdf",
    # Extraction
    "create_openai_client",
    "clean_model_response",
    "parse_model_response",
    "PageExtractor",
    # Consolidation
    "consolidate",
    "merge_value",
    # Orchestration
    "ExtractionProgress",
    "extract",
    "analyze_document",
    # Sources
    "discover_pdfs",
    "load_page_images",
    "list_conversions",
    "delete_document",
]

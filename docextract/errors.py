"""Exception hierarchy for the extraction pipeline."""

from __future__ import annotations


class DocExtractError(Exception):
    """Base class for fatal pipeline errors."""


class PageRenderError(DocExtractError):
    """The PDF could not be rasterized into page images."""


class ConfigurationError(DocExtractError):
    """Required runtime configuration (e.g. the API key) is missing."""


class DocumentNotFoundError(DocExtractError):
    """No conversion exists for the requested document identity."""


class ModelCallError(DocExtractError):
    """The model call for a single page failed (network, auth, rate limit)."""

    def __init__(self, page: int, message: str) -> None:
        super().__init__(f"page {page}: {message}")
        self.page = page

"""Cross-cutting helpers: constants, path utilities, JSON I/O."""

from __future__ import annotations

import json
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import DocumentNotFoundError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CACHE_FILE_NAME = "analysis_cache.json"
CACHE_VERSION = "1.0"
DEFAULT_MODEL = "gpt-4o"
MAX_RESPONSE_TOKENS = 4000
RENDER_SCALE = 3.0
SOURCE_LABEL = "INSS"
DOCUMENT_LABEL = "Historico de Emprestimo Consignado"
PAGE_IMAGE_PATTERN = re.compile(r"^page\.(\d+)\.png$")

# Read once at import; os.umask has no query-only form.
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def new_document_id(pdf_path: Path) -> str:
    """Return a fresh document identity ``<uuid4>_<stem>`` for *pdf_path*."""
    return f"{uuid.uuid4()}_{pdf_path.stem}"


def page_image_name(page: int) -> str:
    return f"page.{page}.png"


def document_dir(output_root: Path, document_id: str) -> Path:
    """Return the output directory owned by *document_id*.

    Raises:
        DocumentNotFoundError: if the identity is empty or would escape
            *output_root*.
    """
    document_id = (document_id or "").strip()
    if (
        not document_id
        or document_id in {".", ".."}
        or "/" in document_id
        or "\\" in document_id
    ):
        raise DocumentNotFoundError(f"Invalid document id: {document_id!r}")
    return output_root / document_id


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def write_json_atomic(path: Path, payload: Any) -> Path:
    """Write *payload* as JSON to *path*, replacing the file in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False, default=str)
        os.chmod(tmp_name, FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path

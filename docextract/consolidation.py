"""Merge per-page fragments into one consolidated document."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .models import ExtractionFragment
from .utils import DOCUMENT_LABEL, SOURCE_LABEL

log = logging.getLogger(__name__)


def merge_value(target: dict[str, Any], key: str, value: Any) -> None:
    """Fold one key/value into *target*.

    Lists accumulate across calls; anything else replaces the previous value.
    ``None`` is ignored.
    """
    if value is None:
        return
    if isinstance(value, list):
        existing = target.get(key)
        if not isinstance(existing, list):
            existing = []
            target[key] = existing
        existing.extend(value)
    else:
        target[key] = value


def consolidate(
    fragments: Iterable[ExtractionFragment],
    *,
    source_label: str = SOURCE_LABEL,
    document_label: str = DOCUMENT_LABEL,
    processed_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build the consolidated document from *fragments* in the given order."""
    fragments = list(fragments)
    processed_at = processed_at or datetime.now(timezone.utc)
    log.info("Consolidating %s fragment(s)", len(fragments))

    result: dict[str, Any] = {
        "metadata": {
            "fonte": source_label,
            "documento": document_label,
            "total_paginas": len(fragments),
            "data_processamento": processed_at.isoformat(),
        },
    }
    for fragment in fragments:
        for key, value in fragment.data.items():
            merge_value(result, key, value)
    return result

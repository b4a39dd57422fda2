"""Per-page extraction through an OpenAI vision model."""

from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Optional

import openai

from .errors import ConfigurationError, ModelCallError
from .models import ExtractionFragment, PageResult
from .utils import DEFAULT_MODEL, MAX_RESPONSE_TOKENS

log = logging.getLogger(__name__)

NO_DATA_KEY = "dados"
NO_DATA_VALUE = "nenhum"

SYSTEM_PROMPT = (
    "Você é um extrator de dados especializado. "
    "Retorne APENAS JSON válido, sem texto adicional."
)

EXTRACTION_PROMPT = """Extraia TODOS os dados visíveis desta imagem e retorne APENAS um JSON válido.
Se não houver dados relevantes, retorne {"dados": "nenhum"}.

Formato esperado:
- Dados de beneficiário
- Informações de margem
- Contratos (ativos, suspensos, excluídos)
- Dados de cartão de crédito
- Qualquer outra informação visível

Retorne APENAS JSON sem texto adicional:"""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def create_openai_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> openai.OpenAI:
    """Build an OpenAI client from arguments or ``OPENAI_API_KEY``/``OPENAI_BASE_URL``."""
    api_key = api_key or os.environ.get("OPENAI_API_KEY")
    if not api_key:
        log.warning("OPENAI_API_KEY is not set; extraction is disabled")
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    base_url = base_url or os.environ.get("OPENAI_BASE_URL") or None
    return openai.OpenAI(api_key=api_key, base_url=base_url)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def clean_model_response(content: str) -> str:
    """Strip code fences and surrounding prose from a model response."""
    text = content.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    first = text.find("{")
    last = text.rfind("}")
    if first >= 0 and last > first:
        text = text[first : last + 1]
    return text


def parse_model_response(content: Optional[str]) -> Optional[dict[str, Any]]:
    """Return the JSON object in *content*, or ``None`` if there is none."""
    if not content or not content.strip():
        return None
    try:
        parsed = json.loads(clean_model_response(content))
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def is_no_data(parsed: dict[str, Any]) -> bool:
    return parsed.get(NO_DATA_KEY) == NO_DATA_VALUE


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


def build_messages(image: bytes) -> list[dict[str, Any]]:
    """Chat messages for one page: system instruction + prompt + image."""
    encoded = base64.b64encode(image).decode("ascii")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": EXTRACTION_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:image/png;base64,{encoded}",
                        "detail": "high",
                    },
                },
            ],
        },
    ]


class PageExtractor:
    """Calls the model once per page image and parses its reply."""

    def __init__(
        self,
        client: Any,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = MAX_RESPONSE_TOKENS,
        temperature: float = 0,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _complete(self, image: bytes, page_number: int) -> Optional[str]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(image),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise ModelCallError(page_number, str(exc)) from exc

        if not response.choices:
            return None
        return response.choices[0].message.content

    def extract_page(self, image: bytes, page_number: int) -> PageResult:
        """Extract structured data from one page.

        Args:
            image: PNG bytes of the page.
            page_number: 1-based page number.

        Returns:
            A :class:`PageResult`; only ``status == "extracted"`` carries a
            fragment.

        Raises:
            ModelCallError: if the model call itself fails.
        """
        content = self._complete(image, page_number)
        if not content or not content.strip():
            log.warning("Empty response for page %s", page_number)
            return PageResult(page=page_number, status="empty")

        parsed = parse_model_response(content)
        if parsed is None:
            log.warning(
                "Could not parse response for page %s: %.200r", page_number, content
            )
            return PageResult(page=page_number, status="unparsable")

        if is_no_data(parsed):
            log.debug("No relevant data on page %s", page_number)
            return PageResult(page=page_number, status="no_data")

        log.info("Data extracted from page %s", page_number)
        return PageResult(
            page=page_number,
            status="extracted",
            fragment=ExtractionFragment(page=page_number, data=parsed),
        )

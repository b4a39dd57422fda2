from __future__ import annotations

import base64

import openai
import pytest

from docextract.errors import ConfigurationError, ModelCallError
from docextract.extractor import (
    EXTRACTION_PROMPT,
    PageExtractor,
    build_messages,
    clean_model_response,
    create_openai_client,
    parse_model_response,
)


class TestCleanModelResponse:
    def test_strips_json_fence(self):
        assert clean_model_response('```json\n{"a":1}\n```') == '{"a":1}'

    def test_strips_plain_fence(self):
        assert clean_model_response('```\n{"a": [1, 2]}\n```') == '{"a": [1, 2]}'

    def test_slices_to_outer_braces(self):
        text = 'Here is the data: {"a": {"b": 2}} hope it helps'
        assert clean_model_response(text) == '{"a": {"b": 2}}'

    def test_leaves_text_without_braces(self):
        assert clean_model_response("  nothing here ") == "nothing here"


class TestParseModelResponse:
    def test_fenced_json(self):
        assert parse_model_response('```json\n{"a":1}\n```') == {"a": 1}

    def test_empty(self):
        assert parse_model_response("") is None
        assert parse_model_response("   ") is None
        assert parse_model_response(None) is None

    def test_garbage(self):
        assert parse_model_response("{not json}") is None

    def test_non_object(self):
        assert parse_model_response("[1, 2, 3]") is None

    def test_deeply_nested_reply(self):
        deep = '{"a": ' + "[" * 100_000 + "]" * 100_000 + "}"
        assert parse_model_response(deep) is None


def test_build_messages_embeds_high_detail_png():
    messages = build_messages(b"\x89PNG")
    assert messages[0]["role"] == "system"
    user = messages[1]
    assert user["role"] == "user"
    text, image = user["content"]
    assert text == {"type": "text", "text": EXTRACTION_PROMPT}
    assert image["image_url"]["detail"] == "high"
    encoded = base64.b64encode(b"\x89PNG").decode("ascii")
    assert image["image_url"]["url"] == f"data:image/png;base64,{encoded}"


def test_extract_page_sends_deterministic_json_request(fake_client):
    client = fake_client(['{"beneficiario": {"nome": "X"}}'])
    extractor = PageExtractor(client, model="gpt-test", max_tokens=123)

    result = extractor.extract_page(b"img", 4)

    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["temperature"] == 0
    assert call["max_tokens"] == 123
    assert call["response_format"] == {"type": "json_object"}
    assert result.status == "extracted"
    assert result.fragment.page == 4
    assert result.fragment.data == {"beneficiario": {"nome": "X"}}


@pytest.mark.parametrize(
    "content, status",
    [
        ('{"dados":"nenhum"}', "no_data"),
        ('```json\n{"dados": "nenhum"}\n```', "no_data"),
        ("", "empty"),
        (None, "empty"),
        ("sorry, I cannot read this page", "unparsable"),
    ],
)
def test_extract_page_without_fragment(fake_client, content, status):
    extractor = PageExtractor(fake_client([content]))
    result = extractor.extract_page(b"img", 1)
    assert result.status == status
    assert result.fragment is None


def test_extract_page_keeps_other_dados_values(fake_client):
    extractor = PageExtractor(fake_client(['{"dados": "alguns"}']))
    result = extractor.extract_page(b"img", 2)
    assert result.status == "extracted"
    assert result.fragment.data == {"dados": "alguns"}


def test_extract_page_raises_model_call_error(fake_client):
    extractor = PageExtractor(fake_client([openai.OpenAIError("rate limited")]))
    with pytest.raises(ModelCallError) as excinfo:
        extractor.extract_page(b"img", 3)
    assert excinfo.value.page == 3
    assert isinstance(excinfo.value.__cause__, openai.OpenAIError)


def test_create_openai_client_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        create_openai_client()


def test_create_openai_client_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    client = create_openai_client()
    assert isinstance(client, openai.OpenAI)


def test_extract_page_deeply_nested_reply_is_unparsable(fake_client):
    deep = '{"a": ' + "[" * 100_000 + "]" * 100_000 + "}"
    result = PageExtractor(fake_client([deep])).extract_page(b"img", 1)
    assert result.status == "unparsable"
    assert result.fragment is None

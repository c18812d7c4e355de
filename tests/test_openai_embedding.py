"""Test OpenAI-compatible embedding backend: request format, auth, error mapping."""

import io
import json
import urllib.error
from unittest.mock import patch

import pytest

from taskmem.config import EmbeddingConfig
from taskmem.core.errors import NetworkError, ParseError, UpstreamError
from taskmem.embedding.openai_compat import OpenAICompatibleEmbedding
from tests.helpers import _mock_response


def _make_config(**overrides):
    defaults = {
        "backend": "openai",
        "dimensions": 384,
        "openai_base_url": "http://localhost:11434/",
        "openai_model": "nomic-embed-text",
        "openai_api_key": "",
    }
    defaults.update(overrides)
    return EmbeddingConfig(**defaults)


def _ok(dimensions=384):
    return _mock_response({"data": [{"embedding": [0.1] * dimensions, "index": 0}]})


# ── Request format ────────────────────────────────────────────


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_embed_request_format(mock_urlopen):
    """embed() should POST to /v1/embeddings with model, input and dimensions."""
    mock_urlopen.return_value = _ok()

    result = OpenAICompatibleEmbedding(_make_config()).embed("hello world")

    assert len(result) == 384
    req = mock_urlopen.call_args[0][0]
    assert req.full_url == "http://localhost:11434/v1/embeddings"
    body = json.loads(req.data)
    assert body == {"model": "nomic-embed-text", "input": "hello world", "dimensions": 384}


# ── Auth header ───────────────────────────────────────────────


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_no_auth_header_when_key_empty(mock_urlopen):
    mock_urlopen.return_value = _ok()
    OpenAICompatibleEmbedding(_make_config(openai_api_key="")).embed("test")
    assert mock_urlopen.call_args[0][0].get_header("Authorization") is None


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_auth_header_when_key_set(mock_urlopen):
    mock_urlopen.return_value = _ok()
    OpenAICompatibleEmbedding(_make_config(openai_api_key="sk-test")).embed("test")
    assert mock_urlopen.call_args[0][0].get_header("Authorization") == "Bearer sk-test"


# ── Failures ──────────────────────────────────────────────────


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_http_error_is_upstream_and_not_retried(mock_urlopen):
    mock_urlopen.side_effect = urllib.error.HTTPError(
        "url", 429, "Rate limited", {}, io.BytesIO(b""),
    )
    with pytest.raises(UpstreamError, match="429") as exc:
        OpenAICompatibleEmbedding(_make_config()).embed("test")
    assert exc.value.status == 429
    assert mock_urlopen.call_count == 1


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_unreachable_is_network_error(mock_urlopen):
    mock_urlopen.side_effect = urllib.error.URLError("Connection refused")
    with pytest.raises(NetworkError):
        OpenAICompatibleEmbedding(_make_config()).embed("test")


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_dimension_mismatch(mock_urlopen):
    mock_urlopen.return_value = _ok(dimensions=768)
    with pytest.raises(ParseError, match="768 dimensions, expected 384"):
        OpenAICompatibleEmbedding(_make_config()).embed("test")


@patch("taskmem.embedding.openai_compat.urllib.request.urlopen")
def test_malformed_responses(mock_urlopen):
    engine = OpenAICompatibleEmbedding(_make_config())

    mock_urlopen.return_value = _mock_response(b"not json")
    with pytest.raises(ParseError):
        engine.embed("test")

    mock_urlopen.return_value = _mock_response({"data": []})
    with pytest.raises(ParseError, match="no data"):
        engine.embed("test")

    mock_urlopen.return_value = _mock_response({"data": [{"index": 0}]})
    with pytest.raises(ParseError, match="structure"):
        engine.embed("test")


def test_dimensions_from_config():
    assert OpenAICompatibleEmbedding(_make_config(dimensions=1024)).dimensions == 1024

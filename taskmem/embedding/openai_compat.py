"""Client for servers that implement the OpenAI ``POST /v1/embeddings`` call.

OpenAI itself, Ollama, vLLM and LM Studio all qualify. Requests go out
through urllib, one text per call. A failed call raises straight away
and is not retried.
"""

import json
import logging
import urllib.error
import urllib.request

from taskmem.config import EmbeddingConfig
from taskmem.core.errors import NetworkError, ParseError, UpstreamError
from taskmem.embedding.interface import EmbeddingInterface

logger = logging.getLogger(__name__)

EMBEDDINGS_PATH = "/v1/embeddings"


class OpenAICompatibleEmbedding(EmbeddingInterface):
    """Embeds one text per request. Local servers usually need no key."""

    def __init__(self, config: EmbeddingConfig):
        self.config = config
        self._url = config.openai_base_url.rstrip("/") + EMBEDDINGS_PATH
        logger.info(
            "Embedding model %s via %s, %d dims%s",
            config.openai_model, self._url, config.dimensions,
            "" if config.openai_api_key else " (no key)",
        )

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    def embed(self, text: str) -> list[float]:
        body = {
            "model": self.config.openai_model,
            "input": text,
            "dimensions": self.config.dimensions,
        }
        return self._extract_vector(self._post(body))

    def _post(self, body: dict) -> bytes:
        req = urllib.request.Request(self._url, data=json.dumps(body).encode(), method="POST")
        req.add_header("Content-Type", "application/json")
        if self.config.openai_api_key:
            req.add_header("Authorization", f"Bearer {self.config.openai_api_key}")

        try:
            with urllib.request.urlopen(req, timeout=self.config.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise UpstreamError(f"Embedding service answered {e.code} {e.reason}", status=e.code) from e
        except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
            raise NetworkError(f"Could not reach embedding service at {self._url}: {e}") from e

    def _extract_vector(self, raw: bytes) -> list[float]:
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Embedding service sent non-JSON body: {raw[:200]!r}") from e

        items = decoded.get("data") if isinstance(decoded, dict) else None
        if not items:
            raise ParseError("Embedding service returned no data")

        first = items[0] if isinstance(items[0], dict) else {}
        vector = first.get("embedding")
        if vector is None:
            raise ParseError(f"Embedding item has unexpected structure, keys: {sorted(first)}")

        want = self.config.dimensions
        if len(vector) != want:
            raise ParseError(f"Embedding has {len(vector)} dimensions, expected {want}")
        return vector

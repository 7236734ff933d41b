"""
Client for an OpenAI-compatible embeddings endpoint.

One request per batch of texts; vectors come back in input order.
"""
import logging
from typing import Sequence

import httpx
import numpy as np

from .config import Settings

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns fingerprints into vectors with a single batched call."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.client = None
        self._transport = transport

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self.settings.embedding_api_key}"},
            timeout=self.settings.http_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
        return False

    async def embed(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed texts in one request.

        Returns an array of shape (len(texts), dim). Any failure, or a response
        that does not carry exactly one vector per text, yields an empty
        (0, 0) array.
        """
        if not texts:
            return np.empty((0, 0))
        if not self.client:
            raise RuntimeError("EmbeddingClient must be used as an async context manager")

        payload = {"model": self.settings.embedding_model, "input": list(texts)}
        try:
            resp = await self.client.post(self.settings.embedding_url, json=payload)
        except httpx.HTTPError as exc:
            logger.error(f"Embedding request failed: {type(exc).__name__}: {exc}")
            return np.empty((0, 0))

        if not resp.is_success:
            logger.error(f"Embedding request returned HTTP {resp.status_code}")
            return np.empty((0, 0))

        try:
            data = resp.json().get("data") or []
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            vectors = np.asarray([item["embedding"] for item in ordered], dtype=float)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error(f"Malformed embedding response: {exc}")
            return np.empty((0, 0))

        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            logger.error(f"Expected {len(texts)} embeddings, got shape {vectors.shape}")
            return np.empty((0, 0))

        logger.debug(f"Embedded {len(texts)} texts (dim {vectors.shape[1]})")
        return vectors

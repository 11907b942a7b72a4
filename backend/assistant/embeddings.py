from __future__ import annotations
import asyncio
from typing import List, Optional, Protocol, Sequence

import httpx
import numpy as np

from .config import Settings, check_base_url
from .errors import EmbeddingError
from .logger import get_logger

logger = get_logger(__name__)


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]: ...

    async def aclose(self) -> None: ...


class OllamaEmbedder:
    """Remote embeddings from an Ollama compatible /api/embeddings endpoint"""

    def __init__(self, base_url: str, model: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = check_base_url(base_url, "LLM base URL")
        self.model = model
        self.dimension: Optional[int] = None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")
        preview = text if len(text) <= 50 else text[:50] + "..."
        logger.debug("Generating embedding for text: %s", preview)
        try:
            resp = await self._client.post("/api/embeddings", json={"model": self.model, "prompt": text.strip()})
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        if resp.status_code >= 400:
            logger.error("Embedding generation failed: %s - %s", resp.status_code, resp.text)
            raise EmbeddingError(f"Failed to generate embedding: {resp.status_code}", status_code=resp.status_code)
        try:
            vector = [float(x) for x in resp.json()["embedding"]]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingError("No embedding found in response") from e
        if not vector:
            raise EmbeddingError("Empty embedding in response")
        self.dimension = len(vector)
        logger.debug("Generated embedding with %d dimensions", len(vector))
        return vector

    async def aclose(self) -> None:
        await self._client.aclose()


class SentenceTransformerEmbedder:
    """Local encoder for running without an embedding server

    The model has to produce vectors of the collection's size (768 for the default)
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        # Heavy import, only paid when this backend is selected
        from sentence_transformers import SentenceTransformer
        self.model = SentenceTransformer(model_name)
        self.dimension = self.model.get_sentence_embedding_dimension()

    def encode_text(self, texts: List[str]) -> np.ndarray:
        embs = self.model.encode(texts, normalize_embeddings=True, convert_to_numpy=True)
        return embs.astype("float32")

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")
        # encode is CPU bound so keep it off the event loop
        try:
            embs = await asyncio.to_thread(self.encode_text, [text.strip()])
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return embs[0].tolist()

    async def aclose(self) -> None:
        return None


async def embed_many(embedder: Embedder, texts: Sequence[str], concurrency: int = 3) -> List[Optional[List[float]]]:
    """Embed texts in parallel, one failure only costs that item

    Output lines up with the input. A failed item is None
    """
    sem = asyncio.Semaphore(max(1, concurrency))

    async def one(i: int, text: str) -> Optional[List[float]]:
        async with sem:
            try:
                return await embedder.embed(text)
            except EmbeddingError as e:
                logger.warning("Embedding failed for item %d: %s", i, e)
                return None

    return list(await asyncio.gather(*(one(i, t) for i, t in enumerate(texts))))


def build_embedder(settings: Settings) -> Embedder:
    if settings.EMBEDDING_BACKEND == "sentence-transformers":
        return SentenceTransformerEmbedder(settings.LOCAL_EMBEDDING_MODEL)
    return OllamaEmbedder(settings.LLM_BASE_URL, settings.EMBEDDING_MODEL, timeout=settings.LLM_TIMEOUT)

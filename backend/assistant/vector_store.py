"""Thin async wrapper around Qdrant

The rest of the backend only talks to collections through this class
Anything that goes wrong on the wire comes back as a TransportError
"""

from __future__ import annotations
import math
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field
from qdrant_client import AsyncQdrantClient, models

from .config import check_base_url
from .errors import ConfigurationError, TransportError
from .logger import get_logger

logger = get_logger(__name__)

PointId = Union[int, str]

_METRICS = {
    "cosine": models.Distance.COSINE,
    "dot": models.Distance.DOT,
    "euclid": models.Distance.EUCLID,
}


def client_timeout(timeout: float) -> int:
    # The client takes whole seconds, round up so 0.5 does not become 0
    return max(1, math.ceil(timeout))


class StoredPoint(BaseModel):
    # What comes back from scroll (score unset) or search (score set)
    id: PointId
    payload: Dict[str, Any] = Field(default_factory=dict)
    score: Optional[float] = None


class PointInput(BaseModel):
    id: PointId
    vector: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)


class VectorStore:
    def __init__(self, client: AsyncQdrantClient, location: str):
        self.client = client
        self.location = location

    @classmethod
    def from_url(cls, url: str, timeout: float = 30.0) -> "VectorStore":
        # A bad connection string fails here, not on the first query
        url = check_base_url(url, "Qdrant connection string")
        try:
            client = AsyncQdrantClient(url=url, timeout=client_timeout(timeout))
        except Exception as e:
            raise ConfigurationError(f"Could not create Qdrant client for {url}: {e}") from e
        logger.info("Qdrant client created for %s (timeout=%ss)", url, timeout)
        return cls(client, url)

    @classmethod
    def in_memory(cls) -> "VectorStore":
        return cls(AsyncQdrantClient(location=":memory:"), ":memory:")

    async def list_collections(self) -> List[str]:
        try:
            resp = await self.client.get_collections()
        except Exception as e:
            raise TransportError(f"list collections failed: {e}") from e
        return [c.name for c in resp.collections]

    async def create_collection(self, name: str, dim: int, metric: str = "cosine") -> None:
        if metric not in _METRICS:
            raise ValueError(f"Unknown distance metric: {metric}")
        try:
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=dim, distance=_METRICS[metric]),
            )
        except Exception as e:
            raise TransportError(f"create collection {name} failed: {e}") from e
        logger.info("Created collection %s with %dD vectors (%s)", name, dim, metric)

    async def ensure_collection(self, name: str, dim: int, metric: str = "cosine") -> bool:
        """Create the collection unless it is already there

        Returns True when the collection exists afterwards
        """
        try:
            if name in await self.list_collections():
                logger.info("Collection %s already exists", name)
                return True
            await self.create_collection(name, dim, metric)
            return True
        except TransportError:
            logger.exception("Failed to create collection %s", name)
            return False

    async def delete_collection(self, name: str) -> None:
        try:
            await self.client.delete_collection(collection_name=name)
        except Exception as e:
            raise TransportError(f"delete collection {name} failed: {e}") from e
        logger.info("Deleted collection %s", name)

    async def delete_all(self) -> List[str]:
        # One collection failing to drop does not stop the others
        deleted: List[str] = []
        for name in await self.list_collections():
            try:
                await self.delete_collection(name)
                deleted.append(name)
            except TransportError:
                logger.exception("Failed to delete collection %s", name)
        return deleted

    async def upsert(self, name: str, points: Sequence[PointInput]) -> None:
        if not points:
            return
        structs = [models.PointStruct(id=p.id, vector=p.vector, payload=p.payload) for p in points]
        try:
            await self.client.upsert(collection_name=name, points=structs, wait=True)
        except Exception as e:
            raise TransportError(f"upsert into {name} failed: {e}") from e

    async def scroll(self, name: str, limit: int) -> List[StoredPoint]:
        # One bounded page. Callers that need more than `limit` points do not get them
        try:
            records, _next = await self.client.scroll(
                collection_name=name, limit=limit, with_payload=True, with_vectors=False
            )
        except Exception as e:
            raise TransportError(f"scroll {name} failed: {e}") from e
        return [StoredPoint(id=r.id, payload=r.payload or {}) for r in records]

    async def search(
        self,
        name: str,
        vector: Sequence[float],
        limit: int = 10,
        score_threshold: Optional[float] = None,
    ) -> List[StoredPoint]:
        try:
            resp = await self.client.query_points(
                collection_name=name,
                query=list(vector),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as e:
            raise TransportError(f"search {name} failed: {e}") from e
        return [StoredPoint(id=p.id, payload=p.payload or {}, score=p.score) for p in resp.points]

    async def test_connection(self) -> bool:
        try:
            collections = await self.list_collections()
        except TransportError:
            logger.exception("Connection to Qdrant at %s failed", self.location)
            return False
        logger.info("Connected to Qdrant at %s, %d collections", self.location, len(collections))
        return True

    async def describe(self) -> str:
        try:
            collections = await self.list_collections()
        except TransportError as e:
            logger.error("Failed to get Qdrant info: %s", e)
            return "Failed to connect to the vector store."
        names = ", ".join(collections) or "none"
        return f"Connected to Qdrant at {self.location}. Found {len(collections)} collections: {names}"

    async def close(self) -> None:
        await self.client.close()

"""Loading the product catalog into the vector store

SeedMode.EMBEDDINGS is the normal path: every product is embedded for real
SeedMode.SYNTHETIC writes deterministic random unit vectors instead. It exists
for tests and for bringing the store up without an embedding server, and it
has to be asked for by name
"""

from __future__ import annotations
from enum import Enum
from typing import List, Optional

import numpy as np
from pydantic import BaseModel

from .embeddings import Embedder, embed_many
from .logger import get_logger
from .models import Product
from .vector_store import PointInput, VectorStore

logger = get_logger(__name__)


class SeedMode(str, Enum):
    EMBEDDINGS = "embeddings"
    SYNTHETIC = "synthetic"


class SeedReport(BaseModel):
    collection: str
    mode: SeedMode
    inserted: int = 0
    failed: int = 0
    skipped: bool = False


def synthetic_vector(product_id: int, dim: int) -> List[float]:
    # Same id always gives the same vector
    rng = np.random.default_rng(product_id)
    v = rng.standard_normal(dim).astype("float32")
    return (v / (np.linalg.norm(v) + 1e-12)).tolist()


async def _vectors_for(products: List[Product], mode: SeedMode, dim: int, embedder: Optional[Embedder], concurrency: int) -> List[Optional[List[float]]]:
    if mode == SeedMode.SYNTHETIC:
        return [synthetic_vector(p.id, dim) for p in products]
    if embedder is None:
        raise ValueError("SeedMode.EMBEDDINGS needs an embedder")
    return await embed_many(embedder, [p.searchable_text() for p in products], concurrency=concurrency)


async def seed_catalog(
    store: VectorStore,
    products: List[Product],
    embedder: Optional[Embedder] = None,
    mode: SeedMode = SeedMode.EMBEDDINGS,
    collection: str = "products",
    dim: int = 768,
    batch_size: int = 3,
) -> SeedReport:
    """Upsert the products, a batch at a time

    Does nothing when the collection already holds data. A product whose
    embedding fails is counted and left out, the rest still go in
    """
    report = SeedReport(collection=collection, mode=mode)
    if await store.scroll(collection, limit=1):
        logger.info("Product data already exists in %s, skipping seed", collection)
        report.skipped = True
        return report

    for start in range(0, len(products), batch_size):
        batch = products[start:start + batch_size]
        vectors = await _vectors_for(batch, mode, dim, embedder, concurrency=batch_size)
        points: List[PointInput] = []
        for product, vector in zip(batch, vectors):
            if vector is None:
                logger.warning("Failed to generate embedding for product %s", product.name)
                report.failed += 1
                continue
            if len(vector) != dim:
                logger.warning("Embedding for %s has %d dimensions, collection expects %d", product.name, len(vector), dim)
                report.failed += 1
                continue
            points.append(PointInput(id=product.id, vector=vector, payload=product.payload()))
        if points:
            await store.upsert(collection, points)
            report.inserted += len(points)
            logger.info("Inserted batch of %d products into %s", len(points), collection)

    logger.info("Seeded %s (%s): %d inserted, %d failed", collection, mode.value, report.inserted, report.failed)
    return report


async def initialize_collections(
    store: VectorStore,
    products: List[Product],
    embedder: Optional[Embedder],
    mode: SeedMode,
    products_collection: str,
    documents_collection: str,
    dim: int,
) -> Optional[SeedReport]:
    """Create both collections and seed products. None when a collection could not be created"""
    created = [
        await store.ensure_collection(products_collection, dim),
        await store.ensure_collection(documents_collection, dim),
    ]
    if not all(created):
        return None
    return await seed_catalog(store, products, embedder, mode=mode, collection=products_collection, dim=dim)

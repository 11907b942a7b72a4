from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd

from .errors import TransportError
from .logger import get_logger
from .models import Product, ProductMatch, ProductStats, QueryFilter
from .vector_store import StoredPoint, VectorStore

logger = get_logger(__name__)

COLUMNS = ["id", "name", "price", "category", "description"]


def products_frame(products: List[Product]) -> pd.DataFrame:
    # Catalog as a dataframe so filters read like column expressions
    df = pd.DataFrame([p.model_dump() for p in products], columns=COLUMNS)
    df["price"] = df["price"].astype(float)
    for col in ["name", "category", "description"]:
        df[col] = df[col].astype(str)
    return df


def frame_to_products(df: pd.DataFrame) -> List[Product]:
    return [
        Product(
            id=int(r["id"]),
            name=str(r["name"]),
            price=float(r["price"]),
            category=str(r["category"]),
            description=str(r["description"]),
        )
        for r in df.to_dict("records")
    ]


def apply_filters(df: pd.DataFrame, f: QueryFilter) -> pd.DataFrame:
    # Every field that is set has to hold. An empty filter keeps everything
    out = df
    if f.min_price is not None:
        out = out[out["price"] >= float(f.min_price)]
    if f.max_price is not None:
        out = out[out["price"] <= float(f.max_price)]
    if f.category:
        out = out[out["category"].str.contains(f.category, case=False, na=False, regex=False)]
    if f.keywords:
        # Any keyword in the name or the description is enough
        hit = pd.Series(False, index=out.index)
        for k in f.keywords:
            hit |= out["name"].str.contains(k, case=False, na=False, regex=False)
            hit |= out["description"].str.contains(k, case=False, na=False, regex=False)
        out = out[hit]
    return out


def rank_by_price(df: pd.DataFrame) -> pd.DataFrame:
    """Cheapest first

    Stand in for relevance until the candidates get reranked by embedding similarity
    """
    if len(df) <= 1:
        return df
    return df.sort_values("price", kind="stable")


def compute_stats(products: List[Product]) -> ProductStats:
    if not products:
        return ProductStats()
    df = products_frame(products)
    # sort=False keeps categories in the order they first show up
    counts = df.groupby("category", sort=False).size()
    return ProductStats(
        total_count=len(df),
        categories={str(k): int(v) for k, v in counts.items()},
        min_price=float(df["price"].min()),
        max_price=float(df["price"].max()),
        avg_price=float(df["price"].mean()),
    )


def point_to_product(point: StoredPoint) -> Optional[Product]:
    p = point.payload
    try:
        return Product(
            id=int(point.id),
            name=str(p["name"]),
            price=float(p["price"]),
            category=str(p["category"]),
            description=str(p.get("description", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Skipping point %s with unusable payload: %s", point.id, e)
        return None


def load_catalog(path: Union[str, Path]) -> List[Product]:
    """Read the seed catalog CSV"""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(str(path))
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = [c for c in COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Catalog {path} is missing columns: {', '.join(missing)}")
    df["id"] = pd.to_numeric(df["id"], errors="raise").astype(int)
    df["price"] = pd.to_numeric(df["price"], errors="coerce").fillna(0.0).astype(float)
    return frame_to_products(df)


class CatalogRetriever:
    """Reads the products collection and narrows it down for one query

    fetch_all reads a single scroll page of `scroll_limit` points and never
    paginates, so a catalog bigger than that is only partly visible
    """

    def __init__(self, store: VectorStore, collection: str = "products", scroll_limit: int = 100):
        self.store = store
        self.collection = collection
        self.scroll_limit = scroll_limit

    async def fetch_all(self) -> List[Product]:
        # Missing collection or a dead store both read as an empty catalog
        try:
            if self.collection not in await self.store.list_collections():
                return []
            points = await self.store.scroll(self.collection, limit=self.scroll_limit)
        except TransportError:
            logger.exception("Error retrieving all products")
            return []
        products = [point_to_product(pt) for pt in points]
        return [p for p in products if p is not None]

    async def has_products(self) -> bool:
        # Raises TransportError, callers decide what unreachable means
        if self.collection not in await self.store.list_collections():
            logger.warning("Products collection %s missing", self.collection)
            return False
        if not await self.store.scroll(self.collection, limit=1):
            logger.warning("Products collection %s is empty", self.collection)
            return False
        return True

    def filter_products(self, products: List[Product], query_filter: QueryFilter) -> List[Product]:
        df = apply_filters(products_frame(products), query_filter)
        return frame_to_products(rank_by_price(df))

    async def retrieve(self, query_filter: QueryFilter) -> Tuple[List[Product], List[Product]]:
        """Return (everything, filtered and ranked)"""
        all_products = await self.fetch_all()
        if not all_products:
            return [], []
        return all_products, self.filter_products(all_products, query_filter)

    async def semantic_search(self, vector: List[float], limit: int = 10, score_threshold: Optional[float] = None) -> List[ProductMatch]:
        points = await self.store.search(self.collection, vector, limit=limit, score_threshold=score_threshold)
        out: List[ProductMatch] = []
        for pt in points:
            product = point_to_product(pt)
            if product is not None:
                out.append(ProductMatch(product=product, score=float(pt.score or 0.0)))
        return out

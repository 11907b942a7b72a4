"""Retrieval pipeline for one chat message

parse -> retrieve -> rank -> stats -> assemble, always in that order
Every question goes through it. There is no shortcut that answers without the catalog
"""

from __future__ import annotations

from .context import EMPTY_CATALOG_TEXT, build_context_text
from .errors import TransportError
from .logger import get_logger
from .models import RagContext, RagContextBuilder
from .parsing import parse_query_filter
from .tools import CatalogRetriever, compute_stats

logger = get_logger(__name__)

UNAVAILABLE_TEXT = "I apologize, but I cannot access the product database right now."


class RagService:
    def __init__(self, retriever: CatalogRetriever):
        self.retriever = retriever

    async def get_relevant_context(self, query: str) -> RagContext:
        builder = RagContextBuilder(query)
        try:
            logger.info("Processing RAG query: %s", query)
            query_filter = parse_query_filter(query)
            builder.with_filter(query_filter)

            all_products, ranked = await self.retriever.retrieve(query_filter)
            if not all_products:
                return builder.with_text(EMPTY_CATALOG_TEXT).build()

            stats = compute_stats(all_products)
            filtered_stats = compute_stats(ranked)
            builder.with_products(ranked).with_stats(stats, filtered_stats)
            builder.with_text(build_context_text(query_filter, ranked, stats, filtered_stats))
            logger.info("RAG query matched %d of %d products", filtered_stats.total_count, stats.total_count)
            return builder.build()
        except Exception as e:
            logger.exception("Error processing RAG query: %s", query)
            return builder.with_text(UNAVAILABLE_TEXT).with_error(str(e)).build()

    async def is_ready(self) -> bool:
        """True only when the products collection exists and holds at least one point"""
        try:
            ready = await self.retriever.has_products()
        except TransportError:
            logger.exception("Error checking RAG readiness")
            return False
        if ready:
            logger.info("RAG is ready with product data")
        return ready

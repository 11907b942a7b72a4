"""Turns retrieved products into the text block the model answers from

The block is the only place the model is allowed to take product facts from,
so sections are always written in the same order and an empty match is spelled out
"""

from __future__ import annotations
from typing import List

from .models import Product, ProductStats, QueryFilter

MAX_MATCHING = 8
MAX_FEATURED = 5

EMPTY_CATALOG_TEXT = "No products are currently available in our catalog."
NO_MATCHES_HEADER = "=== NO MATCHING PRODUCTS ==="


def _money(value: float) -> str:
    return f"${value:.2f}"


def _bound(value: float) -> str:
    # Whole dollar bounds print without decimals: Under $300
    return f"${int(value)}" if float(value).is_integer() else _money(value)


def format_product(product: Product) -> List[str]:
    return [
        f"• {product.name} - {_money(product.price)} ({product.category})",
        f"  Description: {product.description}",
        "",
    ]


def build_context_text(
    query_filter: QueryFilter,
    products: List[Product],
    stats: ProductStats,
    filtered_stats: ProductStats,
) -> str:
    if stats.total_count == 0:
        return EMPTY_CATALOG_TEXT

    lines: List[str] = [
        "=== STORE CATALOG INFORMATION ===",
        f"Total Products in Store: {stats.total_count}",
        f"All Categories: {', '.join(stats.categories.keys())}",
        "",
    ]

    if not query_filter.is_empty:
        lines.append("=== FILTERED RESULTS FOR YOUR QUERY ===")
        lines.append(f"Matching Products Found: {filtered_stats.total_count}")
        if query_filter.max_price is not None:
            lines.append(f"Price Filter: Under {_bound(query_filter.max_price)}")
        if query_filter.min_price is not None:
            lines.append(f"Price Filter: Over {_bound(query_filter.min_price)}")
        if query_filter.category:
            lines.append(f"Category Filter: {query_filter.category}")
        if query_filter.keywords:
            lines.append(f"Keyword Filter: {', '.join(query_filter.keywords)}")
        lines.append("")

        if products:
            lines.append("=== MATCHING PRODUCTS ===")
            for product in products[:MAX_MATCHING]:
                lines.extend(format_product(product))
        else:
            lines.append(NO_MATCHES_HEADER)
            lines.append("No products match your specific criteria.")
            lines.append("")
    else:
        lines.append("=== CATEGORY BREAKDOWN ===")
        # Most stocked first, ties alphabetical
        for category, count in sorted(stats.categories.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"{category}: {count} products")
        lines.append("")

        if products:
            lines.append("=== FEATURED PRODUCTS ===")
            for product in products[:MAX_FEATURED]:
                lines.extend(format_product(product))

    return "\n".join(lines) + "\n"

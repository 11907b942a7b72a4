"""Rule based parsing of a shopper's question

Pulls price bounds, a category and product name hints out of free text
This is best effort pattern matching and not a grammar. A missed phrasing just leaves the field unset
Ranges like between 50 and 200 are not read, only one bound per direction
"""

from __future__ import annotations
import re
from typing import List, Optional, Tuple
from .models import QueryFilter

# Amounts may carry thousands separators and cents: $1,000 or $249.99
AMOUNT = r"\s*\$?(\d[\d,]*(?:\.\d+)?)"

# Priority order matters: the first pattern that matches wins for its direction
MAX_PRICE_PATTERNS = [
    re.compile(r"under" + AMOUNT),      # under $500, under 500
    re.compile(r"below" + AMOUNT),      # below $500
    re.compile(r"less than" + AMOUNT),  # less than $500
    re.compile(r"<" + AMOUNT),          # < $500
]

MIN_PRICE_PATTERNS = [
    re.compile(r"over" + AMOUNT),
    re.compile(r"above" + AMOUNT),
    re.compile(r"more than" + AMOUNT),
    re.compile(r">" + AMOUNT),
]

KNOWN_CATEGORIES = ["electronics", "footwear", "clothing"]

PRODUCT_KEYWORDS = ["iphone", "macbook", "airpods", "nike", "adidas", "samsung", "sony"]


def _first_bound(patterns: List[re.Pattern], text: str) -> Optional[float]:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return float(m.group(1).replace(",", ""))
    return None


def _parse_price(text: str) -> Tuple[Optional[float], Optional[float]]:
    """Return (min_price, max_price) from lowercased text

    No check that min <= max. A contradictory pair simply filters to nothing
    """
    return _first_bound(MIN_PRICE_PATTERNS, text), _first_bound(MAX_PRICE_PATTERNS, text)


def _parse_category(text: str) -> Optional[str]:
    for category in KNOWN_CATEGORIES:
        if category in text:
            return category
    return None


def _parse_keywords(text: str) -> Tuple[str, ...]:
    # Unlike category every hit is kept
    return tuple(k for k in PRODUCT_KEYWORDS if k in text)


def parse_query_filter(text: str) -> QueryFilter:
    """Return a QueryFilter using only rules and simple matching"""
    t = (text or "").lower()
    price_min, price_max = _parse_price(t)
    return QueryFilter(
        min_price=price_min,
        max_price=price_max,
        category=_parse_category(t),
        keywords=_parse_keywords(t),
    )

"""Keyword and SKU-prefix category suggestions for uncategorised products."""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from cataleon.models import Product

# (category, priority, patterns). Higher priority is tried first; ties keep
# table order.
CATEGORY_PATTERNS: list[tuple[str, int, list[str]]] = [
    ("Ladies Rings", 10, [r"\bCLR\d+", r"ladies?\s*rings?", r"women'?s?\s*rings?", r"female\s*rings?"]),
    ("Gents Rings", 10, [r"\bCGR\d+", r"gents?\s*rings?", r"men'?s?\s*rings?", r"male\s*rings?"]),
    ("Rings", 5, [r"\brings?\b", r"\bband\b", r"\bwedding\s*band"]),
    ("Ladies Bangles", 10, [r"\bCLB\d+", r"ladies?\s*bangles?", r"women'?s?\s*bangles?", r"kadas?"]),
    ("Gents Bangles", 10, [r"\bCGB\d+", r"gents?\s*bangles?", r"men'?s?\s*bangles?"]),
    ("Bangles", 5, [r"\bbangles?\b", r"\bbracelets?\b"]),
    ("Bracelets", 8, [r"\bCBR\d+", r"\bbracelets?\b", r"\bwrist\s*band", r"\bchain\s*bracelet"]),
    ("Necklaces", 9, [r"\bCLN\d+", r"\bnecklaces?\b", r"\bhaar\b", r"\bmangalsutra", r"\bchoker", r"\bcollar\b"]),
    ("Earrings", 9, [r"\bCLE\d+", r"\bearrings?\b", r"\bstuds?\b", r"\bhoops?\b", r"\bdrops?\b", r"\bjhumka", r"\bjhumki"]),
    ("Pendants", 9, [r"\bCLP\d+", r"\bpendants?\b", r"\blockets?\b", r"\bcharm\b"]),
    ("Chains", 9, [r"\bCLC\d+", r"\bchains?\b", r"\bgold\s*chain", r"\bsilver\s*chain"]),
    ("Toe Rings", 9, [r"\btoe\s*rings?", r"\bmetti", r"\bfoot\s*rings?"]),
    ("Nose Pins", 9, [r"\bnose\s*pins?", r"\bnath\b", r"\bbullak"]),
    ("Mangalsutra", 9, [r"\bmangalsutra", r"\bthali"]),
    ("Anklets", 9, [r"\banklets?", r"\bpayal", r"\bpajeb"]),
    ("Sets", 8, [r"\bsets?\b", r"\bcomplete\s*set", r"\bbridal\s*set", r"\bjewel(?:le)?ry\s*set"]),
]

_COMPILED = [
    (category, priority, [re.compile(pattern, re.IGNORECASE) for pattern in patterns])
    for category, priority, patterns in sorted(CATEGORY_PATTERNS, key=lambda entry: -entry[1])
]


@dataclass(frozen=True)
class CategorySuggestion:
    product_id: int
    product_name: str
    current_category: Optional[str]
    suggested_category: str
    confidence: str
    matched_pattern: str


def _confidence(priority: int) -> str:
    if priority >= 10:
        return "high"
    if priority >= 7:
        return "medium"
    return "low"


def suggest_category(product_name: str, sku: Optional[str]) -> Optional[tuple[str, str, str]]:
    """Returns (category, confidence, pattern) for the first matching rule."""
    text = f"{product_name} {sku or ''}"
    for category, priority, patterns in _COMPILED:
        for pattern in patterns:
            if pattern.search(text):
                return category, _confidence(priority), pattern.pattern
    return None


def analyze_catalog(products: list[Product]) -> list[CategorySuggestion]:
    suggestions = []
    for product in products:
        if product.category:
            continue
        match = suggest_category(product.name, product.sku)
        if match is None:
            continue
        category, confidence, pattern = match
        suggestions.append(
            CategorySuggestion(
                product_id=product.id,
                product_name=product.name,
                current_category=product.category,
                suggested_category=category,
                confidence=confidence,
                matched_pattern=pattern,
            )
        )
    return suggestions


def suggestion_stats(suggestions: list[CategorySuggestion]) -> dict:
    return {
        "total": len(suggestions),
        "by_category": dict(Counter(s.suggested_category for s in suggestions)),
        "by_confidence": dict(Counter(s.confidence for s in suggestions)),
    }

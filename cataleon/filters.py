"""In-memory filtering, ordering and paging of a fetched catalog."""

import re
from functools import cmp_to_key
from typing import Any, Callable, Optional

from cataleon.models import FilterState, Product

PAGE_SIZE = 50

_TRAILING_NUMBER = re.compile(r"^(.+?)\s*(\d+)$")

# FilterState field -> Product attribute for the plain equality filters.
EXACT_FIELDS = {
    "metal_type": "metal_type",
    "delivery_type": "delivery_type",
    "gemstone_type": "gemstone_type",
    "color": "color",
    "clarity": "clarity",
    "cut": "cut",
    "diamond_type": "diamond_type",
    "shape": "shape",
    "polish": "polish",
    "symmetry": "symmetry",
    "fluorescence": "fluorescence",
    "lab": "lab",
}


def _norm(value: Any) -> str:
    return str(value or "").strip().upper()


def _parse_bound(raw: str) -> Optional[float]:
    if not raw or not raw.strip():
        return None
    try:
        bound = float(raw)
    except ValueError:
        return None
    return None if bound != bound else bound


def format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def compare_names(a: str, b: str) -> int:
    match_a = _TRAILING_NUMBER.match(a or "")
    match_b = _TRAILING_NUMBER.match(b or "")
    if match_a and match_b and match_a.group(1) == match_b.group(1):
        return int(match_a.group(2)) - int(match_b.group(2))
    left, right = (a or "").casefold(), (b or "").casefold()
    if left != right:
        return -1 if left < right else 1
    return (a > b) - (a < b)


def natural_sort(products: list[Product]) -> list[Product]:
    return sorted(products, key=cmp_to_key(lambda left, right: compare_names(left.name, right.name)))


def diamond_grade(product: Product) -> tuple[str, str]:
    """Colour and clarity, falling back to the legacy 'G VS1' gemstone text."""
    parts = (product.gemstone or "").split()
    color = product.diamond_color or (parts[0] if parts else "")
    clarity = product.diamond_clarity or (parts[1] if len(parts) > 1 else "")
    return color, clarity


def _search_text(product: Product) -> list[str]:
    return [
        text.lower()
        for text in (
            product.name,
            product.category,
            product.sku,
            product.description,
            product.metal_type,
            product.gemstone,
            product.color,
            product.clarity,
            product.diamond_clarity,
            format_number(product.diamond_weight),
            format_number(product.net_weight),
            format_number(product.retail_price),
        )
        if text
    ]


def _within(value: Optional[float], low: Optional[float], high: Optional[float], zero_is_missing: bool) -> bool:
    if low is None and high is None:
        return True
    if value is None or (zero_is_missing and not value):
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def build_predicates(state: FilterState) -> list[Callable[[Product], bool]]:
    predicates: list[Callable[[Product], bool]] = []

    query = state.search_query.strip().lower()
    if query:
        predicates.append(lambda p: any(query in text for text in _search_text(p)))

    category = _norm(state.category)
    if category:
        predicates.append(lambda p: _norm(p.category) == category or category in _norm(p.name))

    for field_name, attribute in EXACT_FIELDS.items():
        wanted = _norm(getattr(state, field_name))
        if wanted:
            predicates.append(lambda p, attribute=attribute, wanted=wanted: _norm(getattr(p, attribute)) == wanted)

    diamond_color = _norm(state.diamond_color)
    if diamond_color:
        predicates.append(lambda p: _norm(diamond_grade(p)[0]) == diamond_color)

    diamond_clarity = _norm(state.diamond_clarity)
    if diamond_clarity:
        predicates.append(lambda p: _norm(diamond_grade(p)[1]) == diamond_clarity)

    ranges = [
        (state.min_price, state.max_price, lambda p: p.retail_price, False),
        (state.min_diamond_weight, state.max_diamond_weight, lambda p: p.diamond_weight, True),
        (state.min_net_weight, state.max_net_weight, lambda p: p.net_weight, True),
        (state.min_carat, state.max_carat, lambda p: p.carat_weight or p.carat, True),
    ]
    for raw_low, raw_high, getter, zero_is_missing in ranges:
        low, high = _parse_bound(raw_low), _parse_bound(raw_high)
        if low is None and high is None:
            continue
        predicates.append(
            lambda p, getter=getter, low=low, high=high, zero=zero_is_missing: _within(getter(p), low, high, zero)
        )

    return predicates


def filter_products(products: list[Product], state: FilterState) -> list[Product]:
    predicates = build_predicates(state)
    return natural_sort([product for product in products if all(check(product) for check in predicates)])


def _distinct(values) -> list[str]:
    return sorted({value for value in values if value})


def filter_options(products: list[Product]) -> dict[str, list[str]]:
    grades = [diamond_grade(product) for product in products]
    return {
        "categories": _distinct(product.category for product in products),
        "metal_types": _distinct(product.metal_type for product in products),
        "diamond_colors": _distinct(color for color, _ in grades),
        "diamond_clarities": _distinct(clarity for _, clarity in grades),
        "delivery_types": _distinct(product.delivery_type for product in products),
        "gemstone_types": _distinct(product.gemstone_type for product in products),
        "shapes": _distinct(product.shape for product in products),
        "cuts": _distinct(product.cut for product in products),
        "labs": _distinct(product.lab for product in products),
    }


def category_counts(products: list[Product]) -> dict[str, int]:
    counts: dict[str, int] = {"all": len(products)}
    for product in products:
        if product.category:
            key = _norm(product.category)
            counts[key] = counts.get(key, 0) + 1
    return counts


def paginate(products: list[Product], display_count: int = PAGE_SIZE) -> tuple[list[Product], bool]:
    return products[:display_count], len(products) > display_count


def next_display_count(display_count: int, page_size: int = PAGE_SIZE) -> int:
    return display_count + page_size


def catalog_totals(products: list[Product], usd_rate: float) -> tuple[float, float]:
    total_inr = sum(float(product.retail_price or 0.0) for product in products)
    total_usd = total_inr / usd_rate if usd_rate else 0.0
    return total_inr, total_usd

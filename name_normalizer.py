"""
Product name normalization and brand / base-name identity extraction.

Two raw product names refer to the same product group iff their normalized
brand AND normalized base name are identical strings.  There is no fuzzy
scoring here: "Coca Cola" and "Coca-Cola Classic" stay distinct groups.

Usage:
    normalize_product_name("The Kroger® French Fries")  # 'kroger french fries'
    extract_product_info("Kroger - French Fries")
    # {'brand': 'Kroger', 'base_name': 'French Fries',
    #  'normalized_brand': 'kroger', 'normalized_base_name': 'french fries'}
"""

from __future__ import annotations

import re

# Brand / name separators, tried in this order.  The first one present
# that leaves a non-empty remainder wins.
SEPARATORS = (" - ", " – ", " : ", ": ", " | ", "|", ",")

_RE_TRADEMARKS = re.compile(r"[®™]")
_RE_QUOTES = re.compile(r"['\"“”‘’]")
_RE_NON_ALNUM = re.compile(r"[^a-z0-9\s-]")
_RE_WHITESPACE = re.compile(r"\s+")
_RE_LEADING_ARTICLE = re.compile(r"^(?:the|a|an)\s+")


def normalize_product_name(name: str | None) -> str:
    """Canonicalize a free-text name for equality comparisons.

    Never raises; None / empty input yields "".
    """
    if not name:
        return ""

    n = name.lower()
    n = _RE_TRADEMARKS.sub("", n)
    n = _RE_QUOTES.sub("", n)
    n = n.replace("&", "and")
    n = _RE_NON_ALNUM.sub("", n)
    n = _RE_WHITESPACE.sub(" ", n).strip()

    # Repeat so "the a x" can't survive one pass and change on the next.
    stripped = _RE_LEADING_ARTICLE.sub("", n)
    while stripped != n:
        n = stripped
        stripped = _RE_LEADING_ARTICLE.sub("", n)

    return n.strip()


def extract_product_info(name: str | None) -> dict[str, str]:
    """Split a raw product name into brand and base name.

    "Kroger - French Fries" → brand "Kroger", base name "French Fries".
    With no usable separator the whole trimmed name is both fields.
    """
    if not name:
        return {"brand": "", "base_name": "", "normalized_brand": "", "normalized_base_name": ""}

    for separator in SEPARATORS:
        if separator not in name:
            continue
        brand_part, rest = name.split(separator, 1)
        base_name = rest.strip()
        if base_name:
            return {
                "brand": brand_part.strip(),
                "base_name": base_name,
                "normalized_brand": normalize_product_name(brand_part),
                "normalized_base_name": normalize_product_name(base_name),
            }

    full = name.strip()
    normalized = normalize_product_name(full)
    return {
        "brand": full,
        "base_name": full,
        "normalized_brand": normalized,
        "normalized_base_name": normalized,
    }


def brands_match(stored_brand: str, new_brand: str) -> bool:
    """Strict equality of two already-normalized brands."""
    return stored_brand == new_brand


def base_names_match(stored_base_name: str, new_base_name: str) -> bool:
    """Strict equality of two already-normalized base names."""
    return stored_base_name == new_base_name

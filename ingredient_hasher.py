"""
Cheap content fingerprint for ingredient lists.

32-bit rolling hash (h = h * 31 + code point, wrapped to 32 bits) of the
trimmed text, rendered as 8 lowercase hex digits.  Deterministic across
platforms and restarts.  NOT collision-free: treat equal hashes as "probably
the same list" and compare the text when identity actually matters.
"""

from __future__ import annotations

_MASK_32 = 0xFFFFFFFF


def hash_ingredients(ingredients_text: str | None) -> str:
    """Return the 8-hex-digit fingerprint of *ingredients_text*."""
    h = 0
    for ch in (ingredients_text or "").strip():
        h = ((h << 5) - h + ord(ch)) & _MASK_32
    return f"{h:08x}"


def same_ingredients(text_a: str | None, hash_a: str | None, text_b: str | None) -> bool:
    """Hash pre-filter followed by an exact comparison of the trimmed text."""
    if hash_a is None or hash_a != hash_ingredients(text_b):
        return False
    return (text_a or "").strip() == (text_b or "").strip()

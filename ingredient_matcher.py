"""
Ingredient matching against the reference set of concern ingredients.

The lookup table maps every lower-cased canonical name AND every lower-cased
alias to its full ConcernIngredient record.  Matching splits the raw label
text on commas and tests each token for SUBSTRING containment of a key:
labels read like "sodium benzoate (preservative)", so token equality would
miss most hits.  Containment also means short aliases can match unrelated
words (e.g. "phos" inside "pyrophosphate"); that behaviour is kept as-is.

Usage:
    matcher = IngredientMatcher()
    matcher.load(DEFAULT_TOXIC_INGREDIENTS)
    matcher.add_custom(load_custom_ingredients(path))
    flags = matcher.match("Potatoes, Monosodium Glutamate, Salt")
"""

from __future__ import annotations

import logging
from typing import Any

from config.ingredients import coerce_custom_entry

logger = logging.getLogger("matcher")

_CONCERN_ORDER = {"Low": 1, "Moderate": 2, "High": 3}

# Minimum concern level kept per strictness setting
STRICTNESS_THRESHOLDS = {
    "lenient": 3,
    "moderate": 2,
    "strict": 1,
}


class IngredientMatcher:
    """Case-insensitive name/alias lookup plus comma-token substring matching."""

    def __init__(self):
        self._lookup: dict[str, dict[str, Any]] = {}
        self.revision = 0

    def __len__(self) -> int:
        return len(self._lookup)

    def load(self, defaults: list[dict[str, Any]]) -> None:
        """Replace the lookup with *defaults* (the bundled reference set)."""
        self._lookup = {}
        for entry in defaults:
            self._index(entry)
        self.revision += 1
        logger.info("Loaded %d reference ingredients (%d lookup keys)", len(defaults), len(self._lookup))

    def add_custom(self, entries: list[Any]) -> int:
        """Merge user entries on top of the loaded set.

        A key collision overwrites the existing record, so a custom entry
        can override a built-in; nothing is ever removed.  Entries added
        with ``concern_level="Low"`` are only reported under ``strict``
        (see filter_by_strictness).  Returns the number of entries merged.
        """
        merged = 0
        for raw in entries:
            entry = coerce_custom_entry(raw)
            if entry is None:
                logger.debug("Skipping blank custom ingredient %r", raw)
                continue
            self._index(entry)
            merged += 1
        if merged:
            self.revision += 1
            logger.info("Merged %d custom ingredients", merged)
        return merged

    def _index(self, entry: dict[str, Any]) -> None:
        self._lookup[entry["name"].lower()] = entry
        for alias in entry.get("aliases") or []:
            if alias:
                self._lookup[alias.lower()] = entry

    def match(self, ingredients_text: str | None) -> list[dict[str, Any]]:
        """Return the reference record matched by each comma token, in order.

        One record at most per token (first hit wins).  The same record can
        appear several times if several tokens hit it (see unique_by_name()).
        """
        if not ingredients_text or not ingredients_text.strip():
            return []

        tokens = [t.strip() for t in ingredients_text.lower().split(",")]
        found: list[dict[str, Any]] = []
        for token in tokens:
            if not token:
                continue
            for key, entry in self._lookup.items():
                if key in token or any(
                    alias.lower() in token for alias in entry.get("aliases") or [] if alias
                ):
                    found.append(entry)
                    break
        return found


# ---------------------------------------------------------------------------
# Presentation helpers (overlay badge / popup list)
# ---------------------------------------------------------------------------


def unique_by_name(flags: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """First occurrence of each ingredient name, order preserved."""
    seen: set[str] = set()
    unique = []
    for flag in flags:
        key = flag["name"].lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(flag)
    return unique


def highest_concern(flags: list[dict[str, Any]]) -> str | None:
    """Highest concern level among *flags* ("High" > "Moderate" > "Low")."""
    best = None
    for flag in flags:
        level = flag.get("concern_level")
        if _CONCERN_ORDER.get(level, 0) > _CONCERN_ORDER.get(best, 0):
            best = level
    return best


def severity_for(flags: list[dict[str, Any]] | None) -> str:
    """Badge severity: "no_data", "none", or the lower-cased top concern."""
    if flags is None:
        return "no_data"
    if not flags:
        return "none"
    return (highest_concern(flags) or "low").lower()


def filter_by_strictness(flags: list[dict[str, Any]], level: str) -> list[dict[str, Any]]:
    """Drop flags below the strictness threshold.

    lenient keeps High only, moderate keeps High and Moderate, strict keeps
    everything.  Low entries, built-in or custom, are therefore hidden
    unless *level* is ``strict``.
    """
    threshold = STRICTNESS_THRESHOLDS.get(level)
    if threshold is None:
        logger.warning("Unknown strictness level %r, using moderate", level)
        threshold = STRICTNESS_THRESHOLDS["moderate"]
    return [f for f in flags if _CONCERN_ORDER.get(f.get("concern_level"), 0) >= threshold]

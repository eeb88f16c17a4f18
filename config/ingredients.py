"""
Bundled reference set of ingredients of health concern.

Every entry has the ConcernIngredient shape used across the project:

    {
        "name": "Sodium Nitrite",          # canonical display string
        "category": "Preservatives",
        "aliases": ["E250", ...],          # matched case-insensitively
        "is_toxic": True,
        "concern_level": "High",           # Low | Moderate | High
        "health_effects": [...],           # ordered
        "sources": [{"title", "publisher", "url", "year"}, ...],
    }

Common allergens ship in the same shape with ``is_toxic=False`` and are only
loaded when ``INCLUDE_ALLERGENS`` is set.  User custom entries (extension
settings) are additive; they can override a built-in by name or alias but
never delete one.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger("ingredients")

CONCERN_LEVELS = ("Low", "Moderate", "High")

DEFAULT_TOXIC_INGREDIENTS: list[dict[str, Any]] = [
    {
        "name": "High Fructose Corn Syrup",
        "category": "Sweeteners",
        "aliases": ["HFCS", "Corn syrup high fructose", "Isoglucose"],
        "is_toxic": True,
        "concern_level": "High",
        "health_effects": [
            "Increased risk of obesity",
            "Potential metabolic syndrome",
            "Insulin resistance",
            "Non-alcoholic fatty liver disease",
        ],
        "sources": [
            {
                "title": "Consumption of High-Fructose Corn Syrup in Beverages May Play a Role in the Epidemic of Obesity",
                "publisher": "American Journal of Clinical Nutrition",
                "url": "https://academic.oup.com/ajcn/article/79/4/537/4690128",
                "year": 2004,
            },
            {
                "title": "Fructose consumption and consequences for glycation, plasma triacylglycerol, and body weight",
                "publisher": "Journal of Nutrition",
                "url": "https://pubmed.ncbi.nlm.nih.gov/19403705/",
                "year": 2009,
            },
        ],
    },
    {
        "name": "Sodium Nitrite",
        "category": "Preservatives",
        "aliases": ["E250", "Nitrous acid sodium salt"],
        "is_toxic": True,
        "concern_level": "High",
        "health_effects": [
            "Formation of carcinogenic nitrosamines",
            "Increased risk of colorectal cancer",
            "Methemoglobinemia risk",
        ],
        "sources": [
            {
                "title": "Processed meat consumption and stomach cancer risk: a meta-analysis",
                "publisher": "Journal of the National Cancer Institute",
                "url": "https://pubmed.ncbi.nlm.nih.gov/16467232/",
                "year": 2006,
            },
        ],
    },
    {
        "name": "BHA (Butylated hydroxyanisole)",
        "category": "Preservatives",
        "aliases": ["E320", "tert-butyl-4-hydroxyanisole"],
        "is_toxic": True,
        "concern_level": "Moderate",
        "health_effects": ["Potential carcinogen", "Endocrine disruption", "Behavioral effects"],
        "sources": [
            {
                "title": "Report on Carcinogens, Fourteenth Edition: Butylated Hydroxyanisole",
                "publisher": "National Toxicology Program",
                "url": "https://ntp.niehs.nih.gov/ntp/roc/content/profiles/butylatedhydroxyanisole.pdf",
                "year": 2016,
            },
        ],
    },
    {
        "name": "Potassium Bromate",
        "category": "Flour Treatment",
        "aliases": ["E924", "Bromic acid, potassium salt"],
        "is_toxic": True,
        "concern_level": "High",
        "health_effects": ["Potential carcinogen", "Kidney damage", "Nervous system damage"],
        "sources": [
            {
                "title": "Toxicology and carcinogenesis studies of potassium bromate",
                "publisher": "National Toxicology Program",
                "url": "https://pubmed.ncbi.nlm.nih.gov/2702717/",
                "year": 1989,
            },
        ],
    },
    {
        "name": "Artificial Food Coloring",
        "category": "Additives",
        "aliases": ["Red 40", "Yellow 5", "Yellow 6", "Blue 1", "Red 3"],
        "is_toxic": True,
        "concern_level": "Moderate",
        "health_effects": ["Hyperactivity in children", "Allergic reactions", "Behavioral changes"],
        "sources": [
            {
                "title": "Food additives and hyperactive behaviour in 3-year-old and 8/9-year-old children",
                "publisher": "The Lancet",
                "url": "https://pubmed.ncbi.nlm.nih.gov/17825405/",
                "year": 2007,
            },
        ],
    },
    {
        "name": "Partially Hydrogenated Oils",
        "category": "Fats",
        "aliases": ["Trans fats", "PHOs"],
        "is_toxic": True,
        "concern_level": "High",
        "health_effects": [
            "Increased LDL cholesterol",
            "Decreased HDL cholesterol",
            "Increased inflammation",
            "Higher risk of heart disease",
        ],
        "sources": [
            {
                "title": "Trans Fatty Acids and Cardiovascular Disease",
                "publisher": "New England Journal of Medicine",
                "url": "https://www.nejm.org/doi/full/10.1056/NEJMra054035",
                "year": 2006,
            },
        ],
    },
    {
        "name": "Monosodium Glutamate",
        "category": "Flavor Enhancers",
        "aliases": ["MSG", "E621"],
        "is_toxic": True,
        "concern_level": "Moderate",
        "health_effects": ["Headaches in sensitive individuals", "Flushing and sweating"],
        "sources": [
            {
                "title": "Questions and Answers on Monosodium glutamate (MSG)",
                "publisher": "U.S. Food and Drug Administration",
                "url": "https://www.fda.gov/food/food-additives-petitions/questions-and-answers-monosodium-glutamate-msg",
                "year": 2012,
            },
        ],
    },
    {
        "name": "Sodium Benzoate",
        "category": "Preservatives",
        "aliases": ["E211"],
        "is_toxic": True,
        "concern_level": "Moderate",
        "health_effects": [
            "Can form benzene with ascorbic acid",
            "Hyperactivity in children",
        ],
        "sources": [
            {
                "title": "Food additives and hyperactive behaviour in 3-year-old and 8/9-year-old children",
                "publisher": "The Lancet",
                "url": "https://pubmed.ncbi.nlm.nih.gov/17825405/",
                "year": 2007,
            },
        ],
    },
]

# Allergens are reference data too, but not "toxic", and the overlay shows
# them only when the user opts in.
COMMON_ALLERGENS: list[dict[str, Any]] = [
    {
        "name": "Milk",
        "category": "Allergens",
        "aliases": ["Dairy", "Casein", "Whey", "Lactose"],
        "is_toxic": False,
        "concern_level": "High",
        "health_effects": ["Common dairy-based ingredients and derivatives (2-3% of adults)"],
        "sources": [],
    },
    {
        "name": "Eggs",
        "category": "Allergens",
        "aliases": ["Albumin", "Globulin", "Ovomucin", "Vitellin"],
        "is_toxic": False,
        "concern_level": "High",
        "health_effects": ["Both egg yolks and whites can cause reactions (1-2% of adults)"],
        "sources": [],
    },
    {
        "name": "Peanuts",
        "category": "Allergens",
        "aliases": ["Arachis oil", "Ground nuts", "Mandelonas"],
        "is_toxic": False,
        "concern_level": "High",
        "health_effects": ["Legume family, separate from tree nuts (1-2% of population)"],
        "sources": [],
    },
    {
        "name": "Tree Nuts",
        "category": "Allergens",
        "aliases": ["Almonds", "Walnuts", "Cashews", "Pistachios", "Brazil nuts", "Macadamia"],
        "is_toxic": False,
        "concern_level": "High",
        "health_effects": ["Various types of tree-grown nuts (0.5-1% of population)"],
        "sources": [],
    },
]


def coerce_custom_entry(entry: str | dict[str, Any]) -> dict[str, Any] | None:
    """Turn a user custom entry into the full ConcernIngredient shape.

    The extension settings historically stored bare strings ("carrageenan");
    newer settings store full records.  Both are accepted.  Returns None for
    blank / nameless entries.
    """
    if isinstance(entry, str):
        name = entry.strip()
        if not name:
            return None
        entry = {"name": name}
    if not isinstance(entry, dict):
        return None

    name = str(entry.get("name") or "").strip()
    if not name:
        return None

    level = entry.get("concern_level") or "Moderate"
    if level not in CONCERN_LEVELS:
        logger.warning("Custom ingredient %r has unknown concern level %r, using Moderate", name, level)
        level = "Moderate"

    return {
        "name": name,
        "category": entry.get("category") or "Custom",
        "aliases": [a.strip() for a in entry.get("aliases") or [] if a and a.strip()],
        "is_toxic": bool(entry.get("is_toxic", True)),
        "concern_level": level,
        "health_effects": list(entry.get("health_effects") or []),
        "sources": list(entry.get("sources") or []),
    }


def load_custom_ingredients(path: str | Path | None) -> list[dict[str, Any]]:
    """Read custom entries from a JSON list file.  Missing path → []."""
    if not path:
        return []
    path = Path(path)
    if not path.exists():
        logger.warning("Custom ingredients file %s not found, skipping", path)
        return []

    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("custom_ingredients", [])

    entries = [e for e in (coerce_custom_entry(r) for r in raw) if e]
    logger.info("Loaded %d custom ingredients from %s", len(entries), path)
    return entries

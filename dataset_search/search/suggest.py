"""
Autocomplete suggestions for variables, publishers and platforms.
"""

import re
from typing import Dict, List, Optional

from ..config.search_config import SUGGEST_CONFIG
from ..ingestion.database import CatalogDatabase

SUGGESTION_KINDS = ("variable", "publisher", "platform")

# d18O / δ18O, Uk'37 / U37K' style paleo proxy names
PALEO_PATTERNS = [
    re.compile(r"(?:δ|d)\s*?18\s*?o", re.IGNORECASE),
    re.compile(r"uk['′’]?\s*37|u37k['′’]?", re.IGNORECASE),
]
PALEO_PHRASES = ("oxygen isotope", "alkenone")


def is_priority(value: str, config: Optional[Dict] = None) -> bool:
    """Oceanographic or paleo proxy names sort ahead of everything else."""
    config = config or SUGGEST_CONFIG
    if any(fragment in value for fragment in config["priority_fragments"]):
        return True
    lowered = value.lower()
    if any(phrase in lowered for phrase in PALEO_PHRASES):
        return True
    return any(pattern.search(value) for pattern in PALEO_PATTERNS)


def suggest_values(
    database: CatalogDatabase,
    kind: str,
    prefix: str = "",
    config: Optional[Dict] = None,
) -> List[str]:
    """
    Up to ``limit`` values of ``kind`` starting with ``prefix``.

    Variables merge the curated list with matching catalog names;
    publishers and platforms come from the catalog, lowercased.

    Raises:
        ValueError: unknown ``kind``
    """
    config = config or SUGGEST_CONFIG

    if kind == "variable":
        catalog = database.variable_names(config["variable_fragments"], config["variable_exclusions"])
        items = list(dict.fromkeys([*config["curated_variables"], *catalog]))
    elif kind == "publisher":
        items = database.publisher_names()
    elif kind == "platform":
        items = database.platform_names()
    else:
        raise ValueError(f"unknown suggestion type {kind!r}; expected one of {', '.join(SUGGESTION_KINDS)}")

    prefix = (prefix or "").strip().lower()
    matches = [item for item in items if item.lower().startswith(prefix)]
    matches.sort(key=lambda item: (not is_priority(item, config), item.lower(), item))
    return matches[:config["limit"]]

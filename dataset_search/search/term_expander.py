"""
Scientific query expansion.

This module:
1. Loads the domain lexicon (concepts, gazetteer, temporal hint patterns) once
2. Expands a raw query into synonyms, related variable names, location
   variants and temporal hints with a confidence score
3. Optionally asks a generative model for more terms when confidence is low
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple
import logging

from ..ai.text_generation import is_not_configured
from ..common.text_utils import split_query_words
from ..config.search_config import EXPANSION_CONFIG

logger = logging.getLogger("search")

ENRICHMENT_PROMPT = """As an oceanographic expert, analyze this search query and provide scientific term expansions:

Query: "{query}"

Return JSON with:
- expanded_terms: broader scientific terms
- variables: likely variable names
- locations: geographic variants
- confidence: 0-1 score

Focus on oceanographic, atmospheric, and climate science terminology."""

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```")


@dataclass(frozen=True)
class Concept:
    name: str
    synonyms: Tuple[str, ...]
    related: Tuple[str, ...]
    units: Tuple[str, ...]
    contexts: Tuple[str, ...]


@dataclass(frozen=True)
class Lexicon:
    """Read-only domain tables shared by every expansion."""

    concepts: Tuple[Concept, ...] = ()
    locations: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    temporal_patterns: Tuple[Tuple[Pattern, str], ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lexicon":
        concepts = tuple(
            Concept(
                name=name.lower(),
                synonyms=tuple(s.lower() for s in spec.get("synonyms", [])),
                related=tuple(spec.get("related", [])),
                units=tuple(spec.get("units", [])),
                contexts=tuple(spec.get("contexts", [])),
            )
            for name, spec in data.get("concepts", {}).items()
        )
        locations = tuple(
            (name.lower(), tuple(variants))
            for name, variants in data.get("locations", {}).items()
        )
        temporal_patterns = tuple(
            (re.compile(item["pattern"]), item["hint"])
            for item in data.get("temporal_patterns", [])
        )
        return cls(concepts=concepts, locations=locations, temporal_patterns=temporal_patterns)

    @classmethod
    def load(cls, config_path: str) -> "Lexicon":
        with open(config_path, "r", encoding="utf-8") as f:
            lexicon = cls.from_dict(json.load(f))
        logger.info(
            f"Loaded lexicon with {len(lexicon.concepts)} concepts and "
            f"{len(lexicon.locations)} locations"
        )
        return lexicon


@dataclass
class ExpandedQuery:
    """Result of expanding one query."""

    original_query: str
    expanded_terms: List[str] = field(default_factory=list)
    synonyms: List[str] = field(default_factory=list)
    location_variants: List[str] = field(default_factory=list)
    suggested_variables: List[str] = field(default_factory=list)
    temporal_hints: List[str] = field(default_factory=list)
    matched_concepts: List[str] = field(default_factory=list)
    confidence: float = 0.5
    enriched: bool = False

    def semantic_text(self, synonyms: Optional[int] = None, variables: Optional[int] = None) -> str:
        """Query text for embedding: original query plus a few synonyms and variables."""
        synonyms = EXPANSION_CONFIG["semantic_synonyms"] if synonyms is None else synonyms
        variables = EXPANSION_CONFIG["semantic_variables"] if variables is None else variables

        extra = [s.replace("_", " ") for s in self.synonyms[:synonyms]]
        extra += [v.replace("_", " ") for v in self.suggested_variables[:variables]]
        return " ".join([self.original_query] + extra).strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalQuery": self.original_query,
            "expandedTerms": self.expanded_terms,
            "scientificSynonyms": self.synonyms,
            "locationVariants": self.location_variants,
            "suggestedVariables": self.suggested_variables,
            "temporalHints": self.temporal_hints,
            "confidenceScore": self.confidence,
        }


class _OrderedSet:
    def __init__(self, items=()):
        self._items: Dict[str, None] = dict.fromkeys(items)

    def add(self, item: str):
        if item:
            self._items.setdefault(item, None)

    def update(self, items):
        for item in items:
            self.add(item)

    def to_list(self) -> List[str]:
        return list(self._items)


class TermExpander:
    """
    Expands free-text queries with domain vocabulary.

    expand_lexicon() is pure and synchronous. expand() adds the optional
    generative enrichment, bounded by a timeout, and never raises.
    """

    def __init__(self, lexicon: Lexicon, generative_client=None, config: Optional[Dict] = None):
        self.lexicon = lexicon
        self.generative_client = generative_client
        self.config = config or EXPANSION_CONFIG

    def _concept_matches(self, concept: Concept, words: List[str]) -> bool:
        min_len = self.config["min_containment_length"]
        for word in words:
            if word == concept.name:
                return True
            for synonym in concept.synonyms:
                if word == synonym:
                    return True
                if len(synonym) >= min_len and synonym in word:
                    return True
                if len(word) >= min_len and word in synonym:
                    return True
        return False

    def expand_lexicon(self, query: Optional[str]) -> ExpandedQuery:
        """Expand ``query`` using only the static lexicon."""
        query = (query or "").strip()
        lowered = query.lower()
        words = split_query_words(query)

        expanded = _OrderedSet([query] if query else [])
        synonyms = _OrderedSet()
        locations = _OrderedSet()
        variables = _OrderedSet()
        hints = _OrderedSet()
        matched: List[str] = []
        confidence = self.config["base_confidence"]

        if not words:
            return ExpandedQuery(original_query=query, confidence=confidence)

        for concept in self.lexicon.concepts:
            if not self._concept_matches(concept, words):
                continue
            matched.append(concept.name)
            confidence += self.config["concept_increment"]
            synonyms.update(concept.synonyms)
            variables.update(concept.related)
            for context in concept.contexts:
                expanded.add(f"{concept.name} {context}")
                expanded.add(f"{context} {concept.name}")

        for location, variants in self.lexicon.locations:
            if re.search(r"\b" + re.escape(location) + r"\b", lowered):
                confidence += self.config["location_increment"]
                locations.update(variants)

        for pattern, hint in self.lexicon.temporal_patterns:
            if pattern.search(lowered):
                hints.add(hint)
                confidence += self.config["temporal_increment"]

        return ExpandedQuery(
            original_query=query,
            expanded_terms=expanded.to_list(),
            synonyms=synonyms.to_list(),
            location_variants=locations.to_list(),
            suggested_variables=variables.to_list(),
            temporal_hints=hints.to_list(),
            matched_concepts=matched,
            confidence=min(confidence, 1.0),
        )

    async def expand(self, query: Optional[str]) -> ExpandedQuery:
        """Lexicon expansion, enriched by the generative model when confidence is low."""
        result = self.expand_lexicon(query)

        if (
            not result.original_query
            or result.confidence >= self.config["enrichment_threshold"]
            or self.generative_client is None
            or not getattr(self.generative_client, "configured", False)
        ):
            return result

        try:
            reply = await asyncio.wait_for(
                self.generative_client.complete(ENRICHMENT_PROMPT.format(query=result.original_query)),
                timeout=self.config["enrichment_timeout_seconds"],
            )
        except asyncio.TimeoutError:
            logger.warning("Query enrichment timed out; keeping lexicon expansion")
            return result
        except Exception as e:
            logger.warning(f"Query enrichment failed: {e}")
            return result

        if is_not_configured(reply):
            logger.warning("Query enrichment skipped: generative model not configured")
            return result

        try:
            return self._merge_enrichment(result, reply)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Query enrichment discarded, invalid JSON response: {e}")
            return result

    def _merge_enrichment(self, result: ExpandedQuery, reply: str) -> ExpandedQuery:
        parsed = json.loads(CODE_FENCE_PATTERN.sub("", reply).strip())
        if not isinstance(parsed, dict):
            raise ValueError("enrichment reply is not a JSON object")

        def strings(key: str) -> List[str]:
            values = parsed.get(key) or []
            if not isinstance(values, list):
                raise ValueError(f"'{key}' is not a list")
            return [str(v) for v in values if v]

        expanded = _OrderedSet(result.expanded_terms)
        expanded.update(strings("expanded_terms"))
        variables = _OrderedSet(result.suggested_variables)
        variables.update(strings("variables"))
        locations = _OrderedSet(result.location_variants)
        locations.update(strings("locations"))

        confidence = result.confidence
        if parsed.get("confidence") is not None:
            confidence = max(confidence, float(parsed["confidence"]))

        return ExpandedQuery(
            original_query=result.original_query,
            expanded_terms=expanded.to_list(),
            synonyms=result.synonyms,
            location_variants=locations.to_list(),
            suggested_variables=variables.to_list(),
            temporal_hints=result.temporal_hints,
            matched_concepts=result.matched_concepts,
            confidence=min(max(confidence, 0.0), 1.0),
            enriched=True,
        )

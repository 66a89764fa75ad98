"""
Re-ranking of fused candidates with domain quality signals.

Each record starts at 1/(1+i) for fusion position i. Signals are applied
in a fixed order, each as weight * raw * window(i), where raw is in [0, 1],
weight is configured in [0, 1] and window(i) = 1/(1+i) - 1/(4+i). One
signal on its own can therefore never lift a record above another that
sat three or more positions ahead of it.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..common.models import RankedCandidate, Record
from ..common.text_utils import normalize_separators, word_tokens
from ..config.search_config import RERANKING_CONFIG, VARIABLE_RELEVANCE_CONFIG

logger = logging.getLogger("search")

SIGNAL_ORDER = (
    "service_quality",
    "variable_relevance",
    "recency",
    "publisher_trust",
    "openness",
    "text_match",
    "completeness",
)


def position_window(index: int) -> float:
    """Score gap between fusion positions i and i + 3."""
    return 1.0 / (1 + index) - 1.0 / (4 + index)


class ReRanker:
    """
    Applies the additive signals and sorts.

    Weights above 1.0 are clamped so the position-window guarantee holds
    whatever the configuration says.
    """

    def __init__(self, config: Optional[Dict] = None, now: Optional[Callable[[], datetime]] = None):
        self.config = config or RERANKING_CONFIG
        self.weights = {
            name: min(1.0, max(0.0, float(self.config["weights"].get(name, 0.0))))
            for name in SIGNAL_ORDER
        }
        self._now = now or _utc_now

        self._signals: Dict[str, Callable[[Record, "RerankContext"], float]] = {
            "service_quality": self._service_quality,
            "variable_relevance": self._variable_relevance,
            "recency": self._recency,
            "publisher_trust": self._publisher_trust,
            "openness": self._openness,
            "text_match": self._text_match,
            "completeness": self._completeness,
        }

    def rerank(
        self,
        records: Sequence[Record],
        query_text: str = "",
        variable_terms: Optional[Sequence[str]] = None,
        candidates: Optional[Dict[str, RankedCandidate]] = None,
    ) -> List[Tuple[Record, RankedCandidate]]:
        """
        Score and sort records given in fusion order.

        Args:
            records: Hydrated records, best fused first
            query_text: Raw query for the text-match signal
            variable_terms: Terms for the variable signal
            candidates: Fused candidates by id (lexical/semantic ranks are kept)

        Returns:
            (record, candidate) pairs, highest score first; exact ties keep
            fusion order
        """
        context = RerankContext(query_text, variable_terms or [], self._now())
        scored = []

        for index, record in enumerate(records):
            fused = (candidates or {}).get(record.id)
            candidate = RankedCandidate(
                id=record.id,
                score=1.0 / (1 + index),
                lexical_rank=fused.lexical_rank if fused else None,
                semantic_rank=fused.semantic_rank if fused else None,
            )
            window = position_window(index)

            for name in SIGNAL_ORDER:
                raw = min(1.0, max(0.0, self._signals[name](record, context)))
                contribution = self.weights[name] * raw * window
                candidate.signals[name] = contribution
                candidate.score += contribution

            scored.append((record, candidate))

        return sorted(scored, key=lambda pair: pair[1].score, reverse=True)

    # ------------------------------------------------------------------
    # Signals, each in [0, 1]
    # ------------------------------------------------------------------

    def _service_quality(self, record: Record, context: "RerankContext") -> float:
        scores = self.config["service_scores"]
        return max(
            (scores.get(d.access_service.value, 0.0) for d in record.distributions),
            default=0.0,
        )

    def _variable_relevance(self, record: Record, context: "RerankContext") -> float:
        """Exact name match beats a shared domain cluster, which beats a partial match."""
        if not context.variable_terms or not record.variables:
            return 0.0

        levels = self.config["variable_levels"]
        total = 0.0
        for term in context.variable_terms:
            best = 0.0
            for variable in record.variables:
                for field in (variable.name, variable.long_name, variable.standard_name):
                    if not field:
                        continue
                    field_norm = normalize_separators(field)
                    if field_norm == term:
                        best = max(best, levels["exact"])
                    elif _shares_cluster(term, field_norm):
                        best = max(best, levels["cluster"])
                    elif term in field_norm or (len(field_norm) > 3 and field_norm in term):
                        best = max(best, levels["partial"])
            total += best
        return total

    def _recency(self, record: Record, context: "RerankContext") -> float:
        """Linear decay from the temporal end; an open end counts as ongoing."""
        if record.time_start is None and record.time_end is None:
            return 0.0
        if record.time_end is None:
            return 1.0
        age_years = (context.now - record.time_end).days / 365.25
        return 1.0 - max(0.0, age_years) / self.config["recency_years"]

    def _publisher_trust(self, record: Record, context: "RerankContext") -> float:
        if not record.publisher:
            return 0.0
        publisher = record.publisher.lower()
        publisher_words = set(word_tokens(publisher))
        for tier in self.config["publisher_tiers"]:
            for name in tier["names"]:
                if name in publisher_words or (not name.isalnum() and name in publisher):
                    return tier["score"]
        return 0.0

    def _openness(self, record: Record, context: "RerankContext") -> float:
        score = 0.5 if record.doi else 0.0
        license_text = (record.license or "").lower()
        if license_text and any(k in license_text for k in self.config["permissive_licenses"]):
            score += 0.5
        return score

    def _text_match(self, record: Record, context: "RerankContext") -> float:
        """Whole phrase in the title or abstract, else the share of query words found."""
        phrase = context.query_phrase
        if not phrase:
            return 0.0

        title = normalize_separators(record.title or "")
        abstract = normalize_separators(record.abstract or "")
        if phrase in title:
            return 1.0
        if phrase in abstract:
            return 0.7

        words = context.query_words
        if not words:
            return 0.0
        title_words = set(word_tokens(title))
        abstract_words = set(word_tokens(abstract))
        in_title = sum(1 for w in words if w in title_words) / len(words)
        in_abstract = sum(1 for w in words if w in abstract_words) / len(words)
        return max(0.5 * in_title, 0.35 * in_abstract)

    def _completeness(self, record: Record, context: "RerankContext") -> float:
        checks = (
            record.bbox is not None,
            record.time_start is not None or record.time_end is not None,
            len(record.variables) > self.config["completeness_min_variables"],
            len(record.distributions) > self.config["completeness_min_distributions"],
        )
        return sum(1 for c in checks if c) / float(len(checks))


class RerankContext:
    """Per-call values shared by the signals."""

    def __init__(self, query_text: str, variable_terms: Sequence[str], now: datetime):
        self.query_phrase = normalize_separators(query_text or "")
        self.query_words = list(dict.fromkeys(w for w in word_tokens(query_text) if len(w) > 2))
        self.variable_terms = list(dict.fromkeys(
            normalize_separators(t) for t in variable_terms if t and t.strip()
        ))
        self.now = now


def _shares_cluster(term: str, field_norm: str) -> bool:
    for cluster in VARIABLE_RELEVANCE_CONFIG["clusters"]:
        patterns = [normalize_separators(p) for p in cluster["patterns"]]
        fields = [normalize_separators(f) for f in cluster["fields"]]
        if any(p in term for p in patterns) and any(f in field_norm for f in fields):
            return True
    return False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

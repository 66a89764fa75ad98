"""
Variable-name relevance, used as a soft sort key.

Records are reordered by how well their variables match the requested
variable tokens; records with no match stay in the list.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence

from ..common.models import Record
from ..common.text_utils import normalize_separators
from ..config.search_config import LEXICAL_CONFIG, VARIABLE_RELEVANCE_CONFIG

VARIABLE_WORD_SPLIT = re.compile(r"[\s_/,\-]+")


def build_variable_tokens(variables: Optional[Sequence[str]], config: Optional[Dict] = None) -> List[str]:
    """
    Expand requested variable names into match tokens.

    For each name the hierarchical leaf (text after the last ``>``) is
    kept whole, then its word bigrams and trigrams, then single words of
    at least four letters that are not stopwords. Lowercased, de-duplicated,
    order preserved.

    >>> build_variable_tokens(["Oceans > Ocean Temperature > Sea Surface Temperature"])[:3]
    ['sea surface temperature', 'sea surface', 'surface temperature']
    """
    config = config or LEXICAL_CONFIG
    stopwords = set(config["variable_stopwords"])
    min_length = config["variable_min_word_length"]

    tokens: List[str] = []
    for raw in variables or []:
        if not raw:
            continue
        leaf = raw.split(">")[-1].strip() if ">" in raw else raw.strip()
        if not leaf:
            continue

        tokens.append(leaf)
        words = [w.strip() for w in VARIABLE_WORD_SPLIT.split(leaf) if w.strip()]
        if len(words) >= 2:
            for i in range(len(words) - 1):
                tokens.append(" ".join(words[i:i + 2]))
                if i < len(words) - 2:
                    tokens.append(" ".join(words[i:i + 3]))

        tokens.extend(w for w in words if len(w) >= min_length and w.lower() not in stopwords)

    return list(dict.fromkeys(t.lower() for t in tokens))


def _cluster_bonus(token: str, field: str, field_norm: str, clusters: Iterable[Dict]) -> int:
    bonus = 0
    for cluster in clusters:
        if not any(p in token for p in cluster["patterns"]):
            continue
        if any(f in field or normalize_separators(f) in field_norm for f in cluster["fields"]):
            bonus += cluster["bonus"]
    return bonus


def variable_relevance_score(record: Record, tokens: Sequence[str], config: Optional[Dict] = None) -> int:
    """
    Score a record's variables against ``tokens``.

    Per variable field (name, long name, standard name) and token, when the
    field contains the token: 20 for an exact match (ignoring separators),
    otherwise 8 per word for a multi-word token, otherwise 5 (tokens longer
    than three characters) or 2. Domain cluster bonuses are added on top.
    """
    config = config or VARIABLE_RELEVANCE_CONFIG
    if not tokens:
        return 0

    score = 0
    for variable in record.variables:
        fields = [(variable.name or ""), (variable.long_name or ""), (variable.standard_name or "")]
        for token in tokens:
            token_norm = normalize_separators(token)
            if not token_norm:
                continue
            for raw_field in fields:
                field = raw_field.lower()
                field_norm = normalize_separators(field)
                if not field_norm or (token not in field and token_norm not in field_norm):
                    continue

                if field == token or field_norm == token_norm:
                    score += config["exact_match"]
                elif " " in token_norm:
                    score += config["phrase_per_word"] * len(token_norm.split(" "))
                else:
                    score += config["long_substring"] if len(token) > 3 else config["short_substring"]

                score += _cluster_bonus(token, field, field_norm, config["clusters"])
    return score


def sort_by_variable_relevance(records: List[Record], tokens: Sequence[str]) -> List[Record]:
    """Stable descending sort by variable relevance; nothing is removed."""
    if not tokens:
        return list(records)
    scores = {r.id: variable_relevance_score(r, tokens) for r in records}
    return sorted(records, key=lambda r: scores[r.id], reverse=True)


def matches_platform(record: Record, platform: Optional[str]) -> bool:
    """Case-insensitive equality against any of the record's platform tags."""
    if not platform:
        return True
    wanted = platform.strip().lower()
    return any(str(p).strip().lower() == wanted for p in record.platforms)

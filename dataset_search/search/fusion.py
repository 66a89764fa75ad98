"""
Reciprocal Rank Fusion of ranked id lists.
"""

from typing import Dict, List, Optional, Sequence

from ..common.models import RankedCandidate
from ..config.search_config import FUSION_CONFIG

RRF_K = FUSION_CONFIG["rrf_k"]


def reciprocal_rank_fusion(
    lexical_ids: Sequence[str],
    semantic_ids: Sequence[str],
    k: Optional[int] = None,
    constant: int = RRF_K,
) -> List[RankedCandidate]:
    """
    Merge two ranked lists by rank position only.

    Each id gains 1 / (constant + rank + 1) for every list it appears in.
    Results are sorted by the summed score, highest first; exact ties keep
    the order in which ids were first seen (lexical list first). Raw
    retriever scores are never compared.

    Args:
        lexical_ids: Lexical ranking, best first
        semantic_ids: Semantic ranking, best first
        k: Keep at most this many candidates (None keeps all)
        constant: RRF constant

    Returns:
        RankedCandidate list
    """
    candidates: Dict[str, RankedCandidate] = {}

    for list_name, ids in (("lexical", lexical_ids), ("semantic", semantic_ids)):
        seen = set()
        for rank, record_id in enumerate(ids):
            if record_id in seen:
                continue
            seen.add(record_id)

            candidate = candidates.get(record_id)
            if candidate is None:
                candidate = RankedCandidate(id=record_id, score=0.0)
                candidates[record_id] = candidate

            candidate.score += 1.0 / (constant + rank + 1)
            if list_name == "lexical":
                candidate.lexical_rank = rank
            else:
                candidate.semantic_rank = rank

    fused = sorted(candidates.values(), key=lambda c: c.score, reverse=True)
    if k is not None:
        fused = fused[:k]
    return fused


def fusion_depth(lexical_count: int, semantic_count: int, size: int) -> int:
    """
    How many fused candidates to keep.

    Everything either retriever returned, capped at the configured maximum,
    but never fewer than one page.
    """
    available = lexical_count + semantic_count or FUSION_CONFIG["default_candidates"]
    return max(min(available, FUSION_CONFIG["max_candidates"]), size)

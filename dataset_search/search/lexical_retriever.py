"""
Lexical retrieval over the catalog with tiered fallback.

Tiers, tried in order until one succeeds (zero rows counts as success):

1. search_view: FTS5 over record + variable + distribution text with the
   structured filters, ranked by phrase match then all-terms match
2. base_text: FTS5 over title/abstract plus fuzzy similarity, ranked by
   phrase, all-terms, title similarity, then recency
3. relational: substring predicates only, newest first

Queries without text go straight to the relational tier.
"""

import asyncio
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from .filters import SearchFilters
from .variable_relevance import matches_platform, sort_by_variable_relevance
from ..common.errors import TierError
from ..common.models import Record, SearchQuery
from ..common.text_utils import fts_phrase_query, fts_plain_query
from ..config.search_config import LEXICAL_CONFIG
from ..ingestion.database import CatalogDatabase

logger = logging.getLogger("search")

TierOutput = Tuple[List[str], int]


@dataclass
class LexicalResult:
    """Ordered candidate ids, the records fetched for them and the match count."""

    ids: List[str] = field(default_factory=list)
    records: Dict[str, Record] = field(default_factory=dict)
    total: int = 0
    tier: Optional[str] = None

    def ordered_records(self) -> List[Record]:
        return [self.records[i] for i in self.ids if i in self.records]


@dataclass
class LexicalTier:
    name: str
    run: Callable[[SearchQuery, int], TierOutput]
    requires_text: bool = True


class LexicalRetriever:
    """
    Runs the lexical tiers for a query.

    Tier queries are blocking SQLite calls; they are pushed to ``executor``
    and bounded by the per-tier timeout. A timeout or error moves on to the
    next tier. When every tier fails the result is empty, never an error.
    """

    def __init__(
        self,
        database: CatalogDatabase,
        executor: Optional[Executor] = None,
        config: Optional[Dict] = None,
    ):
        self.db = database
        self.executor = executor
        self.config = config or LEXICAL_CONFIG
        self.tiers: List[LexicalTier] = [
            LexicalTier("search_view", self.search_view_tier),
            LexicalTier("base_text", self.base_text_tier),
            LexicalTier("relational", self.relational_tier, requires_text=False),
        ]

    def candidate_limit(self, query: SearchQuery) -> int:
        """page * size * overfetch, clamped to the configured floor and ceiling."""
        wanted = query.page * query.size * self.config["overfetch_multiplier"]
        return max(self.config["min_candidates"], min(self.config["max_candidates"], wanted))

    def tiers_for(self, query: SearchQuery) -> List[LexicalTier]:
        if fts_plain_query(query.q):
            return list(self.tiers)
        return [tier for tier in self.tiers if not tier.requires_text]

    async def retrieve(
        self,
        query: SearchQuery,
        variable_tokens: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> LexicalResult:
        """
        Candidate records for ``query`` from the first tier that succeeds.

        Args:
            query: Normalized search query
            variable_tokens: Tokens for the variable-relevance soft sort
            limit: Maximum ids to fetch (defaults to candidate_limit())

        Returns:
            LexicalResult (empty when every tier failed)
        """
        limit = limit or self.candidate_limit(query)
        loop = asyncio.get_running_loop()

        for tier in self.tiers_for(query):
            start = time.time()
            try:
                result = await asyncio.wait_for(
                    loop.run_in_executor(self.executor, self._execute_tier, tier, query, limit),
                    timeout=self.config["tier_timeout_seconds"],
                )
            except asyncio.TimeoutError as e:
                logger.warning(f"Lexical tier timed out, falling back: {TierError(tier.name, e)}")
                continue
            except Exception as e:
                logger.warning(f"Lexical tier failed, falling back: {TierError(tier.name, e)}")
                continue

            result = self._post_process(result, query, variable_tokens or [])
            logger.info(
                f"Lexical tier '{tier.name}' returned {len(result.ids)} ids "
                f"({result.total} total) in {int((time.time() - start) * 1000)}ms"
            )
            return result

        logger.error(f"All lexical tiers failed for query '{query.q}'")
        return LexicalResult()

    def _execute_tier(self, tier: LexicalTier, query: SearchQuery, limit: int) -> LexicalResult:
        ids, total = tier.run(query, limit)
        records = self.db.fetch_records(ids)
        return LexicalResult(ids=[i for i in ids if i in records], records=records, total=total, tier=tier.name)

    def _post_process(
        self,
        result: LexicalResult,
        query: SearchQuery,
        variable_tokens: Sequence[str],
    ) -> LexicalResult:
        """Variable-relevance resort (never drops) then the platform hard filter."""
        records = sort_by_variable_relevance(result.ordered_records(), variable_tokens)

        if query.platform:
            kept = [r for r in records if matches_platform(r, query.platform)]
            removed = len(records) - len(kept)
            records = kept
            total = max(0, result.total - removed)
        else:
            total = result.total

        return LexicalResult(
            ids=[r.id for r in records],
            records={r.id: r for r in records},
            total=total,
            tier=result.tier,
        )

    # ------------------------------------------------------------------
    # Tiers (blocking; run in the executor)
    # ------------------------------------------------------------------

    def _ranked(self, body: str, body_params: List[Any], order_by: str,
                order_params: List[Any], limit: int) -> TierOutput:
        conn = self.db.connect()
        rows = conn.execute(
            f"SELECT d.id {body} ORDER BY {order_by} LIMIT ?",
            [*body_params, *order_params, limit],
        ).fetchall()
        total = conn.execute(f"SELECT COUNT(*) {body}", body_params).fetchone()[0]
        return [row["id"] for row in rows], total

    def search_view_tier(self, query: SearchQuery, limit: int) -> TierOutput:
        where, where_params = SearchFilters.build_where_clause(query)
        body = f"""
            FROM datasets d
            LEFT JOIN (
                SELECT id, bm25(dataset_fts) AS rank FROM dataset_fts WHERE dataset_fts MATCH ?
            ) p ON p.id = d.id
            LEFT JOIN (
                SELECT id, bm25(dataset_fts) AS rank FROM dataset_fts WHERE dataset_fts MATCH ?
            ) t ON t.id = d.id
            WHERE (p.id IS NOT NULL OR t.id IS NOT NULL) AND {where}
        """
        params = [fts_phrase_query(query.q), fts_plain_query(query.q), *where_params]
        return self._ranked(
            body, params,
            "(p.rank IS NULL), p.rank, (t.rank IS NULL), t.rank, d.id", [],
            limit,
        )

    def base_text_tier(self, query: SearchQuery, limit: int) -> TierOutput:
        where, where_params = SearchFilters.build_where_clause(query)
        body = f"""
            FROM datasets d
            LEFT JOIN (
                SELECT id, bm25(datasets_fts) AS rank FROM datasets_fts WHERE datasets_fts MATCH ?
            ) p ON p.id = d.id
            LEFT JOIN (
                SELECT id, bm25(datasets_fts) AS rank FROM datasets_fts WHERE datasets_fts MATCH ?
            ) t ON t.id = d.id
            WHERE (
                p.id IS NOT NULL OR t.id IS NOT NULL
                OR similarity(d.title, ?) > ?
                OR similarity(COALESCE(d.abstract, ''), ?) > ?
            ) AND {where}
        """
        params = [
            fts_phrase_query(query.q),
            fts_plain_query(query.q),
            query.q, self.config["title_similarity_threshold"],
            query.q, self.config["abstract_similarity_threshold"],
            *where_params,
        ]
        return self._ranked(
            body, params,
            "(p.rank IS NULL), p.rank, (t.rank IS NULL), t.rank, "
            "similarity(d.title, ?) DESC, (d.updated_at IS NULL), d.updated_at DESC, d.id",
            [query.q],
            limit,
        )

    def relational_tier(self, query: SearchQuery, limit: int) -> TierOutput:
        where, where_params = SearchFilters.build_where_clause(query)
        text = SearchFilters.build_text_clause(query.q)
        if text:
            where = f"{where} AND {text[0]}"
            where_params = [*where_params, *text[1]]

        body = f"FROM datasets d WHERE {where}"
        return self._ranked(
            body, where_params,
            "(d.updated_at IS NULL), d.updated_at DESC, d.id", [],
            limit,
        )

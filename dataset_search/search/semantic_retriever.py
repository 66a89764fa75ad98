"""
Semantic retrieval: nearest records to the query in the txtai vector index.

If embedding or the index query fails (or times out), the lexical
retriever's rank order for the caller's raw query stands in, scored
max(0, 1 - rank/k).
"""

import asyncio
import time
from dataclasses import replace
from concurrent.futures import Executor
from typing import Dict, List, Optional, Tuple
import logging

from .filters import SearchFilters
from .lexical_retriever import LexicalRetriever
from .variable_relevance import matches_platform
from ..common.models import SearchQuery
from ..config.search_config import SEMANTIC_CONFIG
from ..indexing.vector_index import VectorIndex
from ..ingestion.database import CatalogDatabase

logger = logging.getLogger("search")

ScoredIds = List[Tuple[str, float]]


class SemanticRetriever:
    """Nearest-neighbour search over indexed records with a lexical fallback."""

    def __init__(
        self,
        database: CatalogDatabase,
        vector_index: VectorIndex,
        lexical: LexicalRetriever,
        executor: Optional[Executor] = None,
        config: Optional[Dict] = None,
    ):
        self.db = database
        self.index = vector_index
        self.lexical = lexical
        self.executor = executor
        self.config = config or SEMANTIC_CONFIG

    async def retrieve(self, text: str, k: int, query: Optional[SearchQuery] = None) -> ScoredIds:
        """
        Top-k (record id, similarity) pairs for ``text``.

        Args:
            text: Raw or expanded query text to embed
            k: Number of results wanted
            query: The caller's query. Its filters restrict the vector hits,
                and its raw ``q`` drives the lexical fallback, so this path
                never returns out-of-filter records

        Returns:
            Pairs ordered by decreasing similarity; empty when nothing matched
        """
        if not text or not text.strip():
            return []

        k = max(1, min(int(k), self.config["max_k"]))
        query = query or SearchQuery(q=text)
        if not query.has_text():
            query = replace(query, q=text)
        loop = asyncio.get_running_loop()
        start = time.time()

        try:
            hits = await asyncio.wait_for(
                loop.run_in_executor(self.executor, self._search, text, k, query),
                timeout=self.config["embed_timeout_seconds"] + self.config["query_timeout_seconds"],
            )
        except asyncio.TimeoutError:
            logger.warning("Semantic retrieval timed out; using lexical rank as proxy")
            return await self._lexical_fallback(k, query)
        except Exception as e:
            logger.warning(f"Semantic retrieval failed ({e}); using lexical rank as proxy")
            return await self._lexical_fallback(k, query)

        logger.info(
            f"Semantic retrieval returned {len(hits)} hits in {int((time.time() - start) * 1000)}ms"
        )
        return hits

    def _search(self, text: str, k: int, query: SearchQuery) -> ScoredIds:
        where, params = SearchFilters.build_where_clause(query)
        filtered = where != "1=1" or bool(query.platform)
        if not filtered:
            return self.index.search(text, k)

        # Filters need the catalog tables, so rank the whole index and keep matches
        hits = self.index.search(text, max(k, self.index.count()))
        scores = dict(hits)
        kept = self.db.filter_ids([record_id for record_id, _ in hits], where, params)

        if query.platform:
            records = self.db.fetch_records(kept)
            kept = [
                record_id for record_id in kept
                if record_id in records and matches_platform(records[record_id], query.platform)
            ]

        return [(record_id, scores[record_id]) for record_id in kept[:k]]

    async def _lexical_fallback(self, k: int, query: SearchQuery) -> ScoredIds:
        result = await self.lexical.retrieve(query, limit=k)
        return [
            (record_id, max(0.0, 1.0 - rank / float(k)))
            for rank, record_id in enumerate(result.ids[:k])
        ]

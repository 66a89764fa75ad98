"""
Hybrid search engine over the dataset catalog.

One search call runs, in order: term expansion, lexical and semantic
retrieval (concurrently), Reciprocal Rank Fusion, hydration, re-ranking
and pagination. Retrieval failures degrade to fallbacks; only an
unreachable catalog is reported to the caller.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Union
import logging

from .fusion import fusion_depth, reciprocal_rank_fusion
from .hydrator import Hydrator, paginate, sort_by_recency
from .lexical_retriever import LexicalRetriever
from .reranker import ReRanker
from .semantic_retriever import SemanticRetriever
from .suggest import suggest_values
from .term_expander import ExpandedQuery, Lexicon, TermExpander
from .variable_relevance import build_variable_tokens
from ..ai.text_generation import GenerativeClient
from ..common.models import SearchQuery
from ..config.search_config import (
    CONCURRENCY_CONFIG,
    DATABASE_PATH,
    EXPANSION_CONFIG,
    PAGINATION_CONFIG,
    TERMS_CONFIG,
    VECTOR_INDEX_PATH,
)
from ..indexing.vector_index import VectorIndex
from ..ingestion.database import CatalogDatabase

logger = logging.getLogger("search")


class SearchEngine:
    """
    Coordinates the retrieval and ranking stages.

    Blocking work (SQLite, txtai) runs on a private thread pool so
    concurrent searches on one event loop do not block each other. The
    engine holds no per-request state.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        index_path: Optional[str] = None,
        database: Optional[CatalogDatabase] = None,
        vector_index: Optional[VectorIndex] = None,
        generative_client: Optional[GenerativeClient] = None,
        lexicon: Optional[Lexicon] = None,
        reranking_config: Optional[Dict] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        enable_query_expansion: bool = True,
    ):
        """
        Initialize search engine.

        Args:
            db_path: Path to the catalog database (ignored when ``database`` is given)
            index_path: txtai index directory (ignored when ``vector_index`` is given)
            database: Already constructed CatalogDatabase
            vector_index: txtai index of record embeddings; loaded from index_path when omitted
            generative_client: Optional client for query enrichment
            lexicon: Expansion vocabulary; loaded from TERMS_CONFIG when omitted
            reranking_config: Override for RERANKING_CONFIG
            executor: Thread pool for blocking calls
            enable_query_expansion: Disable to search on the raw query only
        """
        self.db = database or CatalogDatabase(db_path or DATABASE_PATH)

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=CONCURRENCY_CONFIG["search_thread_pool_size"],
            thread_name_prefix="search",
        )

        self._owns_index = vector_index is None
        self.vector_index = vector_index if vector_index is not None else VectorIndex.open(index_path or VECTOR_INDEX_PATH)

        self.enable_query_expansion = enable_query_expansion
        if lexicon is None and enable_query_expansion:
            try:
                lexicon = Lexicon.load(TERMS_CONFIG)
            except Exception as e:
                logger.warning(f"Could not load expansion lexicon: {e}")
                lexicon = Lexicon()
        self.term_expander = TermExpander(
            lexicon or Lexicon(),
            generative_client if generative_client is not None else GenerativeClient(),
        )

        self.lexical = LexicalRetriever(self.db, self.executor)
        self.semantic = SemanticRetriever(self.db, self.vector_index, self.lexical, self.executor)
        self.hydrator = Hydrator(self.db, self.executor)
        self.reranker = ReRanker(reranking_config)

    async def expand(self, text: str) -> ExpandedQuery:
        if not self.enable_query_expansion or not text:
            return ExpandedQuery(original_query=text or "")
        # The expander bounds its own enrichment call; this guards the whole step
        try:
            return await asyncio.wait_for(
                self.term_expander.expand(text),
                timeout=EXPANSION_CONFIG["enrichment_timeout_seconds"] + 1,
            )
        except asyncio.TimeoutError:
            logger.warning("Term expansion timed out; using lexicon expansion only")
            return self.term_expander.expand_lexicon(text)

    async def search(self, query: Union[SearchQuery, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Run one search.

        Args:
            query: SearchQuery (or a dict of its fields)

        Returns:
            {"total", "page", "size", "results"}; ``total`` counts fused
            candidates before hydration

        Raises:
            StorageUnavailableError: the catalog cannot be queried
        """
        if isinstance(query, dict):
            query = SearchQuery(**query)
        query = query.normalized(PAGINATION_CONFIG["max_size"])

        start_time = time.time()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self.executor, self.db.ping)

        expansion = await self.expand(query.q)
        variable_tokens = build_variable_tokens(query.variables)
        limit = self.lexical.candidate_limit(query)

        if query.has_text():
            lexical, semantic = await asyncio.gather(
                self.lexical.retrieve(query, variable_tokens, limit),
                self.semantic.retrieve(expansion.semantic_text() or query.q, limit, query),
            )
        else:
            lexical = await self.lexical.retrieve(query, variable_tokens, limit)
            semantic = []

        semantic_ids = [record_id for record_id, _ in semantic]
        depth = fusion_depth(len(lexical.ids), len(semantic_ids), query.size)
        fused = reciprocal_rank_fusion(lexical.ids, semantic_ids, k=depth)

        records = await self.hydrator.hydrate([c.id for c in fused], lexical.records)

        rerank_terms = variable_tokens or build_variable_tokens([query.q] if query.has_text() else [])
        ranked = self.reranker.rerank(
            records,
            query_text=query.q,
            variable_terms=rerank_terms,
            candidates={c.id: c for c in fused},
        )
        ordered = [record for record, _ in ranked]

        if query.sort == "recency":
            ordered = sort_by_recency(ordered)

        response = paginate(ordered, len(fused), query.page, query.size, query.include)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Search '{query.q}': {len(lexical.ids)} lexical ({lexical.tier}), "
            f"{len(semantic_ids)} semantic, {len(fused)} fused, "
            f"{len(response['results'])} returned in {elapsed_ms}ms"
        )
        return response

    def search_sync(self, query: Union[SearchQuery, Dict[str, Any]]) -> Dict[str, Any]:
        """Blocking wrapper for callers without an event loop (CLI)."""
        return asyncio.run(self.search(query))

    def get_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        """Canonical catalog form of one record, or None when it does not exist."""
        self.db.ping()
        record = self.db.fetch_records([dataset_id]).get(dataset_id)
        return record.to_canonical() if record else None

    def suggest(self, kind: str, prefix: str = "") -> List[str]:
        """Autocomplete values for ``kind`` (variable, publisher or platform)."""
        self.db.ping()
        return suggest_values(self.db, kind, prefix)

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self.db.get_stats())
        stats["embedder"] = self.vector_index.name
        stats["vector_index_count"] = self.vector_index.count()
        stats["concepts"] = len(self.term_expander.lexicon.concepts)
        return stats

    def get_facets(self, limit: int = 20) -> Dict[str, List[Dict[str, Any]]]:
        return self.db.facet_counts(limit)

    def health(self) -> Dict[str, Any]:
        """Component status; never raises."""
        try:
            self.db.ping()
            database = "ok"
        except Exception as e:
            database = f"unavailable: {e}"
        return {
            "database": database,
            "embedder": self.vector_index.name,
            "embedder_degraded": self.vector_index.degraded,
            "indexed_records": self.vector_index.count(),
            "enrichment_configured": bool(getattr(self.term_expander.generative_client, "configured", False)),
        }

    def close(self):
        """Release database connections, the owned vector index and thread pool."""
        self.db.close()
        if self._owns_index:
            self.vector_index.close()
        if self._owns_executor:
            self.executor.shutdown(wait=False)
        logger.info("Search engine closed")

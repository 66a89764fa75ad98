"""
Indexing service that embeds catalog records into the vector index.
"""

import time
from typing import Callable, Dict, List, Optional
import logging

from .vector_index import VectorIndex
from ..common.models import Record
from ..common.text_utils import format_datetime
from ..config.search_config import EMBEDDING_CONFIG
from ..ingestion.database import CatalogDatabase

logger = logging.getLogger("indexing")

# Title repeated this many times so it outweighs long abstracts
TITLE_WEIGHT_MULTIPLIER = 2


def build_document_text(record: Record) -> str:
    """
    Text embedded for a record.

    Title (weighted), abstract, variable names and descriptions, keywords,
    platforms and publisher, in that order.
    """
    parts: List[str] = [record.title] * TITLE_WEIGHT_MULTIPLIER

    if record.abstract:
        parts.append(record.abstract)

    variable_parts = []
    for variable in record.variables:
        variable_parts.extend(
            p.replace("_", " ") for p in (variable.name, variable.long_name, variable.standard_name) if p
        )
    if variable_parts:
        parts.append("Variables: " + ", ".join(dict.fromkeys(variable_parts)))

    if record.keywords:
        parts.append("Keywords: " + ", ".join(record.keywords))
    if record.platforms:
        parts.append("Platforms: " + ", ".join(record.platforms))
    if record.publisher:
        parts.append(f"Publisher: {record.publisher}")

    return "\n\n".join(parts)


def build_document(record: Record) -> Dict:
    """txtai document for a record; ``text`` is what gets embedded."""
    return {
        "id": record.id,
        "text": build_document_text(record),
        "title": record.title,
        "publisher": record.publisher or "",
        "updated_at": format_datetime(record.updated_at) or "",
    }


class IndexingService:
    """
    Fills the vector index with catalog records.

    This service:
    1. Finds records not yet indexed (or all records when forced)
    2. Upserts their documents into the txtai index in batches
    3. Marks them indexed in the catalog and saves the index
    """

    def __init__(self, database: CatalogDatabase, vector_index: VectorIndex, batch_size: Optional[int] = None):
        self.db = database
        self.index = vector_index
        self.batch_size = batch_size or EMBEDDING_CONFIG["batch_size"]

    def backfill(
        self,
        force: bool = False,
        limit: Optional[int] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Dict:
        """
        Index records that are missing from the vector index.

        Args:
            force: Re-index every record
            limit: Stop after this many records
            progress_callback: Called with (done, total) after each batch

        Returns:
            Statistics dictionary
        """
        start = time.time()
        ids = self.db.all_ids() if force else self.db.ids_not_indexed()
        if limit:
            ids = ids[:limit]

        total = len(ids)
        embedded = 0
        failed = 0
        logger.info(f"Index backfill: {total} records to process (force={force})")

        for offset in range(0, total, self.batch_size):
            batch_ids = ids[offset:offset + self.batch_size]
            records = self.db.fetch_records(batch_ids)
            batch = [records[i] for i in batch_ids if i in records]

            try:
                self.index.upsert([build_document(r) for r in batch])
            except Exception as e:
                failed += len(batch)
                logger.error(f"Index batch at offset {offset} failed: {e}")
                continue

            self.db.mark_indexed([r.id for r in batch], self.index.name)
            embedded += len(batch)

            if progress_callback:
                progress_callback(min(offset + len(batch_ids), total), total)

        if embedded and self.index.persistent:
            self.index.save()

        stats = {
            "total": total,
            "embedded": embedded,
            "failed": failed,
            "model": self.index.name,
            "index_count": self.index.count(),
            "duration_seconds": round(time.time() - start, 2),
        }
        logger.info(f"Index backfill complete: {stats}")
        return stats

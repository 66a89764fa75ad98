"""
Resolves ranked ids to full records and slices pages.
"""

import asyncio
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

from ..common.models import Record
from ..config.search_config import HYDRATION_CONFIG
from ..ingestion.database import CatalogDatabase

logger = logging.getLogger("search")


class Hydrator:
    """
    Loads the records the lexical retriever did not already fetch.

    Missing ids are fetched in one pass of fixed-size batches. A failing
    batch drops its ids instead of failing the page; so do ids that no
    longer exist.
    """

    def __init__(self, database: CatalogDatabase, executor: Optional[Executor] = None,
                 config: Optional[Dict] = None):
        self.db = database
        self.executor = executor
        self.batch_size = (config or HYDRATION_CONFIG)["batch_size"]

    async def hydrate(self, ids: Sequence[str], known: Optional[Dict[str, Record]] = None) -> List[Record]:
        known = known or {}
        missing = [record_id for record_id in dict.fromkeys(ids) if record_id not in known]
        fetched: Dict[str, Record] = {}

        loop = asyncio.get_running_loop()
        for start in range(0, len(missing), self.batch_size):
            batch = missing[start:start + self.batch_size]
            try:
                fetched.update(await loop.run_in_executor(self.executor, self.db.fetch_records, batch))
            except Exception as e:
                logger.warning(f"Hydration batch of {len(batch)} ids failed, dropping them: {e}")

        records = []
        dropped = 0
        for record_id in ids:
            record = known.get(record_id) or fetched.get(record_id)
            if record is None:
                dropped += 1
                continue
            records.append(record)

        if dropped:
            logger.warning(f"Hydration dropped {dropped} unresolved ids")
        return records


def sort_by_recency(records: List[Record]) -> List[Record]:
    """Newest ``updated_at`` first (stable); records without one go last."""
    return sorted(records, key=lambda r: r.updated_at or datetime.min, reverse=True)


def paginate(
    records: Sequence[Record],
    total: int,
    page: int,
    size: int,
    include: Optional[str] = None,
) -> Dict[str, Any]:
    """Result envelope for one page of ``records``."""
    start = (page - 1) * size
    return {
        "total": total,
        "page": page,
        "size": size,
        "results": [record.to_result(include) for record in records[start:start + size]],
    }

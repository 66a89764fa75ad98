"""
Record loader for saving catalog records to the database.

Harvesters live elsewhere; this module takes their normalized JSON output
(or fixture files) and writes it through CatalogDatabase.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List
import logging

from .database import CatalogDatabase
from ..common.models import Record

logger = logging.getLogger("ingestion")


class RecordLoader:
    """Validates catalog JSON and stores it with replace-on-reingest semantics."""

    def __init__(self, database: CatalogDatabase):
        self.db = database

    def load_dicts(self, items: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        Parse and save a batch of record dictionaries.

        Malformed records are skipped and logged, the rest are written.

        Returns:
            Statistics dictionary (seen, saved, skipped)
        """
        records: List[Record] = []
        seen = 0
        skipped = 0

        for item in items:
            seen += 1
            try:
                records.append(Record.from_dict(item))
            except (ValueError, TypeError, KeyError) as e:
                skipped += 1
                logger.warning(f"Skipping record {item.get('id', '?') if isinstance(item, dict) else '?'}: {e}")

        saved = self.db.upsert_records(records) if records else 0

        return {"seen": seen, "saved": saved, "skipped": skipped}

    def load_file(self, path: str) -> Dict[str, int]:
        """
        Load records from a JSON file.

        The file holds either a list of records or an object with a
        ``datasets`` list.
        """
        with open(Path(path), "r", encoding="utf-8") as f:
            payload = json.load(f)

        if isinstance(payload, dict):
            payload = payload.get("datasets", [])
        if not isinstance(payload, list):
            raise ValueError(f"{path} does not contain a list of records")

        stats = self.load_dicts(payload)
        logger.info(
            f"Loaded {path}: {stats['saved']} saved, {stats['skipped']} skipped"
        )
        return stats

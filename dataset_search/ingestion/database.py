"""
Database initialization and management for the dataset catalog.

SQLite holds the relational catalog (datasets, variables, distributions)
and two FTS5 indexes:

- ``dataset_fts``: search view over record, variable, distribution and
  keyword text (first lexical tier)
- ``datasets_fts``: title/abstract text index of the base table (second tier)

A rapidfuzz-backed ``similarity(a, b)`` function is registered on every
connection for fuzzy title/abstract matching. Record vectors live in the
txtai index; ``indexed_with`` records which model last embedded each row.
"""

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from ..common.errors import StorageUnavailableError
from ..common.models import AccessService, Distribution, Record, Variable
from ..common.text_utils import format_datetime, parse_datetime, text_similarity

logger = logging.getLogger("ingestion")

# SQLite's default host-parameter limit is 999 on older builds
MAX_SQL_PARAMS = 900


class CatalogDatabase:
    """
    Manages SQLite connections and schema for the catalog.

    Connections are per thread so blocking queries can be pushed to a
    thread pool; a file path (not ``:memory:``) is therefore required.
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """Return this thread's connection, opening it on first use."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            return conn

        try:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open catalog at {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("similarity", 2, text_similarity, deterministic=True)

        self._local.connection = conn
        with self._lock:
            self._connections.append(conn)
        return conn

    def ping(self):
        """
        Make sure the catalog can be queried.

        Raises:
            StorageUnavailableError: file unreachable or schema never initialized
        """
        try:
            self.connect().execute("SELECT 1 FROM datasets LIMIT 1").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Catalog at {self.db_path} is not usable: {e}") from e

    def initialize_schema(self):
        """Create all tables and indexes."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS datasets (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                abstract TEXT,
                publisher TEXT,
                license TEXT,
                doi TEXT,
                source_system TEXT,
                time_start TEXT,
                time_end TEXT,
                min_x REAL,
                min_y REAL,
                max_x REAL,
                max_y REAL,
                platforms_json TEXT,
                keywords_json TEXT,
                updated_at TEXT,
                indexed_with TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS variables (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                dataset_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                name TEXT NOT NULL,
                standard_name TEXT,
                units TEXT,
                long_name TEXT,
                FOREIGN KEY (dataset_id) REFERENCES datasets(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS distributions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                dataset_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                url TEXT NOT NULL,
                access_service TEXT NOT NULL DEFAULT 'HTTP',
                format TEXT,
                size INTEGER,
                checksum TEXT,
                access_rights TEXT,
                FOREIGN KEY (dataset_id) REFERENCES datasets(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE VIRTUAL TABLE IF NOT EXISTS dataset_fts USING fts5(
                id UNINDEXED,
                title,
                abstract,
                publisher,
                identifiers,
                keywords,
                variables_text,
                distributions_text,
                tokenize = 'porter unicode61'
            )
        """)

        cursor.execute("""
            CREATE VIRTUAL TABLE IF NOT EXISTS datasets_fts USING fts5(
                id UNINDEXED,
                title,
                abstract,
                tokenize = 'porter unicode61'
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_variables_dataset ON variables(dataset_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_distributions_dataset ON distributions(dataset_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_datasets_updated ON datasets(updated_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_datasets_publisher ON datasets(publisher)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_datasets_bbox ON datasets(min_x, max_x, min_y, max_y)")

        conn.commit()
        logger.info(f"Catalog schema initialized at {self.db_path}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_records(self, records: Iterable[Record]) -> int:
        """
        Insert or replace records with their variables and distributions.

        Nested rows are deleted and recreated, never patched. Both text
        indexes are refreshed for every written record.

        Returns:
            Number of records written
        """
        conn = self.connect()
        count = 0
        with conn:
            for record in records:
                self._write_record(conn, record)
                count += 1
        logger.info(f"Wrote {count} records to catalog")
        return count

    def upsert_record(self, record: Record):
        self.upsert_records([record])

    def _write_record(self, conn: sqlite3.Connection, record: Record):
        self._delete_rows(conn, record.id)

        bbox = record.bbox or (None, None, None, None)

        conn.execute("""
            INSERT INTO datasets (
                id, title, abstract, publisher, license, doi, source_system,
                time_start, time_end, min_x, min_y, max_x, max_y,
                platforms_json, keywords_json, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.id,
            record.title,
            record.abstract,
            record.publisher,
            record.license,
            record.doi,
            record.source_system,
            format_datetime(record.time_start),
            format_datetime(record.time_end),
            bbox[0], bbox[1], bbox[2], bbox[3],
            json.dumps(record.platforms),
            json.dumps(record.keywords),
            format_datetime(record.updated_at),
        ))

        conn.executemany("""
            INSERT INTO variables (dataset_id, position, name, standard_name, units, long_name)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (record.id, i, v.name, v.standard_name, v.units, v.long_name)
            for i, v in enumerate(record.variables)
        ])

        conn.executemany("""
            INSERT INTO distributions (
                dataset_id, position, url, access_service, format, size, checksum, access_rights
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            (record.id, i, d.url, d.access_service.value, d.format, d.size, d.checksum, d.access_rights)
            for i, d in enumerate(record.distributions)
        ])

        self._index_text(conn, record)

    def _delete_rows(self, conn: sqlite3.Connection, record_id: str):
        conn.execute("DELETE FROM variables WHERE dataset_id = ?", (record_id,))
        conn.execute("DELETE FROM distributions WHERE dataset_id = ?", (record_id,))
        conn.execute("DELETE FROM dataset_fts WHERE id = ?", (record_id,))
        conn.execute("DELETE FROM datasets_fts WHERE id = ?", (record_id,))
        conn.execute("DELETE FROM datasets WHERE id = ?", (record_id,))

    def _index_text(self, conn: sqlite3.Connection, record: Record):
        variables_text = " ".join(
            " ".join(filter(None, [v.name, v.long_name, v.standard_name]))
            for v in record.variables
        )
        distributions_text = " ".join(
            f"{d.format or ''} {d.access_service.value}" for d in record.distributions
        )

        conn.execute("""
            INSERT INTO dataset_fts (
                id, title, abstract, publisher, identifiers, keywords, variables_text, distributions_text
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.id,
            record.title,
            record.abstract or "",
            record.publisher or "",
            " ".join(filter(None, [record.doi, record.license, record.source_system])),
            " ".join(record.keywords),
            variables_text,
            distributions_text,
        ))

        conn.execute(
            "INSERT INTO datasets_fts (id, title, abstract) VALUES (?, ?, ?)",
            (record.id, record.title, record.abstract or ""),
        )

    def delete_record(self, record_id: str) -> bool:
        conn = self.connect()
        with conn:
            exists = conn.execute("SELECT 1 FROM datasets WHERE id = ?", (record_id,)).fetchone()
            self._delete_rows(conn, record_id)
        return exists is not None

    def rebuild_search_view(self) -> int:
        """
        Rebuild both text indexes from the relational tables.

        Returns:
            Number of records indexed
        """
        conn = self.connect()
        ids = [row["id"] for row in conn.execute("SELECT id FROM datasets ORDER BY id")]

        with conn:
            conn.execute("DELETE FROM dataset_fts")
            conn.execute("DELETE FROM datasets_fts")
            for start in range(0, len(ids), MAX_SQL_PARAMS):
                for record in self.fetch_records(ids[start:start + MAX_SQL_PARAMS]).values():
                    self._index_text(conn, record)

        logger.info(f"Rebuilt search view for {len(ids)} records")
        return len(ids)

    def mark_indexed(self, ids: Sequence[str], model: str):
        """Record that ``ids`` were embedded into the vector index by ``model``."""
        conn = self.connect()
        with conn:
            conn.executemany(
                "UPDATE datasets SET indexed_with = ? WHERE id = ?",
                [(model, record_id) for record_id in ids],
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_records(self, ids: Sequence[str]) -> Dict[str, Record]:
        """
        Batch-load full records (with variables and distributions).

        Unknown ids are simply absent from the returned mapping.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return {}
        if len(ids) > MAX_SQL_PARAMS:
            merged: Dict[str, Record] = {}
            for start in range(0, len(ids), MAX_SQL_PARAMS):
                merged.update(self.fetch_records(ids[start:start + MAX_SQL_PARAMS]))
            return merged

        conn = self.connect()
        placeholders = ",".join("?" * len(ids))

        rows = conn.execute(
            f"SELECT * FROM datasets WHERE id IN ({placeholders})", ids
        ).fetchall()

        variables: Dict[str, List[Variable]] = {}
        for row in conn.execute(
            f"SELECT * FROM variables WHERE dataset_id IN ({placeholders}) ORDER BY dataset_id, position",
            ids,
        ):
            variables.setdefault(row["dataset_id"], []).append(Variable(
                name=row["name"],
                standard_name=row["standard_name"],
                units=row["units"],
                long_name=row["long_name"],
            ))

        distributions: Dict[str, List[Distribution]] = {}
        for row in conn.execute(
            f"SELECT * FROM distributions WHERE dataset_id IN ({placeholders}) ORDER BY dataset_id, position",
            ids,
        ):
            distributions.setdefault(row["dataset_id"], []).append(Distribution(
                url=row["url"],
                access_service=AccessService.coerce(row["access_service"]),
                format=row["format"] or "",
                size=row["size"],
                checksum=row["checksum"],
                access_rights=row["access_rights"],
            ))

        records = {}
        for row in rows:
            records[row["id"]] = _row_to_record(
                row,
                variables.get(row["id"], []),
                distributions.get(row["id"], []),
            )
        return records

    def filter_ids(self, ids: Sequence[str], where_sql: str = "", params: Sequence[Any] = ()) -> List[str]:
        """
        Subset of ``ids`` whose records satisfy ``where_sql``, in input order.

        ``where_sql`` is a predicate over alias ``d``. Unknown ids are dropped.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []

        conn = self.connect()
        chunk = max(1, MAX_SQL_PARAMS - len(params))
        matched = set()
        for start in range(0, len(ids), chunk):
            batch = ids[start:start + chunk]
            sql = f"SELECT d.id FROM datasets d WHERE d.id IN ({','.join('?' * len(batch))})"
            if where_sql:
                sql += f" AND {where_sql}"
            matched.update(row["id"] for row in conn.execute(sql, [*batch, *params]))

        return [record_id for record_id in ids if record_id in matched]

    def ids_not_indexed(self, limit: Optional[int] = None) -> List[str]:
        sql = "SELECT id FROM datasets WHERE indexed_with IS NULL ORDER BY id"
        if limit:
            sql += f" LIMIT {int(limit)}"
        return [row["id"] for row in self.connect().execute(sql)]

    def all_ids(self) -> List[str]:
        return [row["id"] for row in self.connect().execute("SELECT id FROM datasets ORDER BY id")]

    def count_records(self) -> int:
        return self.connect().execute("SELECT COUNT(*) FROM datasets").fetchone()[0]

    def facet_counts(self, limit: int = 20) -> Dict[str, List[Dict[str, Any]]]:
        """Record counts by publisher, format, service, variable and decade."""
        conn = self.connect()

        def pairs(sql: str) -> List[Dict[str, Any]]:
            return [{"value": row[0], "count": row[1]} for row in conn.execute(sql, (limit,))]

        return {
            "publishers": pairs("""
                SELECT publisher, COUNT(*) AS n FROM datasets
                WHERE publisher IS NOT NULL AND publisher != ''
                GROUP BY publisher ORDER BY n DESC, publisher LIMIT ?
            """),
            "formats": pairs("""
                SELECT format, COUNT(DISTINCT dataset_id) AS n FROM distributions
                WHERE format IS NOT NULL AND format != ''
                GROUP BY format ORDER BY n DESC, format LIMIT ?
            """),
            "services": pairs("""
                SELECT access_service, COUNT(DISTINCT dataset_id) AS n FROM distributions
                GROUP BY access_service ORDER BY n DESC, access_service LIMIT ?
            """),
            "variables": pairs("""
                SELECT name, COUNT(DISTINCT dataset_id) AS n FROM variables
                GROUP BY name ORDER BY n DESC, name LIMIT ?
            """),
            "decades": pairs("""
                SELECT (CAST(substr(time_start, 1, 4) AS INTEGER) / 10) * 10 AS decade, COUNT(*) AS n
                FROM datasets WHERE time_start IS NOT NULL
                GROUP BY decade ORDER BY decade LIMIT ?
            """),
        }

    def variable_names(self, include: Sequence[str] = (), exclude: Sequence[str] = ()) -> List[str]:
        """
        Distinct variable names (standard name preferred) for autocomplete.

        A variable is kept when its standard name or name contains one of
        ``include`` and neither contains any of ``exclude``.
        """
        conn = self.connect()
        names = set()
        for row in conn.execute("SELECT DISTINCT name, standard_name FROM variables"):
            name = row["name"] or ""
            standard_name = row["standard_name"] or ""
            if include and not any(f in standard_name or f in name for f in include):
                continue
            if any(f in standard_name or f in name for f in exclude):
                continue
            names.add(standard_name or name)
        return sorted(n for n in names if n)

    def publisher_names(self) -> List[str]:
        rows = self.connect().execute(
            "SELECT DISTINCT lower(publisher) FROM datasets WHERE publisher IS NOT NULL AND publisher != ''"
        )
        return sorted(row[0] for row in rows)

    def platform_names(self) -> List[str]:
        names = set()
        for row in self.connect().execute("SELECT platforms_json FROM datasets"):
            names.update(str(p).lower() for p in json.loads(row["platforms_json"] or "[]"))
        return sorted(names)

    def get_stats(self) -> Dict[str, int]:
        conn = self.connect()
        return {
            "datasets": self.count_records(),
            "indexed": conn.execute(
                "SELECT COUNT(*) FROM datasets WHERE indexed_with IS NOT NULL"
            ).fetchone()[0],
            "with_bbox": conn.execute(
                "SELECT COUNT(*) FROM datasets WHERE min_x IS NOT NULL"
            ).fetchone()[0],
            "variables": conn.execute("SELECT COUNT(*) FROM variables").fetchone()[0],
            "distributions": conn.execute("SELECT COUNT(*) FROM distributions").fetchone()[0],
        }

    def close(self):
        """Close every connection opened by this instance."""
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections = []
        self._local = threading.local()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _row_to_record(
    row: sqlite3.Row,
    variables: List[Variable],
    distributions: List[Distribution],
) -> Record:
    bbox = None
    if row["min_x"] is not None:
        bbox = (row["min_x"], row["min_y"], row["max_x"], row["max_y"])

    return Record(
        id=row["id"],
        title=row["title"],
        abstract=row["abstract"],
        publisher=row["publisher"],
        license=row["license"],
        doi=row["doi"],
        source_system=row["source_system"],
        time_start=parse_datetime(row["time_start"]),
        time_end=parse_datetime(row["time_end"]),
        bbox=bbox,
        variables=variables,
        distributions=distributions,
        platforms=json.loads(row["platforms_json"] or "[]"),
        keywords=json.loads(row["keywords_json"] or "[]"),
        updated_at=parse_datetime(row["updated_at"]),
    )


def init_database(db_path: str) -> CatalogDatabase:
    """
    Initialize the catalog database with schema.

    Args:
        db_path: Path to database file

    Returns:
        CatalogDatabase instance
    """
    db = CatalogDatabase(db_path)
    db.initialize_schema()
    return db

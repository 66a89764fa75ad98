"""
txtai vector index over catalog records.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from txtai.embeddings import Embeddings

from .embedder import embedding_transform
from ..config.search_config import EMBEDDING_CONFIG

logger = logging.getLogger("indexing")

SYNTHETIC_TRANSFORM = "dataset_search.indexing.embedder.SyntheticEmbedder"


class IndexNotBuiltError(RuntimeError):
    """Raised when the index is searched before any record was added."""


def index_config(embedding_config: Optional[Dict] = None) -> Dict:
    """
    txtai configuration for the configured embedding model.

    ``path`` set to "synthetic" (or empty) selects deterministic synthetic
    vectors through an external transform.
    """
    embedding_config = embedding_config or EMBEDDING_CONFIG
    path = (embedding_config.get("path") or "").strip()

    if path.lower() in ("", "synthetic"):
        return synthetic_config(embedding_config)

    return {
        "path": path,
        "content": True,
        "backend": embedding_config.get("backend", "numpy"),
        "instructions": {
            "query": embedding_config.get("prefix_query", ""),
            "data": embedding_config.get("prefix_document", ""),
        },
        "vectors": {"trust_remote_code": embedding_config.get("trust_remote_code", True)},
    }


def synthetic_config(embedding_config: Optional[Dict] = None) -> Dict:
    embedding_config = embedding_config or EMBEDDING_CONFIG
    return {
        "method": "external",
        "transform": SYNTHETIC_TRANSFORM,
        "content": True,
        "backend": embedding_config.get("backend", "numpy"),
    }


class VectorIndex:
    """
    Manages the txtai embeddings index of record documents.

    The index stores one document per record id with content enabled, so
    search results carry the record id and a cosine score. It is built from
    either the configured model or an explicit embedding function; a model
    that fails to load degrades to synthetic vectors with one warning.
    """

    def __init__(
        self,
        index_path: Optional[str] = None,
        embedder=None,
        config: Optional[Dict] = None,
    ):
        """
        Args:
            index_path: Directory the index is saved to and loaded from;
                None keeps it in memory only
            embedder: Embedding function used as the txtai transform
            config: Embedding configuration (EMBEDDING_CONFIG when omitted)
        """
        self.index_path = Path(index_path) if index_path else None
        self.embedder = embedder
        self.embedding_config = config or EMBEDDING_CONFIG

        self.embeddings: Optional[Embeddings] = None
        self._degraded = False
        self._lock = threading.RLock()

    @classmethod
    def open(cls, index_path: Optional[str] = None, embedder=None, config: Optional[Dict] = None) -> "VectorIndex":
        """Load the saved index at ``index_path`` or start an empty one."""
        index = cls(index_path, embedder=embedder, config=config)
        if index.exists():
            index.load()
        else:
            index.create()
        return index

    @property
    def name(self) -> str:
        if self.embedder is not None:
            return getattr(self.embedder, "name", type(self.embedder).__name__)
        if self._degraded:
            return "synthetic"
        return index_config(self.embedding_config).get("path") or "synthetic"

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def persistent(self) -> bool:
        """True when save() can write the index to disk."""
        return self.index_path is not None and self.embedder is None

    def exists(self) -> bool:
        """Check if a saved index exists on disk."""
        return self.index_path is not None and (self.index_path / "config.json").exists()

    def _config(self) -> Dict:
        if self.embedder is not None:
            return {
                "method": "external",
                "transform": embedding_transform(self.embedder),
                "content": True,
                "backend": self.embedding_config.get("backend", "numpy"),
            }
        return index_config(self.embedding_config)

    def create(self):
        """Create a new, empty embeddings index."""
        with self._lock:
            config = self._config()
            try:
                self.embeddings = Embeddings(config)
            except Exception as e:
                if self.embedder is not None:
                    raise
                logger.warning(f"Embedding model unavailable ({e}); using synthetic vectors")
                self._degraded = True
                self.embeddings = Embeddings(synthetic_config(self.embedding_config))

            logger.info(f"Created vector index ({self.name})")

    def load(self):
        """Load the saved index from disk."""
        if not self.exists():
            raise FileNotFoundError(f"No index found at {self.index_path}")

        logger.info(f"Loading vector index from {self.index_path}...")
        with self._lock:
            self.embeddings = Embeddings()
            self.embeddings.load(str(self.index_path))

            # A model index that degraded at build time was saved with synthetic vectors
            built_synthetic = self.embeddings.config.get("transform") == SYNTHETIC_TRANSFORM
            wants_model = index_config(self.embedding_config).get("method") != "external"
            self._degraded = built_synthetic and wants_model
        logger.info(f"Vector index loaded with {self.count()} records")

    def save(self):
        """Save the index to disk."""
        if self.embeddings is None:
            raise RuntimeError("No index to save")
        if self.index_path is None:
            raise RuntimeError("Index has no path to save to")
        if self.embedder is not None:
            raise RuntimeError("Indexes built on an in-process embedding function cannot be saved")

        logger.info(f"Saving vector index to {self.index_path}...")
        with self._lock:
            self.index_path.mkdir(parents=True, exist_ok=True)
            self.embeddings.save(str(self.index_path))
        logger.info("Vector index saved")

    def upsert(self, documents: Sequence[Dict]):
        """
        Add or replace record documents.

        Args:
            documents: Dicts with at least ``id`` and ``text``
        """
        if self.embeddings is None:
            self.create()

        with self._lock:
            if self.count() == 0:
                self.embeddings.index(list(documents))
            else:
                self.embeddings.upsert(list(documents))

    def delete(self, ids: Sequence[str]) -> List[str]:
        """Remove records from the index; returns the ids that were present."""
        if self.embeddings is None or not ids:
            return []
        with self._lock:
            return list(self.embeddings.delete(list(ids)))

    def search(self, text: str, limit: int) -> List[Tuple[str, float]]:
        """
        Nearest records for ``text``.

        Returns:
            (record id, similarity clamped to [0, 1]) pairs, most similar first

        Raises:
            IndexNotBuiltError: nothing has been indexed yet
        """
        with self._lock:
            if self.count() == 0:
                raise IndexNotBuiltError("vector index is empty")
            results = self.embeddings.search(text, limit=limit)

        return [
            (str(result["id"]), min(1.0, max(0.0, float(result["score"]))))
            for result in results
        ]

    def count(self) -> int:
        if self.embeddings is None:
            return 0
        return self.embeddings.count()

    def info(self) -> Dict:
        return {
            "path": str(self.index_path) if self.index_path else None,
            "exists": self.exists(),
            "model": self.name,
            "degraded": self.degraded,
            "count": self.count(),
        }

    def close(self):
        """Close the index."""
        with self._lock:
            if self.embeddings is not None:
                self.embeddings.close()
                self.embeddings = None
                logger.info("Vector index closed")

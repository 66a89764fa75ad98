"""
Embedding functions for semantic retrieval.

An embedding function exposes embed(text) and embed_batch(texts). The
vector index hands it to txtai as an external transform, so any object with
that contract (the synthetic embedder, a test double) can back the index.
Model-backed vectors are produced by txtai itself from EMBEDDING_CONFIG.
"""

import math
from typing import List, Sequence

import numpy as np

from ..config.search_config import EMBEDDING_CONFIG


class SyntheticEmbedder:
    """
    Deterministic stand-in vectors: component k is sin(seed * (k + 1)).

    The seed is the sum of the text's code points plus its position in the
    batch (0 for single texts).
    """

    name = "synthetic"

    def __init__(self, dimensions: int = EMBEDDING_CONFIG["synthetic_dimensions"]):
        self.dimensions = dimensions

    def _vector(self, text: str, position: int) -> List[float]:
        seed = sum(ord(ch) for ch in text or "") + position
        return [math.sin(seed * (k + 1)) for k in range(self.dimensions)]

    def embed(self, text: str) -> List[float]:
        return self._vector(text, 0)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._vector(text, i) for i, text in enumerate(texts)]

    def __call__(self, texts: Sequence[str]) -> np.ndarray:
        # txtai resolves the transform by import path and calls the instance
        return embedding_transform(self)(texts)


def embedding_transform(embedder):
    """
    Wrap an embedding function as a txtai external transform.

    Rows are unit-normalized so index scores are cosine similarities.
    """
    def transform(texts: Sequence[str]) -> np.ndarray:
        vectors = np.asarray(embedder.embed_batch(list(texts)), dtype=np.float32)
        if vectors.ndim != 2:
            raise ValueError(f"embedding function returned shape {vectors.shape}")
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0.0] = 1.0
        return vectors / norms

    return transform

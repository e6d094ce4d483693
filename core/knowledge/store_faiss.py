# core/knowledge/store_faiss.py
import os
import pathlib
import tempfile
from typing import List, Tuple

import faiss
import numpy as np

from core.errors import ConfigurationError, ConsistencyFault, PersistenceWarning


def _as_unit_row(vector, dim: int) -> np.ndarray:
    vec = np.asarray(vector, dtype=np.float32).reshape(1, -1)
    if vec.shape[1] != dim:
        raise ConsistencyFault(f"Vector dimension {vec.shape[1]} does not match index dimension {dim}")
    norm = np.linalg.norm(vec)
    return vec if norm == 0 else vec / norm


class FaissStore:
    """
    HNSW index over unit vectors, addressed by dense slot (0..size-1).

    Inner product on L2-normalised vectors is cosine similarity, so the cosine
    distance reported by `search` is `1 - score`. Slots only grow by appending;
    faiss HNSW has no real delete, so removals go through `reset()` and a rebuild.
    """

    def __init__(self, dim: int = 1536, capacity: int = 10000, m: int = 16,
                 ef_construction: int = 200, ef_search: int = 64):
        self.dim = dim
        self.capacity = capacity
        self.m = m
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.index = self._new_index()

    def _new_index(self):
        index = faiss.IndexHNSWFlat(self.dim, self.m, faiss.METRIC_INNER_PRODUCT)
        index.hnsw.efConstruction = self.ef_construction
        index.hnsw.efSearch = self.ef_search
        return index

    @property
    def size(self) -> int:
        return int(self.index.ntotal)

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity

    def reset(self) -> None:
        self.index = self._new_index()

    def insert(self, vector, slot: int) -> None:
        if slot != self.size:
            raise ConsistencyFault(f"Insert at slot {slot} but index holds {self.size} vectors")
        if self.is_full:
            raise ConfigurationError(
                f"Vector index capacity ({self.capacity}) reached; raise MAX_ELEMENTS"
            )
        self.index.add(_as_unit_row(vector, self.dim))

    def search(self, vector, k: int) -> List[Tuple[int, float]]:
        """Returns up to k (slot, cosine distance) pairs, nearest first."""
        n = min(int(k), self.size)
        if n <= 0:
            return []
        scores, slots = self.index.search(_as_unit_row(vector, self.dim), n)
        hits = [
            (int(slot), 1.0 - float(score))
            for slot, score in zip(slots[0], scores[0])
            if slot != -1
        ]
        hits.sort(key=lambda h: h[1])
        return hits

    def vector_at(self, slot: int) -> np.ndarray:
        if not 0 <= slot < self.size:
            raise IndexError(slot)
        return self.index.reconstruct(int(slot))

    # --- persistence --------------------------------------------------------------

    def load(self, path) -> int:
        """Replaces the in-memory index with the snapshot at `path`."""
        try:
            index = faiss.read_index(str(path))
        except RuntimeError as e:
            raise PersistenceWarning(f"Cannot read vector index {path}: {e}") from e
        if index.d != self.dim:
            raise PersistenceWarning(
                f"Vector index {path} has dimension {index.d}, expected {self.dim}"
            )
        if index.metric_type != faiss.METRIC_INNER_PRODUCT:
            raise PersistenceWarning(f"Vector index {path} does not use the inner-product metric")
        if index.ntotal > self.capacity:
            raise PersistenceWarning(
                f"Vector index {path} holds {index.ntotal} vectors, above capacity {self.capacity}"
            )
        if hasattr(index, "hnsw"):
            index.hnsw.efSearch = self.ef_search
        self.index = index
        return self.size

    def save(self, path) -> None:
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        os.close(fd)
        try:
            faiss.write_index(self.index, tmp)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

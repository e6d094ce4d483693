# core/indexing/coordinator.py
import threading
import uuid
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from config.logging import get_logger
from config.settings import Settings
from core.errors import (
    ConfigurationError,
    ConsistencyFault,
    DuplicateExample,
    EmbeddingUnavailable,
    ExampleNotFound,
    PersistenceWarning,
)
from core.knowledge.defaults import DEFAULT_EXAMPLES
from core.knowledge.example_store import ExampleStore
from core.knowledge.schemas import DuplicateGroup, ExampleMetadata, SimilarExample, TrainingExample
from core.knowledge.store_faiss import FaissStore

log = get_logger("coordinator")


def _new_example_id() -> str:
    return f"example_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IndexCoordinator:
    """
    Owns the example store and the vector index and keeps them slot-aligned:
    store position i is always index slot i.

    - Startup: load both snapshots, trust the index only if it matches the store,
      otherwise re-embed (REINDEX_ON_MISMATCH) or run degraded until the next add.
    - Add: embed first, then append to both and persist, so a failed embedding
      call changes nothing.
    - Removal: re-embed the survivors into a fresh index, then swap. This is the
      expensive path (one embedding per remaining example) and is meant to be rare.

    Every read-modify-persist sequence and every index search runs under one lock.
    """

    def __init__(self, settings: Settings, embedder, defaults: Optional[List[Dict[str, Any]]] = None):
        self.settings = settings
        self.embedder = embedder
        self.defaults = DEFAULT_EXAMPLES if defaults is None else defaults

        self.store = ExampleStore(settings.TRAINING_DATA_PATH)
        self.index = self._new_index()
        self.id_to_slot: Dict[str, int] = {}

        self._lock = threading.RLock()
        self._fault: Optional[str] = None

    def _new_index(self) -> FaissStore:
        s = self.settings
        return FaissStore(
            dim=s.EMBED_DIM,
            capacity=s.MAX_ELEMENTS,
            m=s.HNSW_M,
            ef_construction=s.HNSW_EF_CONSTRUCTION,
            ef_search=s.HNSW_EF_SEARCH,
        )

    # --- startup ------------------------------------------------------------------

    def start(self, seed: Optional[bool] = None) -> None:
        with self._lock:
            self.settings.data_path.mkdir(parents=True, exist_ok=True)
            self.store.load()
            self._load_index()
            self._rebuild_id_map()

            if len(self.store) and self.index.size != len(self.store):
                log.warning(
                    f"Vector index holds {self.index.size} vectors for {len(self.store)} examples; "
                    "discarding it"
                )
                self.index = self._new_index()
                if self.settings.REINDEX_ON_MISMATCH:
                    try:
                        self.reindex_all()
                    except EmbeddingUnavailable as e:
                        log.warning(
                            f"Re-embedding at startup failed ({e}); similarity search returns "
                            "no results until the next add or reindex"
                        )

            seed = self.settings.SEED_DEFAULTS if seed is None else seed
            if not len(self.store) and seed:
                self._seed_defaults()

            log.info(f"Ready: {len(self.store)} examples, {self.index.size} indexed")

    def _load_index(self) -> None:
        path = self.settings.VECTOR_INDEX_PATH
        if not path.exists():
            return
        if not len(self.store):
            log.warning(f"Deleting vector index {path}: there are no training examples")
            path.unlink()
            return
        try:
            self.index.load(path)
        except PersistenceWarning as e:
            log.warning(f"{e}; starting with an empty index")
            self.index = self._new_index()

    def _seed_defaults(self) -> None:
        for item in self.defaults:
            try:
                self.add_example(item["question"], item["query"], item.get("metadata"))
            except DuplicateExample:
                continue
            except EmbeddingUnavailable as e:
                log.warning(f"Could not seed default examples: {e}")
                return
        log.info(f"Seeded {len(self.store)} default examples")

    # --- reads --------------------------------------------------------------------

    def find_similar(self, question: str, limit: int, threshold: float) -> List[SimilarExample]:
        self._check_fault()
        if not len(self.store):
            return []

        vector = self.embedder.embed(question)

        with self._lock:
            self._check_fault()
            total = len(self.store)
            if not total:
                return []
            hits = self.index.search(vector, min(limit * 2, total))

            results: List[SimilarExample] = []
            for slot, distance in hits:
                if slot >= total:
                    self._raise_fault(f"Index returned slot {slot} but the store holds {total} examples")
                similarity = 1.0 - distance
                if similarity < threshold:
                    continue
                results.append(SimilarExample(example=self.store.get(slot), similarity=similarity))
            return results[:limit]

    def get_example(self, example_id: str) -> TrainingExample:
        with self._lock:
            self._check_fault()
            slot = self.id_to_slot.get(example_id)
            if slot is None:
                raise ExampleNotFound(example_id)
            example = self.store.get(slot)
            if example.id != example_id:
                self._raise_fault(f"Slot map points {example_id} at slot {slot} holding {example.id}")
            return example

    def examples(self) -> List[TrainingExample]:
        with self._lock:
            self._check_fault()
            return self.store.all()

    def duplicate_groups(self) -> List[DuplicateGroup]:
        with self._lock:
            self._check_fault()
            return self.store.duplicate_groups()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "examples": len(self.store),
                "indexed": self.index.size,
                "aligned": self.index.size == len(self.store),
                "faulted": self._fault is not None,
            }

    # --- writes -------------------------------------------------------------------

    def add_example(self, question: str, query: str, metadata: Optional[Dict[str, Any]] = None) -> TrainingExample:
        with self._lock:
            self._check_fault()
            existing = self.store.find_duplicate_of(question, query)
            if existing is not None:
                raise DuplicateExample(existing.id)

            self._ensure_aligned()
            if self.index.is_full:
                raise ConfigurationError(
                    f"Vector index capacity ({self.index.capacity}) reached; raise MAX_ELEMENTS"
                )

            vector = self.embedder.embed(question)

            example = TrainingExample(
                id=_new_example_id(),
                question=question,
                query=query,
                metadata=ExampleMetadata(**{**(metadata or {}), "created_at": _utc_now_iso()}),
            )
            slot = self.store.append(example)
            try:
                self.index.insert(vector, slot)
            except ConsistencyFault as e:
                self._raise_fault(str(e))
            self.id_to_slot[example.id] = slot
            self._persist()

            log.info(f"Added training example {example.id} at slot {slot}")
            return example

    def remove_examples(self, ids: Iterable[str]) -> List[str]:
        """
        Removes the given ids and rebuilds the index from the survivors.
        Returns the ids actually removed, in store order.
        """
        with self._lock:
            self._check_fault()
            drop = set(ids)
            removed = [ex.id for ex in self.store.all() if ex.id in drop]
            if not removed:
                return []

            remaining = self.store.remove_by_ids(drop)
            log.info(f"Removing {len(removed)} examples; re-embedding {len(remaining)} survivors")
            new_index = self._build_index(remaining)

            self.store.replace_all(remaining)
            self.index = new_index
            self._rebuild_id_map()
            self._persist()
            return removed

    def reindex_all(self) -> int:
        """Re-embeds every example into a fresh index. Returns the number indexed."""
        with self._lock:
            self._check_fault()
            self.index = self._build_index(self.store.all())
            self._rebuild_id_map()
            self._persist()
            log.info(f"Reindexed {self.index.size} training examples")
            return self.index.size

    # --- internals ----------------------------------------------------------------

    def _build_index(self, examples: List[TrainingExample]) -> FaissStore:
        index = self._new_index()
        if len(examples) > index.capacity:
            raise ConfigurationError(
                f"{len(examples)} examples exceed vector index capacity ({index.capacity})"
            )
        vectors = self.embedder.embed_batch([ex.question for ex in examples])
        for slot, vector in enumerate(vectors):
            index.insert(vector, slot)
        return index

    def _ensure_aligned(self) -> None:
        if self.index.size != len(self.store):
            log.info(f"Index out of step ({self.index.size}/{len(self.store)}); rebuilding before write")
            self.reindex_all()

    def _rebuild_id_map(self) -> None:
        self.id_to_slot = {ex.id: slot for slot, ex in enumerate(self.store.all())}

    def _persist(self) -> None:
        self.store.persist()
        path = self.settings.VECTOR_INDEX_PATH
        if self.index.size:
            self.index.save(path)
        elif path.exists():
            path.unlink()

    def _check_fault(self) -> None:
        if self._fault is not None:
            raise ConsistencyFault(self._fault)

    def _raise_fault(self, message: str) -> None:
        self._fault = message
        log.critical(f"Consistency fault: {message}")
        raise ConsistencyFault(message)

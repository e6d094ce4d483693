# rag/service.py
from typing import Any, Dict, List, Optional

from config.settings import Settings
from core.indexing.coordinator import IndexCoordinator
from core.knowledge.schemas import (
    DuplicateGroup,
    ExampleListing,
    RemovalResult,
    SimilarExample,
    TrainingExample,
)
from . import policies
from .embedder import Embedder


class QueryService:
    """
    Public operations over the training set. Arguments are validated here,
    before any embedding call or mutation; results are models, not text.
    """

    def __init__(self, coordinator: IndexCoordinator):
        self.coordinator = coordinator

    def find_similar(self, question: str, limit: Optional[int] = None,
                     threshold: Optional[float] = None) -> List[SimilarExample]:
        question = policies.require_text(question, "question")
        limit = policies.clamp_limit(limit, policies.DEFAULT_SIMILAR_LIMIT, policies.MAX_SIMILAR_LIMIT)
        threshold = policies.clamp_threshold(threshold)
        return self.coordinator.find_similar(question, limit, threshold)

    def add_example(self, question: str, query: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        question = policies.require_text(question, "question")
        query = policies.require_text(query, "query")
        meta = policies.validate_metadata(metadata)
        return self.coordinator.add_example(question, query, meta).id

    def get_example(self, example_id: str) -> TrainingExample:
        return self.coordinator.get_example(example_id)

    def list_examples(self, limit: Optional[int] = None, domain: Optional[str] = None) -> ExampleListing:
        limit = policies.clamp_limit(limit, policies.DEFAULT_LIST_LIMIT, policies.MAX_LIST_LIMIT)
        examples = self.coordinator.examples()
        total = len(examples)
        if domain:
            examples = [ex for ex in examples if ex.metadata is not None and ex.metadata.domain == domain]
        return ExampleListing(examples=examples[:limit], total=total)

    def find_duplicate_groups(self) -> List[DuplicateGroup]:
        return self.coordinator.duplicate_groups()

    def remove_duplicates(self, confirm: bool = False) -> RemovalResult:
        original = len(self.coordinator.examples())
        if confirm is not True:
            return RemovalResult(confirmation_required=True, original_count=original, new_count=original)

        ids = [dup for group in self.coordinator.duplicate_groups() for dup in group.duplicate_ids]
        removed = self.coordinator.remove_examples(ids) if ids else []
        return RemovalResult(
            removed_count=len(removed),
            removed_ids=removed,
            original_count=original,
            new_count=original - len(removed),
        )

    def training_data(self) -> List[TrainingExample]:
        return self.coordinator.examples()

    def health(self) -> Dict[str, Any]:
        return self.coordinator.stats()


def build_service(settings: Settings, embedder=None, defaults=None, seed: Optional[bool] = None) -> QueryService:
    """Wires embedder, coordinator and service for one data directory and runs startup sync."""
    if embedder is None:
        embedder = Embedder(settings)
    coordinator = IndexCoordinator(settings, embedder, defaults=defaults)
    coordinator.start(seed=seed)
    return QueryService(coordinator)

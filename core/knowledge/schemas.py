from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Complexity = Literal["simple", "medium", "complex"]

# Stand-in for examples written without a timestamp; sorts before everything.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ExampleMetadata(BaseModel):
    # Unrecognised keys are kept as-is and written back to disk.
    model_config = ConfigDict(extra="allow")

    domain: Optional[str] = None
    # Any string loads; the closed set only applies to new examples.
    complexity: Optional[str] = None
    created_at: Optional[str] = None
    tags: Optional[List[str]] = None

    def created_at_or_epoch(self) -> datetime:
        if not self.created_at:
            return EPOCH
        try:
            ts = datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))
        except ValueError:
            return EPOCH
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts


class NewExampleMetadata(ExampleMetadata):
    complexity: Optional[Complexity] = None


class TrainingExample(BaseModel):
    id: str
    question: str
    query: str
    metadata: Optional[ExampleMetadata] = None

    def dedup_key(self) -> tuple:
        return normalize_pair(self.question, self.query)

    def created_at(self) -> datetime:
        return self.metadata.created_at_or_epoch() if self.metadata else EPOCH


def normalize_pair(question: str, query: str) -> tuple:
    return question.strip().lower(), query.strip().lower()


class SimilarExample(BaseModel):
    example: TrainingExample
    similarity: float


class ExampleListing(BaseModel):
    examples: List[TrainingExample]
    total: int


class DuplicateGroup(BaseModel):
    question: str
    query: str
    keep_id: str
    duplicate_ids: List[str]
    # Oldest first; members[0] is the kept example.
    members: List[TrainingExample] = Field(default_factory=list)


class RemovalResult(BaseModel):
    confirmation_required: bool = False
    removed_count: int = 0
    removed_ids: List[str] = Field(default_factory=list)
    original_count: int = 0
    new_count: int = 0

# core/knowledge/example_store.py
import json
import os
import pathlib
import tempfile
import time
from typing import Dict, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from config.logging import get_logger
from core.errors import PersistenceWarning
from core.knowledge.schemas import DuplicateGroup, TrainingExample, normalize_pair

log = get_logger("example_store")

_examples_adapter = TypeAdapter(List[TrainingExample])


class ExampleStore:
    """
    Ordered training examples backed by one JSON snapshot.

    Position in this list is the example's slot in the vector index, so the
    only mutations are append and wholesale replacement.
    """

    def __init__(self, path):
        self.path = pathlib.Path(path)
        self._examples: List[TrainingExample] = []

    def __len__(self) -> int:
        return len(self._examples)

    def all(self) -> List[TrainingExample]:
        return list(self._examples)

    def get(self, slot: int) -> TrainingExample:
        return self._examples[slot]

    # --- snapshot -----------------------------------------------------------------

    def read_snapshot(self) -> List[TrainingExample]:
        """Parses the snapshot file. Raises PersistenceWarning if it is unusable."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceWarning(f"Cannot read training data {self.path}: {e}") from e
        if not isinstance(raw, list):
            raise PersistenceWarning(f"Training data {self.path} is not a list")
        try:
            examples = _examples_adapter.validate_python(raw)
        except ValidationError as e:
            raise PersistenceWarning(f"Training data {self.path} has invalid entries: {e}") from e
        ids = [ex.id for ex in examples]
        if len(set(ids)) != len(ids):
            raise PersistenceWarning(f"Training data {self.path} contains repeated ids")
        return examples

    def load(self) -> int:
        """
        Loads the snapshot. A missing file means an empty store; an unusable one
        is moved aside and the store starts empty. Never raises.
        """
        self._examples = []
        if not self.path.exists():
            log.info(f"No training data at {self.path}; starting empty")
            return 0
        try:
            self._examples = self.read_snapshot()
        except PersistenceWarning as e:
            aside = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
            try:
                os.replace(self.path, aside)
                log.warning(f"{e}. Moved to {aside.name}; starting with an empty store")
            except OSError as move_err:
                log.warning(f"{e}. Could not move it aside ({move_err}); starting with an empty store")
            return 0
        log.info(f"Loaded {len(self._examples)} training examples from {self.path}")
        return len(self._examples)

    def persist(self) -> None:
        """Writes the whole list to a temp file and swaps it in."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [ex.model_dump(mode="json", exclude_unset=True) for ex in self._examples]
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # --- mutation -----------------------------------------------------------------

    def append(self, example: TrainingExample) -> int:
        self._examples.append(example)
        return len(self._examples) - 1

    def replace_all(self, examples: Iterable[TrainingExample]) -> None:
        self._examples = list(examples)

    def remove_by_ids(self, ids: Iterable[str]) -> List[TrainingExample]:
        """Returns the examples that survive removal, in their current order. Does not mutate."""
        drop = set(ids)
        return [ex for ex in self._examples if ex.id not in drop]

    # --- duplicates ---------------------------------------------------------------

    def find_duplicate_of(self, question: str, query: str) -> Optional[TrainingExample]:
        key = normalize_pair(question, query)
        for ex in self._examples:
            if ex.dedup_key() == key:
                return ex
        return None

    def duplicate_groups(self) -> List[DuplicateGroup]:
        """
        Groups examples sharing a normalised (question, query). The oldest member by
        created_at is kept; missing timestamps count as the epoch and ties keep
        store order.
        """
        groups: Dict[tuple, List[TrainingExample]] = {}
        for ex in self._examples:
            groups.setdefault(ex.dedup_key(), []).append(ex)

        out: List[DuplicateGroup] = []
        for members in groups.values():
            if len(members) < 2:
                continue
            ordered = sorted(members, key=lambda ex: ex.created_at())
            out.append(DuplicateGroup(
                question=ordered[0].question,
                query=ordered[0].query,
                keep_id=ordered[0].id,
                duplicate_ids=[ex.id for ex in ordered[1:]],
                members=ordered,
            ))
        return out

import hashlib
import json

import numpy as np
import pytest

from config.settings import Settings
from core.errors import EmbeddingUnavailable
from rag.service import build_service

DIM = 64

USERS_EXAMPLE = {
    "question": "How many users are in the system?",
    "query": "MATCH (u:User) RETURN count(u)",
}


def _seeded(text: str) -> np.ndarray:
    seed = int(hashlib.md5(text.encode("utf-8")).hexdigest()[:8], 16)
    vec = np.random.default_rng(seed).standard_normal(DIM)
    return vec / np.linalg.norm(vec)


class FakeEmbedder:
    """
    Deterministic stand-in for the embedding gateway. Unrelated texts get
    near-orthogonal vectors; `aliases` maps a text to (base text, noise) so
    paraphrases land close to the base (noise 0.3 gives cosine ~0.95).
    """

    def __init__(self, dim: int = DIM, aliases=None):
        self.dim = dim
        self.aliases = {k.strip().lower(): v for k, v in (aliases or {}).items()}
        self.calls = 0
        self.fail = False

    def vector_for(self, text: str) -> np.ndarray:
        key = text.strip().lower()
        if key in self.aliases:
            base, noise = self.aliases[key]
            vec = _seeded(base.strip().lower()) + noise * _seeded("noise:" + key)
        else:
            vec = _seeded(key)
        return (vec / np.linalg.norm(vec)).astype(np.float32)

    def embed(self, text: str):
        if self.fail:
            raise EmbeddingUnavailable("Failed to generate embedding: upstream down", upstream="upstream down")
        self.calls += 1
        return self.vector_for(text).tolist()

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        OPENAI_API_KEY="",
        DATA_DIR=str(tmp_path / "data"),
        EMBED_DIM=DIM,
        MAX_ELEMENTS=1000,
        SEED_DEFAULTS=False,
        REINDEX_ON_MISMATCH=True,
    )


@pytest.fixture
def embedder():
    return FakeEmbedder(aliases={"How many users exist?": (USERS_EXAMPLE["question"], 0.3)})


@pytest.fixture
def make_service(settings, embedder):
    def _make(**kwargs):
        kwargs.setdefault("embedder", embedder)
        return build_service(settings, **kwargs)
    return _make


@pytest.fixture
def write_training_data(settings):
    def _write(examples):
        settings.data_path.mkdir(parents=True, exist_ok=True)
        settings.TRAINING_DATA_PATH.write_text(json.dumps(examples, indent=2), encoding="utf-8")
    return _write


@pytest.fixture
def users_example():
    return dict(USERS_EXAMPLE)

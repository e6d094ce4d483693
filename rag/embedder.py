# rag/embedder.py
from typing import List, Optional

import numpy as np

from adapters.llm.openai_client import create_embeddings, get_openai
from config.settings import Settings
from core.errors import EmbeddingUnavailable, MissingEmbeddingCredential


class Embedder:
    """
    Embedding gateway, switching on the model name:
      - OpenAI embeddings when EMBED_MODEL starts with 'text-embedding'
      - Sentence-Transformers otherwise (HF model id, needs the `local` extra)
    Returned vectors are L2-normalized and exactly `dim` long.

    One call per request: no cache and no retries. A missing API key is
    reported on every call before any network I/O, so the process can still
    start and serve reads without one.

    Usage:
      e = Embedder(settings)
      vec = e.embed("How many users are there?")
    """

    def __init__(self, settings: Settings, client=None):
        self.model_name = settings.EMBED_MODEL
        self.dim = settings.EMBED_DIM
        self.batch_size = max(1, settings.EMBED_BATCH_SIZE)
        self.use_openai = self.model_name.startswith("text-embedding")

        self.client = client
        self._st_model = None
        if self.use_openai and self.client is None and settings.OPENAI_API_KEY:
            self.client = get_openai(settings.OPENAI_API_KEY, settings.EMBED_TIMEOUT)

    @property
    def configured(self) -> bool:
        return not self.use_openai or self.client is not None

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        self._require_credential()
        out: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i: i + self.batch_size]
            vecs = self._call_provider(batch)
            if len(vecs) != len(batch):
                raise EmbeddingUnavailable(
                    f"Failed to generate embedding: expected {len(batch)} vectors, got {len(vecs)}"
                )
            out.extend(self._check_and_normalize(v) for v in vecs)
        return out

    def _require_credential(self) -> None:
        if not self.configured:
            raise MissingEmbeddingCredential(
                "OpenAI API key not configured. Provide it via --openai-key "
                "or set the OPENAI_API_KEY environment variable."
            )

    def _call_provider(self, batch: List[str]) -> list:
        try:
            if self.use_openai:
                return create_embeddings(self.client, self.model_name, batch)
            return self._local_model().encode(batch, normalize_embeddings=False).tolist()
        except Exception as e:
            raise EmbeddingUnavailable(f"Failed to generate embedding: {e}", upstream=str(e)) from e

    def _local_model(self):
        if self._st_model is None:
            from sentence_transformers import SentenceTransformer
            self._st_model = SentenceTransformer(self.model_name)
        return self._st_model

    def _check_and_normalize(self, vec) -> List[float]:
        arr = np.asarray(vec, dtype=np.float32)
        if arr.ndim != 1 or arr.shape[0] != self.dim:
            raise EmbeddingUnavailable(
                f"Failed to generate embedding: got {arr.shape} vector, expected ({self.dim},)"
            )
        norm = np.linalg.norm(arr)
        return arr.tolist() if norm == 0 else (arr / norm).tolist()


# config/settings.py
import argparse
import os
import pathlib
from typing import List, Optional

from dotenv import load_dotenv

# Load .env from project root
load_dotenv()

def _to_bool(val, default=True):
    if val is None:
        return default
    return str(val).strip().lower() in ("true", "1", "yes", "y")

def _to_float(val, default=0.0):
    try:
        return float(val)
    except (TypeError, ValueError):
        return default

def _to_int(val, default=0):
    try:
        return int(val)
    except (TypeError, ValueError):
        return default

def _embed_dim(model_name: str) -> int:
    if "text-embedding-3-large" in model_name:
        return 3072
    if "text-embedding-3-small" in model_name or "text-embedding-ada-002" in model_name:
        return 1536
    if "MiniLM" in model_name:
        return 384
    return 768


class Settings:
    """
    Runtime configuration. Values come from the environment (and .env);
    keyword overrides win, which is how CLI arguments take precedence.
    """

    def __init__(self, **overrides):
        # Embeddings
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.EMBED_MODEL = os.getenv("EMBED_MODEL", "text-embedding-3-small")
        self.EMBED_DIM = _to_int(os.getenv("EMBED_DIM"), 0)
        self.EMBED_BATCH_SIZE = _to_int(os.getenv("EMBED_BATCH_SIZE"), 128)
        self.EMBED_TIMEOUT = _to_float(os.getenv("EMBED_TIMEOUT"), 30.0)

        # Storage
        self.DATA_DIR = os.getenv("DATA_DIR", "data")

        # Vector index (faiss HNSW)
        self.MAX_ELEMENTS = _to_int(os.getenv("MAX_ELEMENTS"), 10000)
        self.HNSW_M = _to_int(os.getenv("HNSW_M"), 16)
        self.HNSW_EF_CONSTRUCTION = _to_int(os.getenv("HNSW_EF_CONSTRUCTION"), 200)
        self.HNSW_EF_SEARCH = _to_int(os.getenv("HNSW_EF_SEARCH"), 64)

        # Startup behaviour
        self.REINDEX_ON_MISMATCH = _to_bool(os.getenv("REINDEX_ON_MISMATCH"), True)
        self.SEED_DEFAULTS = _to_bool(os.getenv("SEED_DEFAULTS"), True)

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown setting: {name}")
            if value is not None:
                setattr(self, name, value)

        if not self.EMBED_DIM:
            self.EMBED_DIM = _embed_dim(self.EMBED_MODEL)

    @property
    def data_path(self) -> pathlib.Path:
        return pathlib.Path(self.DATA_DIR)

    @property
    def TRAINING_DATA_PATH(self) -> pathlib.Path:
        return self.data_path / "training_data.json"

    @property
    def VECTOR_INDEX_PATH(self) -> pathlib.Path:
        return self.data_path / "vector_index.bin"

    @classmethod
    def from_cli(cls, argv: Optional[List[str]] = None, **extra) -> "Settings":
        args, _ = parse_cli_args(argv)
        return cls(OPENAI_API_KEY=args.openai_key, DATA_DIR=args.data_dir, LOG_LEVEL=args.log_level, **extra)


def build_arg_parser(description: str = "Few-shot query example service") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--openai-key", dest="openai_key", default=None,
                        help="OpenAI API key (overrides OPENAI_API_KEY)")
    parser.add_argument("--data-dir", dest="data_dir", default=None,
                        help="Directory holding training_data.json and vector_index.bin (overrides DATA_DIR)")
    parser.add_argument("--log-level", dest="log_level", default=None,
                        help="Logging level (overrides LOG_LEVEL)")
    return parser


def parse_cli_args(argv: Optional[List[str]] = None, parser: Optional[argparse.ArgumentParser] = None):
    """Returns (known_args, unknown_args); unknown flags are left for the caller."""
    parser = parser or build_arg_parser()
    return parser.parse_known_args(argv)


settings = Settings()

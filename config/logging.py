
# config/logging.py
import logging
from typing import Optional

ROOT_LOGGER = "query_assistant"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure(level: Optional[str] = None) -> logging.Logger:
    """Attaches one stderr handler to the service root logger (idempotent)."""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    if level:
        root.setLevel(str(level).upper())
    elif root.level == logging.NOTSET:
        root.setLevel(logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    configure()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

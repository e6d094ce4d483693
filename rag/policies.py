import math
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.errors import InvalidArgument
from core.knowledge.schemas import ExampleMetadata, NewExampleMetadata

DEFAULT_SIMILAR_LIMIT = 3
MAX_SIMILAR_LIMIT = 10
DEFAULT_THRESHOLD = 0.7
DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 100


def require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"'{field}' must be a non-empty string")
    return value

def clamp_limit(limit, default: int, maximum: int) -> int:
    if limit is None:
        return default
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or not math.isfinite(limit):
        raise InvalidArgument(f"'limit' must be a number, got {limit!r}")
    limit = int(limit)
    if limit < 1:
        raise InvalidArgument(f"'limit' must be at least 1, got {limit}")
    return min(limit, maximum)

def clamp_threshold(threshold) -> float:
    if threshold is None:
        return DEFAULT_THRESHOLD
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not math.isfinite(threshold):
        raise InvalidArgument(f"'threshold' must be a finite number, got {threshold!r}")
    return min(max(float(threshold), 0.0), 1.0)

def validate_metadata(metadata: Optional[Any]) -> Dict[str, Any]:
    """Checks the recognised keys and passes everything else through untouched."""
    if metadata is None:
        return {}
    if isinstance(metadata, ExampleMetadata):
        metadata = metadata.model_dump(exclude_unset=True)
    if not isinstance(metadata, dict):
        raise InvalidArgument("'metadata' must be an object")
    try:
        return NewExampleMetadata.model_validate(metadata).model_dump(exclude_unset=True)
    except ValidationError as e:
        raise InvalidArgument(f"Invalid metadata: {e.errors()[0].get('msg', e)}") from e

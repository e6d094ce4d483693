
# jobs/reindex_examples.py
"""
Re-embeds every training example into a fresh vector index.

Use after restoring training_data.json by hand, after an index snapshot was
lost, or after switching EMBED_MODEL. Costs one embedding per example.
"""
import sys
from typing import List, Optional

from config.logging import configure
from config.settings import Settings
from core.errors import QueryAssistantError
from rag.service import build_service


def main(argv: Optional[List[str]] = None) -> int:
    # Reindexing happens explicitly below, not as a startup side effect.
    settings = Settings.from_cli(argv, REINDEX_ON_MISMATCH=False)
    configure(settings.LOG_LEVEL)
    service = build_service(settings, seed=False)
    try:
        total = service.coordinator.reindex_all()
    except QueryAssistantError as e:
        print(f"Reindex failed: {e}", file=sys.stderr)
        return 1
    print(f"Reindexed examples: {total} (data_dir={settings.DATA_DIR}, model={settings.EMBED_MODEL})")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))

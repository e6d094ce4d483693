from typing import List

from core.knowledge.schemas import SimilarExample

NO_MATCHES_TEXT = (
    "No similar examples found. You may need to add more training data "
    "or lower the similarity threshold."
)


def _format_example(i: int, item: SimilarExample) -> str:
    ex = item.example
    lines = [
        f"Example {i} (similarity: {item.similarity:.3f}):",
        f"Question: {ex.question}",
        f"Query: {ex.query}",
    ]
    meta = ex.metadata
    if meta is not None and meta.domain:
        lines.append(f"Domain: {meta.domain}")
    if meta is not None and meta.complexity:
        lines.append(f"Complexity: {meta.complexity}")
    return "\n".join(lines)


def format_few_shot(question: str, results: List[SimilarExample]) -> str:
    """Renders similar examples as a few-shot block for a query-generation prompt."""
    if not results:
        return NO_MATCHES_TEXT
    blocks = "\n\n".join(_format_example(i, item) for i, item in enumerate(results, start=1))
    return f'Found {len(results)} similar examples for: "{question}"\n\n{blocks}'

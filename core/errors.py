
# core/errors.py
"""
Error taxonomy for the example store / vector index pair.

Everything derives from QueryAssistantError so the transport can map the
whole family in one place; nothing below the transport stringifies them.
"""


class QueryAssistantError(Exception):
    pass


class ConfigurationError(QueryAssistantError):
    """
    Deployment is missing something an operation needs (embedding credential,
    index capacity). Fatal to the operation only, never to the process.
    """


class EmbeddingUnavailable(QueryAssistantError):
    """The embedding provider failed; `upstream` holds its message."""

    def __init__(self, message: str, upstream: str = ""):
        super().__init__(message)
        self.upstream = upstream or message


class MissingEmbeddingCredential(ConfigurationError, EmbeddingUnavailable):
    """No API key configured; raised before any network call."""


class DuplicateExample(QueryAssistantError):
    def __init__(self, existing_id: str):
        super().__init__(f"Duplicate training example found. Existing example ID: {existing_id}")
        self.existing_id = existing_id


class InvalidArgument(QueryAssistantError, ValueError):
    pass


class PersistenceWarning(QueryAssistantError):
    """A snapshot could not be loaded; callers on the startup path recover to empty."""


class ConsistencyFault(QueryAssistantError):
    """Store position / index slot misalignment. Not recoverable in this process."""


class ExampleNotFound(QueryAssistantError, KeyError):
    def __init__(self, example_id: str):
        super().__init__(f"No training example with ID: {example_id}")
        self.example_id = example_id

    def __str__(self) -> str:
        return self.args[0]

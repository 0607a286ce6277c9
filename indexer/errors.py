"""Error taxonomy for knowledgebase ingestion and authoring."""

from typing import Any, List, Optional, Tuple


class KnowledgebaseError(Exception):
    """Base class for all knowledgebase errors."""


class ParseError(KnowledgebaseError):
    """Raised when a document cannot be read or its metadata header is malformed."""

    def __init__(self, path: Optional[str], reason: str):
        self.path = path
        self.reason = reason
        where = f"{path}: " if path else ""
        super().__init__(f"{where}{reason}")


class ConflictError(KnowledgebaseError):
    """Raised when an authored document collides with an existing key."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field}: {value}")


class SimilarityRejection(KnowledgebaseError):
    """Raised when a candidate document is too similar to existing content."""

    def __init__(self, matches: List[Tuple[Any, float]], threshold: float):
        self.matches = matches
        self.threshold = threshold
        super().__init__(
            f"Content similarity >= {threshold} detected against "
            f"{len(matches)} existing document(s)"
        )


class StorageError(KnowledgebaseError):
    """Unrecoverable storage failure (disk full, corrupt index, ...)."""

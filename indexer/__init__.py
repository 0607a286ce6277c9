"""Storage layer: typed records, the SQLite knowledge store and lookups."""

from .errors import (
    KnowledgebaseError,
    ParseError,
    ConflictError,
    SimilarityRejection,
    StorageError
)
from .models import (
    Level,
    KnowledgeRecord,
    QueryFilters,
    ProjectRecord,
    Challenge,
    Step,
    Roadmap,
    RoadmapNode,
    RoadmapEdge,
    normalize_level
)
from .sqlite_store import KnowledgeStore

__all__ = [
    'KnowledgebaseError',
    'ParseError',
    'ConflictError',
    'SimilarityRejection',
    'StorageError',
    'Level',
    'KnowledgeRecord',
    'QueryFilters',
    'ProjectRecord',
    'Challenge',
    'Step',
    'Roadmap',
    'RoadmapNode',
    'RoadmapEdge',
    'normalize_level',
    'KnowledgeStore'
]

"""Similarity, roadmap and the knowledge service facade."""

from .similarity import similarity, find_similar, string_similarity
from .roadmap import RoadmapBuilder, build_roadmap
from .knowledge_service import KnowledgeService, DuplicateCheck

__all__ = [
    'similarity',
    'find_similar',
    'string_similarity',
    'RoadmapBuilder',
    'build_roadmap',
    'KnowledgeService',
    'DuplicateCheck'
]

"""Configuration module for the knowledgebase core."""

from .settings import (
    KnowledgebaseConfig,
    SimilarityThresholds,
    load_knowledgebase_paths
)

__all__ = [
    'KnowledgebaseConfig',
    'SimilarityThresholds',
    'load_knowledgebase_paths'
]

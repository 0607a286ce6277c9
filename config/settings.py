"""Configuration for the knowledgebase core.

Values come from environment variables, with an optional YAML file mapping
knowledgebase names to their corpus directories.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SimilarityThresholds(BaseModel):
    """Duplicate-detection thresholds."""
    warning: float = Field(default=0.5, ge=0.0, le=1.0, description="Surface to the author for review")
    rejection: float = Field(default=0.6, ge=0.0, le=1.0, description="Block ingestion outright")


class KnowledgebaseConfig(BaseModel):
    """Runtime configuration."""
    db_path: str = Field(default="data/knowledgebase.db", description="SQLite database path")
    content_root: str = Field(default=".", description="Directory holding the knowledgebase folders")
    projects_path: str = Field(default="projects", description="Directory holding project briefs")
    knowledgebase_paths: Dict[str, str] = Field(default_factory=dict, description="Knowledgebase name -> directory")
    similarity: SimilarityThresholds = Field(default_factory=SimilarityThresholds)

    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")
    log_file: Optional[str] = Field(default=None, description="Optional JSON log file")

    @classmethod
    def from_env(cls) -> 'KnowledgebaseConfig':
        """Create configuration from environment variables."""
        paths_file = os.getenv('KB_KNOWLEDGEBASE_PATHS')
        return cls(
            db_path=os.getenv('KB_DB_PATH', 'data/knowledgebase.db'),
            content_root=os.getenv('KB_CONTENT_ROOT', '.'),
            projects_path=os.getenv('KB_PROJECTS_PATH', 'projects'),
            knowledgebase_paths=load_knowledgebase_paths(paths_file) if paths_file else {},
            similarity=SimilarityThresholds(
                warning=float(os.getenv('KB_SIMILARITY_WARNING', '0.5')),
                rejection=float(os.getenv('KB_SIMILARITY_REJECTION', '0.6')),
            ),
            log_level=os.getenv('KB_LOG_LEVEL', 'INFO'),
            log_json=os.getenv('KB_LOG_JSON', 'false').lower() in ('1', 'true', 'yes'),
            log_file=os.getenv('KB_LOG_FILE') or None,
        )

    def corpus_path(self, knowledgebase: str) -> Path:
        """Directory for a knowledgebase; mapped names win, else ``<root>/<name>``."""
        mapped = self.knowledgebase_paths.get(knowledgebase)
        if mapped:
            return Path(mapped)
        return Path(self.content_root) / knowledgebase


def load_knowledgebase_paths(path: str) -> Dict[str, str]:
    """Load a ``name: directory`` mapping from a YAML file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load knowledgebase paths from {path}: {e}")
        raise

    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of knowledgebase name to directory")
    return {str(name): str(directory) for name, directory in data.items()}

"""Typed records for the knowledge store.

Rows coming out of SQLite are decoded into these dataclasses immediately;
nothing above the storage layer handles raw rows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Set


class Level(str, Enum):
    """Difficulty tiers, in learning order."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    OVERACHIEVER = "overachiever"

    @property
    def rank(self) -> int:
        return LEVEL_RANK[self]


LEVEL_RANK: Dict[Level, int] = {
    Level.BEGINNER: 0,
    Level.INTERMEDIATE: 1,
    Level.ADVANCED: 2,
    Level.OVERACHIEVER: 3,
}

# Plural and legacy folder names seen in the corpora.
_LEVEL_ALIASES = {
    "beginners": "beginner",
    "fundamentals": "beginner",
    "intermediates": "intermediate",
    "advanceds": "advanced",
    "overachievers": "overachiever",
}

LEVEL_FOLDER_PATTERN = re.compile(r"^\d+_(.+)$")


def normalize_level(raw: Optional[str]) -> str:
    """Map a raw level or folder name onto the canonical level vocabulary.

    Unknown values are lower-cased and passed through unchanged, so callers
    that need a guaranteed :class:`Level` should call :func:`coerce_level`.
    """
    lowered = str(raw).strip().lower() if raw else ""
    if not lowered:
        return Level.BEGINNER.value
    return _LEVEL_ALIASES.get(lowered, lowered)


def coerce_level(raw: Optional[str]) -> Level:
    """Normalize and validate; raises ValueError for non-canonical levels."""
    return Level(normalize_level(raw))


def level_from_folder(name: str) -> Optional[str]:
    """Return the normalized level encoded in a ``NN_<level>`` folder name."""
    match = LEVEL_FOLDER_PATTERN.match(name)
    if not match:
        return None
    return normalize_level(match.group(1))


@dataclass
class KnowledgeRecord:
    """One ingested knowledgebase document."""
    canonical_id: str
    slug: str
    title: str
    level: Level
    number: int
    source_path: str
    knowledgebase: str
    tags: List[str] = field(default_factory=list)
    prerequisites: List[str] = field(default_factory=list)
    estimated_minutes: int = 0
    body: str = ""
    contributors: List[str] = field(default_factory=list)
    row_id: Optional[int] = None

    @property
    def tag_set(self) -> Set[str]:
        return {t.strip().lower() for t in self.tags if t and t.strip()}

    @property
    def topic(self) -> Optional[str]:
        """Path segment between the knowledgebase root and the level folder."""
        parts = PurePosixPath(self.source_path).parts
        if self.knowledgebase not in parts:
            return None
        idx = parts.index(self.knowledgebase)
        # The last part is the file itself.
        if idx + 1 >= len(parts) - 1:
            return None
        candidate = parts[idx + 1]
        if LEVEL_FOLDER_PATTERN.match(candidate):
            return None
        return candidate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "slug": self.slug,
            "title": self.title,
            "level": self.level.value,
            "number": self.number,
            "source_path": self.source_path,
            "knowledgebase": self.knowledgebase,
            "topic": self.topic,
            "tags": list(self.tags),
            "prerequisites": list(self.prerequisites),
            "estimated_minutes": self.estimated_minutes,
            "contributors": list(self.contributors),
            "body": self.body,
        }


@dataclass
class QueryFilters:
    """Filters shared by ``query`` and ``search``."""
    level: Optional[str] = None
    knowledgebase: Optional[str] = None
    topic: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class Step:
    number: int
    title: str
    description: str = ""
    guide_references: List[str] = field(default_factory=list)
    code_examples: Optional[str] = None
    hints: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "guide_references": list(self.guide_references),
            "code_examples": self.code_examples,
            "hints": list(self.hints) if self.hints is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            number=int(data["number"]),
            title=data["title"],
            description=data.get("description", ""),
            guide_references=list(data.get("guide_references") or []),
            code_examples=data.get("code_examples"),
            hints=data.get("hints"),
        )


@dataclass
class Challenge:
    number: int
    title: str
    difficulty: str
    steps: List[Step] = field(default_factory=list)
    completion_status: str = "not_started"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "challenge_number": self.number,
            "challenge_title": self.title,
            "difficulty": self.difficulty,
            "steps": [s.to_dict() for s in self.steps],
            "completion_status": self.completion_status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Challenge":
        return cls(
            number=int(data["challenge_number"]),
            title=data["challenge_title"],
            difficulty=data.get("difficulty", ""),
            steps=[Step.from_dict(s) for s in data.get("steps") or []],
            completion_status=data.get("completion_status", "not_started"),
        )


@dataclass
class ProjectRecord:
    """A project brief broken down into challenges and steps."""
    canonical_id: str
    slug: str
    title: str
    description: str
    level: Level
    topic: str
    requirements_markdown: str
    topics_covered: List[str] = field(default_factory=list)
    estimated_hours: int = 0
    challenges: List[Challenge] = field(default_factory=list)
    prerequisites: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "level": self.level.value,
            "topic": self.topic,
            "requirements": self.requirements_markdown,
            "topics_covered": list(self.topics_covered),
            "estimated_hours": self.estimated_hours,
            "steps": [c.to_dict() for c in self.challenges],
            "prerequisites": list(self.prerequisites),
        }


@dataclass
class RoadmapNode:
    id: str
    title: str
    slug: str
    level: Level
    knowledgebase: str
    prerequisites: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "level": self.level.value,
            "knowledgebase": self.knowledgebase,
            "prerequisites": list(self.prerequisites),
        }


@dataclass(frozen=True)
class RoadmapEdge:
    id: str
    source: str
    target: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target}


@dataclass
class Roadmap:
    knowledgebase: str
    topic: Optional[str] = None
    nodes: List[RoadmapNode] = field(default_factory=list)
    edges: List[RoadmapEdge] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledgebase": self.knowledgebase,
            "topic": self.topic,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

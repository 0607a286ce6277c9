"""Prerequisite graph ("roadmap") over a filtered set of documents."""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from indexer.models import (
    KnowledgeRecord,
    Roadmap,
    RoadmapEdge,
    RoadmapNode,
)

logger = logging.getLogger(__name__)

PrerequisiteResolver = Callable[[str], Optional[KnowledgeRecord]]


def sort_for_roadmap(records: Sequence[KnowledgeRecord]) -> List[KnowledgeRecord]:
    """Order by level rank, then sequence number."""
    return sorted(records, key=lambda r: (r.level.rank, r.number))


class RoadmapBuilder:
    """Builds nodes and prerequisite -> dependent edges.

    Declared prerequisites are resolved against the same document set, first
    by canonical id or slug, then by sequence number. Tokens that resolve to
    nothing are dropped; they usually point outside the current filter.

    A document that declares no prerequisites is chained to the document
    before it in sorted order when that one sits on the same level or one
    level below. This is a presentation heuristic, not a dependency fact.
    """

    def __init__(self, records: Sequence[KnowledgeRecord]):
        self.records = sort_for_roadmap(records)
        self._by_key: Dict[str, KnowledgeRecord] = {}
        for record in self.records:
            self._by_key.setdefault(record.canonical_id, record)
        for record in self.records:
            self._by_key.setdefault(record.slug, record)
        self.resolvers: List[PrerequisiteResolver] = [
            self._by_id_or_slug,
            self._by_sequence_number,
        ]

    def _by_id_or_slug(self, token: str) -> Optional[KnowledgeRecord]:
        return self._by_key.get(token)

    def _by_sequence_number(self, token: str) -> Optional[KnowledgeRecord]:
        try:
            number = int(token)
        except (TypeError, ValueError):
            return None
        for record in self.records:
            if record.number == number:
                return record
        return None

    def resolve(self, token: str) -> Optional[KnowledgeRecord]:
        token = token.strip()
        for resolver in self.resolvers:
            found = resolver(token)
            if found is not None:
                return found
        return None

    def build(self, knowledgebase: str, topic: Optional[str] = None) -> Roadmap:
        nodes = [
            RoadmapNode(
                id=r.canonical_id,
                title=r.title,
                slug=r.slug,
                level=r.level,
                knowledgebase=r.knowledgebase,
                prerequisites=list(r.prerequisites),
            )
            for r in self.records
        ]

        edges: List[RoadmapEdge] = []
        seen = set()

        def add_edge(source: str, target: str):
            if (source, target) in seen:
                return
            seen.add((source, target))
            edges.append(RoadmapEdge(id=f"{source}-{target}", source=source, target=target))

        for index, node in enumerate(nodes):
            if node.prerequisites:
                for token in node.prerequisites:
                    prerequisite = self.resolve(token)
                    if prerequisite is None:
                        logger.debug(f"Unresolved prerequisite '{token}' for {node.id}")
                        continue
                    if prerequisite.canonical_id == node.id:
                        continue
                    add_edge(prerequisite.canonical_id, node.id)
            elif index > 0:
                previous = nodes[index - 1]
                if node.level.rank - previous.level.rank in (0, 1):
                    add_edge(previous.id, node.id)

        return Roadmap(knowledgebase=knowledgebase, topic=topic, nodes=nodes, edges=edges)


def build_roadmap(records: Sequence[KnowledgeRecord], knowledgebase: str,
                  topic: Optional[str] = None) -> Roadmap:
    return RoadmapBuilder(records).build(knowledgebase, topic)

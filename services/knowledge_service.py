"""The operations the core offers to its collaborators (HTTP layer, CLI)."""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple, Union

from config.settings import KnowledgebaseConfig
from indexer.errors import ConflictError, SimilarityRejection
from indexer.models import KnowledgeRecord, QueryFilters, Roadmap
from indexer.sqlite_store import KnowledgeStore
from observability.logging import log_performance
from pipelines.frontmatter import DocumentMetadata, render_document, validate_metadata
from pipelines.project_scanner import index_projects
from pipelines.scanner import CorpusScanner, IndexingReport

from .roadmap import build_roadmap
from .similarity import find_similar

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheck:
    duplicate_id: bool
    duplicate_slug: bool
    similar: List[Tuple[KnowledgeRecord, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duplicate_canonical_id": self.duplicate_id,
            "duplicate_slug": self.duplicate_slug,
            "similar_files": [
                {
                    "canonical_id": record.canonical_id,
                    "title": record.title,
                    "slug": record.slug,
                    "similarity": score,
                }
                for record, score in self.similar
            ],
        }


def document_filename(metadata: DocumentMetadata) -> str:
    """``NN. Title.md``"""
    title = metadata.title.replace("/", "-").replace("\\", "-").strip()
    return f"{metadata.number:02d}. {title}.md"


class KnowledgeService:
    """Reindexing, lookups, duplicate vetting and roadmaps over one store."""

    def __init__(self, store: KnowledgeStore, config: Optional[KnowledgebaseConfig] = None):
        self.store = store
        self.config = config or KnowledgebaseConfig()
        self.scanner = CorpusScanner(store)

    @log_performance(threshold_ms=30000)
    def reindex(self, corpus_path: Union[str, Path]) -> IndexingReport:
        return self.scanner.index(Path(corpus_path))

    def reindex_knowledgebase(self, knowledgebase: str) -> IndexingReport:
        return self.reindex(self.config.corpus_path(knowledgebase))

    def reindex_projects(self, projects_path: Optional[Union[str, Path]] = None) -> IndexingReport:
        return index_projects(self.store, Path(projects_path or self.config.projects_path))

    def query(self, filters: Optional[QueryFilters] = None) -> List[KnowledgeRecord]:
        return self.store.query(filters)

    def search(self, term: str, filters: Optional[QueryFilters] = None) -> List[KnowledgeRecord]:
        return self.store.search(term, filters)

    def resolve_filename(self, filename: str, knowledgebase: Optional[str] = None) -> Optional[KnowledgeRecord]:
        return self.store.resolve_by_filename(filename, knowledgebase)

    def query_roadmap(self, knowledgebase: str, topic: Optional[str] = None) -> Roadmap:
        records = self.store.query(QueryFilters(knowledgebase=knowledgebase, topic=topic))
        roadmap = build_roadmap(records, knowledgebase, topic)
        logger.debug(f"Roadmap for {knowledgebase}/{topic or '*'}: "
                     f"{len(roadmap.nodes)} nodes, {len(roadmap.edges)} edges")
        return roadmap

    def check_duplicate(self, candidate: KnowledgeRecord,
                        threshold: Optional[float] = None) -> DuplicateCheck:
        """Key clashes plus documents similar enough to warrant review."""
        if threshold is None:
            threshold = self.config.similarity.warning
        existing = self.store.query(QueryFilters(knowledgebase=candidate.knowledgebase))
        return DuplicateCheck(
            duplicate_id=self.store.get_by_canonical_id(candidate.canonical_id) is not None,
            duplicate_slug=self.store.get_by_slug(candidate.slug, candidate.knowledgebase) is not None,
            similar=find_similar(candidate, existing, threshold),
        )

    @staticmethod
    def candidate_from_metadata(metadata: Union[Dict[str, Any], DocumentMetadata], body: str,
                                knowledgebase: str, source_path: str = "") -> KnowledgeRecord:
        metadata = validate_metadata(metadata)
        return KnowledgeRecord(
            canonical_id=metadata.canonical_id,
            slug=metadata.slug,
            title=metadata.title,
            level=metadata.level,
            number=metadata.number,
            source_path=source_path,
            knowledgebase=knowledgebase,
            tags=list(metadata.tags),
            prerequisites=list(metadata.prerequisites),
            estimated_minutes=metadata.estimated_minutes,
            contributors=list(metadata.contributors),
            body=body,
        )

    def admit(self, metadata: Union[Dict[str, Any], DocumentMetadata], body: str,
              knowledgebase: str, level_folder: str) -> KnowledgeRecord:
        """Vet, write and index a newly authored document.

        Raises ConflictError on a canonical id or slug clash and
        SimilarityRejection when an existing document scores at or above the
        rejection threshold. Nothing is written in either case.
        """
        metadata = validate_metadata(metadata)
        if self.store.get_by_canonical_id(metadata.canonical_id) is not None:
            raise ConflictError("canonical_id", metadata.canonical_id)
        if self.store.get_by_slug(metadata.slug, knowledgebase) is not None:
            raise ConflictError("slug", metadata.slug)

        filename = document_filename(metadata)
        source_path = str(PurePosixPath(knowledgebase) / level_folder / filename)
        candidate = self.candidate_from_metadata(metadata, body, knowledgebase, source_path)

        existing = self.store.query(QueryFilters(knowledgebase=knowledgebase))
        rejected = find_similar(candidate, existing, self.config.similarity.rejection)
        if rejected:
            logger.warning(
                f"Rejected {metadata.canonical_id}: similar to "
                + ", ".join(f"{r.canonical_id} ({score:.2f})" for r, score in rejected)
            )
            raise SimilarityRejection(rejected, self.config.similarity.rejection)

        target = self.config.corpus_path(knowledgebase) / level_folder / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(render_document(metadata, body), encoding="utf-8")
        logger.info(f"Wrote {target}")

        self.store.upsert(candidate, replace_slug_conflicts=False)
        return candidate

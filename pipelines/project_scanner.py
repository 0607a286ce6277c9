"""Indexes project briefs (``projects/<topic>/<NN_level>/<brief>.md``)."""

import logging
from pathlib import Path
from typing import Any, Dict

from indexer.errors import ParseError
from indexer.models import ProjectRecord
from indexer.sqlite_store import KnowledgeStore

from .frontmatter import as_int, as_string_list, fallback_canonical_id, header_level, read_document
from .project_extractor import ProjectStepExtractor, GuideReferenceResolver, extract_requirements
from .scanner import IndexingReport, knowledgebase_name, walk_corpus

logger = logging.getLogger(__name__)

REQUIREMENTS_FALLBACK_CHARS = 1000


def build_project(path: Path, header: Dict[str, Any], body: str, inherited_level=None) -> ProjectRecord:
    slug = str(header.get("slug") or path.stem)
    level = header_level(header, inherited_level, str(path))
    estimated_hours = as_int(header.get("estimated_hours"), "estimated_hours", str(path))

    extractor = ProjectStepExtractor(GuideReferenceResolver(path.parent))
    return ProjectRecord(
        canonical_id=str(header.get("canonical_id") or fallback_canonical_id("project", slug, path)),
        slug=slug,
        title=str(header.get("title") or path.stem),
        description=str(header.get("description") or ""),
        level=level,
        # projects/<topic>/<level folder>/<file>
        topic=str(header.get("topic") or path.parent.parent.name),
        requirements_markdown=extract_requirements(body) or body[:REQUIREMENTS_FALLBACK_CHARS],
        topics_covered=as_string_list(header.get("topics_covered")),
        estimated_hours=estimated_hours,
        challenges=extractor.extract(body),
        prerequisites=as_string_list(header.get("prerequisites")),
    )


def index_projects(store: KnowledgeStore, root: Path) -> IndexingReport:
    """Walk ``root`` and upsert every project brief; bad files are skipped."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Projects directory not found: {root}")

    report = IndexingReport(knowledgebase=knowledgebase_name(root))
    for path, level in walk_corpus(root):
        try:
            header, body = read_document(path)
            project = build_project(path, header, body, level)
        except ParseError as e:
            logger.error(f"Error indexing {path}: {e.reason}")
            report.skipped.append((str(path), e.reason))
            continue
        store.upsert_project(project)
        report.indexed_count += 1
        logger.info(f"Indexed project: {project.title} ({project.topic}/{project.level.value})")

    logger.info(f"Project indexing complete: {report.indexed_count} indexed, {len(report.skipped)} skipped")
    return report

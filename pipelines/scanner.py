"""Corpus scanner: walks a knowledgebase tree and indexes every document.

Level folders are named ``NN_<level>`` (``02_intermediate``); the level they
carry applies to everything below them. Any other folder is a topic segment.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, List, Optional, Tuple

from indexer.errors import ConflictError, ParseError
from indexer.models import KnowledgeRecord, level_from_folder
from indexer.sqlite_store import KnowledgeStore
from observability.logging import get_structured_logger

from .frontmatter import DOCUMENT_EXTENSION, parse_document

logger = logging.getLogger(__name__)
struct_logger = get_structured_logger(__name__, component="corpus_scanner")


@dataclass
class IndexingReport:
    """Outcome of one corpus walk."""
    knowledgebase: str
    indexed_count: int = 0
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def total_documents(self) -> int:
        return self.indexed_count + len(self.skipped)

    @property
    def success(self) -> bool:
        return not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledgebase": self.knowledgebase,
            "indexed_count": self.indexed_count,
            "total_documents": self.total_documents,
            "errors": [f"{path}: {reason}" for path, reason in self.skipped],
            "success": self.success,
            "duration_ms": round(self.duration_ms, 1),
        }


def walk_corpus(root: Path, level: Optional[str] = None) -> Iterator[Tuple[Path, Optional[str]]]:
    """Yield ``(document path, inherited level)`` in a stable order."""
    try:
        entries = sorted(os.scandir(root), key=lambda e: e.name)
    except OSError as e:
        logger.error(f"Cannot list {root}: {e}")
        return

    for entry in entries:
        if entry.name.startswith("."):
            continue
        path = Path(entry.path)
        if entry.is_dir():
            folder_level = level_from_folder(entry.name)
            yield from walk_corpus(path, folder_level or level)
        elif entry.is_file() and entry.name.endswith(DOCUMENT_EXTENSION):
            yield path, level


def knowledgebase_name(root: Path) -> str:
    return Path(root).resolve().name


def source_path_for(root: Path, path: Path) -> str:
    """Path stored for a document: ``<knowledgebase>/<relative path>``."""
    root = Path(root)
    relative = path.relative_to(root).as_posix()
    return str(PurePosixPath(knowledgebase_name(root)) / relative)


class CorpusScanner:
    """Parses a corpus tree and upserts every document into the store."""

    def __init__(self, store: Optional[KnowledgeStore] = None):
        # Parsing alone (scan) works without a store.
        self.store = store

    def parse_corpus(self, root: Path, report: Optional[IndexingReport] = None) -> Iterator[KnowledgeRecord]:
        """Yield one record per parseable document; bad files are skipped."""
        root = Path(root)
        knowledgebase = knowledgebase_name(root)
        log = struct_logger.bind(knowledgebase=knowledgebase)
        for path, level in walk_corpus(root):
            try:
                yield parse_document(
                    path,
                    knowledgebase=knowledgebase,
                    source_path=source_path_for(root, path),
                    inherited_level=level,
                )
            except ParseError as e:
                log.error(f"Error parsing {path}: {e.reason}", path=str(path))
                if report is not None:
                    report.skipped.append((str(path), e.reason))

    def scan(self, root: Path) -> List[KnowledgeRecord]:
        return list(self.parse_corpus(root))

    def index(self, root: Path) -> IndexingReport:
        """Walk ``root`` and upsert every document.

        Per-file failures are logged and recorded in the report; only
        storage failures abort the walk.
        """
        if self.store is None:
            raise RuntimeError("CorpusScanner.index() needs a KnowledgeStore")
        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"Corpus directory not found: {root}")

        started = time.time()
        report = IndexingReport(knowledgebase=knowledgebase_name(root))
        logger.info(f"Indexing knowledgebase '{report.knowledgebase}' from {root}")

        # (slug, knowledgebase) -> (canonical id, source path) written by this walk
        owners: Dict[Tuple[str, str], Tuple[str, str]] = {}
        for record in self.parse_corpus(root, report):
            try:
                self.store.upsert(record)
            except ConflictError as e:
                struct_logger.error(
                    f"Error indexing {record.source_path}: {e}",
                    knowledgebase=record.knowledgebase,
                    canonical_id=record.canonical_id,
                )
                report.skipped.append((record.source_path, str(e)))
                continue
            report.indexed_count += 1
            self._note_slug_owner(owners, record, report)
            logger.debug(f"Indexed {record.canonical_id} ({record.source_path})")

        report.duration_ms = (time.time() - started) * 1000
        logger.info(
            f"Indexed {report.indexed_count} documents into '{report.knowledgebase}'"
            f" ({len(report.skipped)} skipped)"
        )
        return report

    def _note_slug_owner(self, owners: Dict[Tuple[str, str], Tuple[str, str]],
                         record: KnowledgeRecord, report: IndexingReport):
        """Uncount a document of this walk whose slug was taken by ``record``."""
        key = (record.slug, record.knowledgebase)
        previous = owners.get(key)
        owners[key] = (record.canonical_id, record.source_path)
        if previous is None or previous[0] == record.canonical_id:
            return
        reason = f"slug '{record.slug}' taken over by {record.canonical_id} ({record.source_path})"
        struct_logger.warning(
            f"Evicted {previous[0]}: {reason}",
            knowledgebase=record.knowledgebase,
            canonical_id=previous[0],
        )
        report.indexed_count -= 1
        report.skipped.append((previous[1], reason))

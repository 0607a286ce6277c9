"""SQLite knowledge store.

Persists knowledgebase documents and project briefs, keeps the FTS5 index in
step with the documents table, and decodes every row into a typed record at
the boundary.
"""

import json
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ConflictError, StorageError
from .models import (
    Challenge,
    KnowledgeRecord,
    Level,
    ProjectRecord,
    QueryFilters,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_RECORD_COLUMNS = (
    "kf.id, kf.canonical_id, kf.slug, kf.title, kf.level, kf.number, "
    "kf.file_path, kf.knowledgebase, kf.tags, kf.prerequisites, "
    "kf.contributors, kf.estimated_minutes, kf.content"
)

PROJECT_TOPIC_DISPLAY_NAMES = {
    "android": "Android Development",
    "devops": "DevOps",
    "backend": "Backend Development",
    "frontend": "Frontend Development",
    "fullstack": "Full Stack Development",
    "mobile": "Mobile Development",
    "web": "Web Development",
}


def like_escape(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def fts_query(term: str) -> Optional[str]:
    """Turn free text into an FTS5 expression of quoted words (implicit AND)."""
    words = re.findall(r"\w+", term or "")
    if not words:
        return None
    return " ".join(f'"{w}"' for w in words)


class KnowledgeStore:
    """SQLite-backed store with an explicit open/close lifecycle."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None
        self._write_lock = threading.RLock()

    def open(self) -> "KnowledgeStore":
        """Open the connection and ensure the schema exists."""
        if self.conn is not None:
            return self
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA case_sensitive_like = OFF")
            self.conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
            self.conn.commit()
            logger.info(f"Knowledge store opened: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Failed to open knowledge store {self.db_path}: {e}")
            self.conn = None
            raise StorageError(f"Cannot open knowledge store: {e}") from e
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Knowledge store closed")

    def __enter__(self) -> "KnowledgeStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StorageError("Knowledge store is not open. Call open() first.")
        return self.conn

    def _fetch(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self._connection().execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    # ------------------------------------------------------------------
    # Knowledge documents
    # ------------------------------------------------------------------

    def upsert(self, record: KnowledgeRecord, replace_slug_conflicts: bool = True) -> int:
        """Insert or fully replace ``record`` by canonical id.

        The full-text row is refreshed in the same transaction. When
        ``replace_slug_conflicts`` is set, a different document that already
        owns ``(slug, knowledgebase)`` is removed first; otherwise the clash
        is reported as a :class:`ConflictError`.

        Returns the internal row id.
        """
        conn = self._connection()
        tags_text = " ".join(record.tags)
        with self._write_lock:
            try:
                with conn:
                    stale = conn.execute(
                        "SELECT id, canonical_id FROM knowledge_files "
                        "WHERE slug = ? AND knowledgebase = ? AND canonical_id != ?",
                        (record.slug, record.knowledgebase, record.canonical_id),
                    ).fetchall()
                    if stale:
                        if not replace_slug_conflicts:
                            raise ConflictError("slug", record.slug)
                        for row in stale:
                            logger.warning(
                                f"Replacing {row['canonical_id']}: slug '{record.slug}' "
                                f"now belongs to {record.canonical_id}"
                            )
                            conn.execute("DELETE FROM knowledge_files_fts WHERE rowid = ?", (row["id"],))
                            conn.execute("DELETE FROM knowledge_files WHERE id = ?", (row["id"],))

                    conn.execute(
                        """
                        INSERT INTO knowledge_files (
                            canonical_id, slug, title, level, number, file_path,
                            knowledgebase, tags, prerequisites, contributors,
                            estimated_minutes, content
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(canonical_id) DO UPDATE SET
                            slug = excluded.slug,
                            title = excluded.title,
                            level = excluded.level,
                            number = excluded.number,
                            file_path = excluded.file_path,
                            knowledgebase = excluded.knowledgebase,
                            tags = excluded.tags,
                            prerequisites = excluded.prerequisites,
                            contributors = excluded.contributors,
                            estimated_minutes = excluded.estimated_minutes,
                            content = excluded.content,
                            updated_at = CURRENT_TIMESTAMP
                        """,
                        (
                            record.canonical_id,
                            record.slug,
                            record.title,
                            record.level.value,
                            record.number,
                            record.source_path,
                            record.knowledgebase,
                            json.dumps(list(record.tags)),
                            json.dumps(list(record.prerequisites)),
                            json.dumps(list(record.contributors)),
                            record.estimated_minutes,
                            record.body,
                        ),
                    )

                    # The FTS row is keyed by the stored row id, which only
                    # exists once the document row has been written.
                    row_id = conn.execute(
                        "SELECT id FROM knowledge_files WHERE canonical_id = ?",
                        (record.canonical_id,),
                    ).fetchone()["id"]
                    conn.execute("DELETE FROM knowledge_files_fts WHERE rowid = ?", (row_id,))
                    conn.execute(
                        "INSERT INTO knowledge_files_fts(rowid, title, body, tags) VALUES (?, ?, ?, ?)",
                        (row_id, record.title, record.body, tags_text),
                    )
            except sqlite3.IntegrityError as e:
                raise ConflictError("slug", record.slug) from e
            except sqlite3.Error as e:
                logger.error(f"Failed to upsert {record.canonical_id}: {e}")
                raise StorageError(f"Failed to upsert {record.canonical_id}: {e}") from e

        record.row_id = row_id
        return row_id

    def _filter_clause(self, filters: Optional[QueryFilters]) -> Tuple[List[str], List[Any]]:
        conditions: List[str] = []
        params: List[Any] = []
        if filters is None:
            return conditions, params

        if filters.level:
            conditions.append("kf.level = ?")
            params.append(filters.level)

        if filters.knowledgebase:
            conditions.append("kf.knowledgebase = ?")
            params.append(filters.knowledgebase)

        if filters.topic:
            # Path separators bound the topic segment.
            conditions.append("kf.file_path LIKE ? ESCAPE '\\'")
            params.append(f"%/{like_escape(filters.topic)}/%")

        if filters.tags:
            placeholders = ", ".join("?" for _ in filters.tags)
            conditions.append(
                "EXISTS (SELECT 1 FROM json_each(kf.tags) "
                f"WHERE lower(json_each.value) IN ({placeholders}))"
            )
            params.extend(t.strip().lower() for t in filters.tags)

        return conditions, params

    def query(self, filters: Optional[QueryFilters] = None) -> List[KnowledgeRecord]:
        """Filtered listing ordered by sequence number."""
        conditions, params = self._filter_clause(filters)
        where = ("WHERE " + " AND ".join(conditions)) if conditions else ""
        rows = self._fetch(
            f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf {where} "
            "ORDER BY kf.number ASC, kf.canonical_id ASC",
            params,
        )
        return [self._row_to_record(r) for r in rows]

    def search(self, term: str, filters: Optional[QueryFilters] = None) -> List[KnowledgeRecord]:
        """Full-text match on title, body and tags combined with ``filters``."""
        expression = fts_query(term)
        if expression is None:
            return []
        conditions, params = self._filter_clause(filters)
        extra = "".join(f" AND {c}" for c in conditions)
        rows = self._fetch(
            f"""
            SELECT {_RECORD_COLUMNS} FROM knowledge_files kf
            JOIN knowledge_files_fts fts ON kf.id = fts.rowid
            WHERE knowledge_files_fts MATCH ?{extra}
            ORDER BY kf.number ASC, kf.canonical_id ASC
            """,
            [expression] + params,
        )
        return [self._row_to_record(r) for r in rows]

    def get_by_canonical_id(self, canonical_id: str) -> Optional[KnowledgeRecord]:
        rows = self._fetch(
            f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf WHERE kf.canonical_id = ?",
            (canonical_id,),
        )
        return self._row_to_record(rows[0]) if rows else None

    def get_by_slug(self, slug: str, knowledgebase: Optional[str] = None) -> Optional[KnowledgeRecord]:
        sql = f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf WHERE kf.slug = ?"
        params: List[Any] = [slug]
        if knowledgebase:
            sql += " AND kf.knowledgebase = ?"
            params.append(knowledgebase)
        sql += " ORDER BY kf.id ASC LIMIT 1"
        rows = self._fetch(sql, params)
        return self._row_to_record(rows[0]) if rows else None

    def resolve_by_filename(self, filename: str, knowledgebase: Optional[str] = None) -> Optional[KnowledgeRecord]:
        """Resolve a human-readable markdown link to a stored document."""
        from .filename_resolver import resolve_filename

        return resolve_filename(self, filename, knowledgebase)

    def find_by_path_suffix(self, suffix: str, knowledgebase: Optional[str] = None) -> Optional[KnowledgeRecord]:
        sql = f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf WHERE kf.file_path LIKE ? ESCAPE '\\'"
        params: List[Any] = [f"%{like_escape(suffix)}"]
        if knowledgebase:
            sql += " AND kf.knowledgebase = ?"
            params.append(knowledgebase)
        sql += " ORDER BY kf.number ASC, kf.id ASC LIMIT 1"
        rows = self._fetch(sql, params)
        return self._row_to_record(rows[0]) if rows else None

    def find_by_title(self, title: str, knowledgebase: Optional[str] = None) -> Optional[KnowledgeRecord]:
        """Exact, case-insensitive title lookup."""
        sql = f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf WHERE lower(kf.title) = lower(?)"
        params: List[Any] = [title]
        if knowledgebase:
            sql += " AND kf.knowledgebase = ?"
            params.append(knowledgebase)
        sql += " ORDER BY kf.number ASC, kf.id ASC LIMIT 1"
        rows = self._fetch(sql, params)
        return self._row_to_record(rows[0]) if rows else None

    def find_by_title_fragments(self, fragments: List[str], knowledgebase: Optional[str] = None,
                                shortest_first: bool = False) -> Optional[KnowledgeRecord]:
        """Title containing every fragment, in order (case-insensitive)."""
        if not fragments:
            return None
        pattern = "%" + "%".join(like_escape(f) for f in fragments) + "%"
        sql = f"SELECT {_RECORD_COLUMNS} FROM knowledge_files kf WHERE kf.title LIKE ? ESCAPE '\\'"
        params: List[Any] = [pattern]
        if knowledgebase:
            sql += " AND kf.knowledgebase = ?"
            params.append(knowledgebase)
        order = "length(kf.title) ASC, kf.number ASC" if shortest_first else "kf.number ASC"
        sql += f" ORDER BY {order}, kf.id ASC LIMIT 1"
        rows = self._fetch(sql, params)
        return self._row_to_record(rows[0]) if rows else None

    def count(self, knowledgebase: Optional[str] = None) -> int:
        if knowledgebase:
            rows = self._fetch("SELECT COUNT(*) FROM knowledge_files WHERE knowledgebase = ?", (knowledgebase,))
        else:
            rows = self._fetch("SELECT COUNT(*) FROM knowledge_files")
        return rows[0][0]

    def list_knowledgebases(self) -> List[Dict[str, Any]]:
        rows = self._fetch(
            """
            SELECT knowledgebase, COUNT(*) AS file_count, COUNT(DISTINCT level) AS level_count
            FROM knowledge_files
            GROUP BY knowledgebase
            ORDER BY knowledgebase ASC
            """
        )
        return [
            {
                "name": row["knowledgebase"],
                "path": f"./{row['knowledgebase']}",
                "file_count": row["file_count"],
                "level_count": row["level_count"],
            }
            for row in rows
        ]

    def list_topics(self, knowledgebase: str) -> List[Dict[str, Any]]:
        """Topics inferred from directory structure, sorted by name."""
        topics: Dict[str, Dict[str, Any]] = {}
        for record in self.query(QueryFilters(knowledgebase=knowledgebase)):
            topic = record.topic
            if not topic:
                continue
            entry = topics.setdefault(topic, {"file_count": 0, "levels": set()})
            entry["file_count"] += 1
            entry["levels"].add(record.level)
        return [
            {"name": name, "file_count": data["file_count"], "level_count": len(data["levels"])}
            for name, data in sorted(topics.items())
        ]

    def delete_knowledgebase(self, knowledgebase: str) -> int:
        conn = self._connection()
        with self._write_lock:
            try:
                with conn:
                    conn.execute(
                        "DELETE FROM knowledge_files_fts WHERE rowid IN "
                        "(SELECT id FROM knowledge_files WHERE knowledgebase = ?)",
                        (knowledgebase,),
                    )
                    cursor = conn.execute("DELETE FROM knowledge_files WHERE knowledgebase = ?", (knowledgebase,))
            except sqlite3.Error as e:
                raise StorageError(f"Failed to delete knowledgebase {knowledgebase}: {e}") from e
        logger.info(f"Deleted {cursor.rowcount} documents from knowledgebase '{knowledgebase}'")
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> KnowledgeRecord:
        return KnowledgeRecord(
            row_id=row["id"],
            canonical_id=row["canonical_id"],
            slug=row["slug"],
            title=row["title"],
            level=Level(row["level"]),
            number=row["number"],
            source_path=row["file_path"],
            knowledgebase=row["knowledgebase"],
            tags=json.loads(row["tags"] or "[]"),
            prerequisites=json.loads(row["prerequisites"] or "[]"),
            contributors=json.loads(row["contributors"] or "[]"),
            estimated_minutes=row["estimated_minutes"],
            body=row["content"] or "",
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def upsert_project(self, project: ProjectRecord) -> None:
        conn = self._connection()
        with self._write_lock:
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO projects (
                            canonical_id, slug, title, description, level, topic,
                            requirements, topics_covered, estimated_hours, steps, prerequisites
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(canonical_id) DO UPDATE SET
                            slug = excluded.slug,
                            title = excluded.title,
                            description = excluded.description,
                            level = excluded.level,
                            topic = excluded.topic,
                            requirements = excluded.requirements,
                            topics_covered = excluded.topics_covered,
                            estimated_hours = excluded.estimated_hours,
                            steps = excluded.steps,
                            prerequisites = excluded.prerequisites,
                            updated_at = CURRENT_TIMESTAMP
                        """,
                        (
                            project.canonical_id,
                            project.slug,
                            project.title,
                            project.description,
                            project.level.value,
                            project.topic,
                            project.requirements_markdown,
                            json.dumps(list(project.topics_covered)),
                            project.estimated_hours,
                            json.dumps([c.to_dict() for c in project.challenges]),
                            json.dumps(list(project.prerequisites)),
                        ),
                    )
            except sqlite3.Error as e:
                logger.error(f"Failed to upsert project {project.canonical_id}: {e}")
                raise StorageError(f"Failed to upsert project {project.canonical_id}: {e}") from e

    def get_project(self, topic: str, slug: str) -> Optional[ProjectRecord]:
        rows = self._fetch("SELECT * FROM projects WHERE topic = ? AND slug = ?", (topic, slug))
        return self._row_to_project(rows[0]) if rows else None

    def get_project_by_canonical_id(self, canonical_id: str) -> Optional[ProjectRecord]:
        rows = self._fetch("SELECT * FROM projects WHERE canonical_id = ?", (canonical_id,))
        return self._row_to_project(rows[0]) if rows else None

    def list_projects(self, topic: Optional[str] = None, level: Optional[str] = None) -> List[ProjectRecord]:
        sql = "SELECT * FROM projects WHERE 1=1"
        params: List[Any] = []
        if topic:
            sql += " AND topic = ?"
            params.append(topic)
        if level:
            sql += " AND level = ?"
            params.append(level)
        sql += " ORDER BY level, title ASC"
        return [self._row_to_project(r) for r in self._fetch(sql, params)]

    def list_project_topics(self) -> List[Dict[str, Any]]:
        rows = self._fetch(
            "SELECT topic AS name, COUNT(*) AS project_count FROM projects GROUP BY topic ORDER BY topic ASC"
        )
        return [
            {
                "name": row["name"],
                "display_name": PROJECT_TOPIC_DISPLAY_NAMES.get(row["name"], row["name"][:1].upper() + row["name"][1:]),
                "project_count": row["project_count"],
            }
            for row in rows
        ]

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> ProjectRecord:
        return ProjectRecord(
            canonical_id=row["canonical_id"],
            slug=row["slug"],
            title=row["title"],
            description=row["description"],
            level=Level(row["level"]),
            topic=row["topic"],
            requirements_markdown=row["requirements"],
            topics_covered=json.loads(row["topics_covered"] or "[]"),
            estimated_hours=row["estimated_hours"],
            challenges=[Challenge.from_dict(c) for c in json.loads(row["steps"] or "[]")],
            prerequisites=json.loads(row["prerequisites"] or "[]"),
        )

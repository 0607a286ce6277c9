"""Document parser: metadata header + markdown body -> KnowledgeRecord."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from indexer.errors import ParseError
from indexer.models import KnowledgeRecord, Level, coerce_level, normalize_level

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSION = ".md"

METADATA_KEYS = frozenset({
    "canonical_id", "slug", "title", "level", "number", "tags",
    "prerequisites", "estimated_minutes", "contributors", "diagrams", "examples",
})

_FENCE = "---"
_HEADER_LINE = re.compile(r"^[A-Za-z_][\w-]*\s*:(\s|$)")

# SQLite INTEGER is a signed 64-bit value.
SQLITE_INT_MIN = -(2 ** 63)
SQLITE_INT_MAX = 2 ** 63 - 1


class DocumentMetadata(BaseModel):
    """Metadata of a well-formed, authored document."""
    canonical_id: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    title: str = Field(min_length=1)
    level: Level
    number: int = Field(ge=SQLITE_INT_MIN, le=SQLITE_INT_MAX)
    tags: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    estimated_minutes: int = Field(default=0, ge=SQLITE_INT_MIN, le=SQLITE_INT_MAX)
    contributors: List[str] = Field(default_factory=list)
    diagrams: Optional[List[str]] = None
    examples: Optional[List[str]] = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        return normalize_level(value)

    @field_validator("tags", "prerequisites", "contributors", mode="before")
    @classmethod
    def _stringify_lists(cls, value: Any) -> List[str]:
        return as_string_list(value)


def as_string_list(value: Any) -> List[str]:
    """Coerce a header value written as a list (or a lone scalar) to strings."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value).strip()]


def as_int(value: Any, key: str, path: Optional[str]) -> int:
    if value is None or value == "":
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ParseError(path, f"'{key}' must be an integer, got {value!r}")
    if not SQLITE_INT_MIN <= number <= SQLITE_INT_MAX:
        raise ParseError(path, f"'{key}' is out of range: {value!r}")
    return number


def header_level(header: Dict[str, Any], inherited_level: Optional[str], path: Optional[str]) -> Level:
    """Level from the header, falling back to the folder level when blank."""
    raw = header.get("level")
    if raw is None or not str(raw).strip():
        raw = inherited_level
    try:
        return coerce_level(raw)
    except ValueError:
        raise ParseError(path, f"unknown level {raw!r}")


def _load_yaml(block: str, path: Optional[str]) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        raise ParseError(path, f"malformed metadata header: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParseError(path, "metadata header is not a key/value mapping")
    return data


def split_header(text: str, path: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """Split a document into its metadata mapping and markdown body.

    Two header styles are accepted: a ``---`` fenced YAML block, or leading
    ``key: value`` lines terminated by a blank line. A document with neither
    has an empty header and the whole text as body.
    """
    text = text.lstrip("\ufeff")
    lines = text.splitlines()

    if lines and lines[0].strip() == _FENCE:
        for i in range(1, len(lines)):
            if lines[i].strip() in (_FENCE, "..."):
                header = _load_yaml("\n".join(lines[1:i]), path)
                body = "\n".join(lines[i + 1:]).lstrip("\n")
                return header, body
        raise ParseError(path, "unterminated metadata header")

    if not lines or not _HEADER_LINE.match(lines[0]):
        return {}, text
    end = 0
    keys = set()
    while end < len(lines) and lines[end].strip():
        line = lines[end]
        if _HEADER_LINE.match(line):
            keys.add(line.split(":", 1)[0].strip())
        elif not line.startswith((" ", "\t", "-")):
            return {}, text
        end += 1
    # Prose that merely looks like "Word: text" is not a header.
    if not METADATA_KEYS.intersection(keys):
        return {}, text

    header = _load_yaml("\n".join(lines[:end]), path)
    body = "\n".join(lines[end:]).lstrip("\n")
    return header, body


def build_record(header: Dict[str, Any], body: str, *, file_path: Path, source_path: str,
                 knowledgebase: str, inherited_level: Optional[str] = None) -> KnowledgeRecord:
    """Build a record, defaulting whatever the header leaves out."""
    where = str(file_path)
    stem = file_path.stem
    slug = str(header.get("slug") or stem)

    canonical_id = header.get("canonical_id")
    if not canonical_id:
        canonical_id = fallback_canonical_id("unknown", slug, file_path)
        logger.warning(f"{where}: missing canonical_id, using {canonical_id}")

    level = header_level(header, inherited_level, where)

    return KnowledgeRecord(
        canonical_id=str(canonical_id),
        slug=slug,
        title=str(header.get("title") or stem),
        level=level,
        number=as_int(header.get("number"), "number", where),
        source_path=source_path,
        knowledgebase=knowledgebase,
        tags=as_string_list(header.get("tags")),
        prerequisites=as_string_list(header.get("prerequisites")),
        estimated_minutes=as_int(header.get("estimated_minutes"), "estimated_minutes", where),
        contributors=as_string_list(header.get("contributors")),
        body=body,
    )


def fallback_canonical_id(prefix: str, slug: str, file_path: Path) -> str:
    """Timestamp-derived id; uses the file's mtime so re-scans are stable."""
    try:
        stamp = int(file_path.stat().st_mtime * 1000)
    except OSError:
        stamp = 0
    return f"{prefix}-{slug}-{stamp}"


def read_document(file_path: Path) -> Tuple[Dict[str, Any], str]:
    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(str(file_path), f"unreadable file: {e}") from e
    return split_header(text, str(file_path))


def parse_document(file_path: Path, *, knowledgebase: str, source_path: str,
                   inherited_level: Optional[str] = None) -> KnowledgeRecord:
    header, body = read_document(file_path)
    return build_record(
        header,
        body,
        file_path=file_path,
        source_path=source_path,
        knowledgebase=knowledgebase,
        inherited_level=inherited_level,
    )


def validate_metadata(data: Union[Dict[str, Any], DocumentMetadata]) -> DocumentMetadata:
    """Validate authored metadata; every problem is reported as a ParseError."""
    if isinstance(data, DocumentMetadata):
        return data
    try:
        return DocumentMetadata.model_validate(data)
    except ValidationError as e:
        raise ParseError(None, f"invalid metadata: {e}") from e


def _yaml_list(values: List[Any]) -> str:
    return "[" + ", ".join(json.dumps(str(v)) for v in values) + "]"


def render_document(metadata: DocumentMetadata, body: str) -> str:
    """Serialize metadata and body in the on-disk document format."""
    lines = [
        _FENCE,
        f"number: {metadata.number}",
        f"title: {json.dumps(metadata.title)}",
        f"slug: {json.dumps(metadata.slug)}",
        f"level: {json.dumps(metadata.level.value)}",
        f"tags: {_yaml_list(metadata.tags)}",
        f"prerequisites: {_yaml_list(metadata.prerequisites)}",
        f"estimated_minutes: {metadata.estimated_minutes}",
        f"contributors: {_yaml_list(metadata.contributors)}",
    ]
    if metadata.diagrams:
        lines.append(f"diagrams: {_yaml_list(metadata.diagrams)}")
    if metadata.examples:
        lines.append(f"examples: {_yaml_list(metadata.examples)}")
    lines.append(f"canonical_id: {json.dumps(metadata.canonical_id)}")
    lines.append(_FENCE)
    return "\n".join(lines) + "\n\n" + body

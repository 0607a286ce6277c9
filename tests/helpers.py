from pathlib import Path

from indexer.models import KnowledgeRecord, Level


def write_doc(path: Path, body: str = "Body text.\n", **meta) -> Path:
    """Write a markdown document with a fenced metadata header."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["---"]
    for key, value in meta.items():
        if isinstance(value, list):
            rendered = "[" + ", ".join(f'"{v}"' for v in value) + "]"
        else:
            rendered = value
        lines.append(f"{key}: {rendered}")
    lines.append("---")
    path.write_text("\n".join(lines) + "\n\n" + body, encoding="utf-8")
    return path


def make_record(canonical_id: str, title: str = "Untitled", *, slug: str = None,
                level: Level = Level.BEGINNER, number: int = 1, knowledgebase: str = "android",
                source_path: str = None, tags=None, prerequisites=None, body: str = "") -> KnowledgeRecord:
    slug = slug or canonical_id
    return KnowledgeRecord(
        canonical_id=canonical_id,
        slug=slug,
        title=title,
        level=level,
        number=number,
        source_path=source_path or f"{knowledgebase}/01_beginner/{number:02d}. {title}.md",
        knowledgebase=knowledgebase,
        tags=list(tags or []),
        prerequisites=list(prerequisites or []),
        body=body,
    )

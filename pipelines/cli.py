"""Command line entry point: ``kb index android``, ``kb roadmap android`` ..."""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from config.settings import KnowledgebaseConfig
from indexer.models import QueryFilters
from indexer.sqlite_store import KnowledgeStore
from observability.logging import setup_logging
from services.knowledge_service import KnowledgeService
from services.similarity import scan_duplicates

from .scanner import CorpusScanner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kb", description="Knowledgebase indexing and roadmap tools")
    parser.add_argument("--db", help="SQLite database path (default: $KB_DB_PATH)")
    parser.add_argument("--log-level", help="Log level (default: $KB_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="Re-index a knowledgebase directory")
    index.add_argument("path", help="Knowledgebase directory, e.g. ./android")

    projects = sub.add_parser("index-projects", help="Index project briefs")
    projects.add_argument("path", nargs="?", help="Projects directory (default: $KB_PROJECTS_PATH)")

    dupes = sub.add_parser("check-duplicates", help="Report duplicate or similar documents in a directory")
    dupes.add_argument("path", help="Knowledgebase directory")
    dupes.add_argument("--threshold", type=float, default=None, help="Similarity threshold (default: rejection threshold)")

    roadmap = sub.add_parser("roadmap", help="Print the roadmap graph as JSON")
    roadmap.add_argument("knowledgebase")
    roadmap.add_argument("--topic")

    search = sub.add_parser("search", help="Full-text search")
    search.add_argument("term")
    search.add_argument("--knowledgebase")
    search.add_argument("--level")
    search.add_argument("--topic")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = KnowledgebaseConfig.from_env()
    if args.db:
        config.db_path = args.db
    setup_logging(level=args.log_level or config.log_level, use_json=config.log_json, log_file=config.log_file)

    if args.command == "check-duplicates":
        return _check_duplicates(args, config)

    with KnowledgeStore(config.db_path) as store:
        service = KnowledgeService(store, config)

        if args.command == "index":
            report = service.reindex(args.path)
            print(json.dumps(report.to_dict(), indent=2))
            return 0

        if args.command == "index-projects":
            report = service.reindex_projects(args.path)
            print(json.dumps(report.to_dict(), indent=2))
            return 0

        if args.command == "roadmap":
            roadmap = service.query_roadmap(args.knowledgebase, args.topic)
            print(json.dumps(roadmap.to_dict(), indent=2))
            return 0

        if args.command == "search":
            filters = QueryFilters(level=args.level, knowledgebase=args.knowledgebase, topic=args.topic)
            for record in service.search(args.term, filters):
                print(f"{record.canonical_id}\t{record.level.value}\t{record.title}")
            return 0

    return 2


def _check_duplicates(args, config: KnowledgebaseConfig) -> int:
    threshold = args.threshold if args.threshold is not None else config.similarity.rejection
    records = CorpusScanner().scan(Path(args.path))
    pairs = scan_duplicates(records, threshold)

    for pair in pairs:
        print(f"[{pair.kind}] {pair.score:.2f}")
        print(f"  {pair.first.source_path}")
        print(f"  {pair.second.source_path}")

    print(f"Checked {len(records)} documents, found {len(pairs)} potential duplicates")
    return 1 if pairs else 0


if __name__ == "__main__":
    sys.exit(main())

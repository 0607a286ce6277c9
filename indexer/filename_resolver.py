"""Resolve markdown links by filename to stored documents.

Documents link to each other by human-readable filename
(``./14. Android Services - Complete Guide.md``) rather than by canonical id,
and filenames drift as the corpus is renumbered or retitled. The strategies
below are tried in order, most precise first; the first hit wins.
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Callable, List, Optional
from urllib.parse import unquote

from .models import KnowledgeRecord

logger = logging.getLogger(__name__)

NUMERIC_PREFIX = re.compile(r"^\d+\.\s*")

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "onto", "that", "this",
    "are", "was", "you", "your", "how", "what", "why", "when", "not", "but",
    "its", "our", "all", "any", "can", "use", "using", "about", "over",
})

MAX_SIGNIFICANT_WORDS = 3


def decode_filename(link: str) -> str:
    """``./dir/14.%20Foo.md?x=1`` -> ``14. Foo``"""
    target = unquote(link.split("?", 1)[0].split("#", 1)[0]).strip()
    name = PurePosixPath(target.replace("\\", "/")).name
    if name.lower().endswith(".md"):
        name = name[:-3]
    return name.strip()


def strip_numeric_prefix(name: str) -> str:
    return NUMERIC_PREFIX.sub("", name, count=1).strip()


def significant_words(name: str) -> List[str]:
    words = [w for w in re.split(r"[^\w]+", name.lower()) if w]
    keep = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return keep[:MAX_SIGNIFICANT_WORDS]


Strategy = Callable[[object, str, Optional[str]], Optional[KnowledgeRecord]]


def by_path_suffix(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    return store.find_by_path_suffix(f"/{name}.md", knowledgebase)


def by_path_suffix_without_prefix(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    stripped = strip_numeric_prefix(name)
    if not stripped or stripped == name:
        return None
    return store.find_by_path_suffix(f"/{stripped}.md", knowledgebase)


def by_exact_title(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    return store.find_by_title(name, knowledgebase)


def by_exact_title_without_prefix(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    stripped = strip_numeric_prefix(name)
    if not stripped or stripped == name:
        return None
    return store.find_by_title(stripped, knowledgebase)


def by_title_substring(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    stripped = strip_numeric_prefix(name)
    if not stripped:
        return None
    return store.find_by_title_fragments([stripped], knowledgebase)


def by_significant_words(store, name: str, knowledgebase: Optional[str]) -> Optional[KnowledgeRecord]:
    words = significant_words(strip_numeric_prefix(name))
    if not words:
        return None
    return store.find_by_title_fragments(words, knowledgebase, shortest_first=True)


STRATEGIES: List[Strategy] = [
    by_path_suffix,
    by_path_suffix_without_prefix,
    by_exact_title,
    by_exact_title_without_prefix,
    by_title_substring,
    by_significant_words,
]


def resolve_filename(store, link: str, knowledgebase: Optional[str] = None,
                     strategies: Optional[List[Strategy]] = None) -> Optional[KnowledgeRecord]:
    name = decode_filename(link)
    if not name:
        return None
    for strategy in strategies or STRATEGIES:
        record = strategy(store, name, knowledgebase)
        if record is not None:
            logger.debug(f"Resolved '{link}' via {strategy.__name__} -> {record.canonical_id}")
            return record
    logger.debug(f"Could not resolve '{link}'")
    return None

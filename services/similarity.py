"""Fuzzy similarity between knowledgebase documents.

The score blends title similarity, similarity of the opening of the body and
tag overlap. It is used to keep near-duplicates out of the store.
"""

import re
from dataclasses import dataclass
from collections import Counter
from typing import Iterable, List, Tuple

from indexer.models import KnowledgeRecord

TITLE_WEIGHT = 0.4
CONTENT_WEIGHT = 0.4
TAG_WEIGHT = 0.2

# Only the opening of each body is compared.
CONTENT_PREFIX_CHARS = 1000

_WHITESPACE = re.compile(r"\s+")


def _bigrams(text: str) -> Counter:
    return Counter(text[i:i + 2] for i in range(len(text) - 1))


def string_similarity(first: str, second: str) -> float:
    """Dice coefficient over character bigrams, ignoring case and whitespace."""
    first = _WHITESPACE.sub("", first or "").lower()
    second = _WHITESPACE.sub("", second or "").lower()

    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    overlap = sum((_bigrams(first) & _bigrams(second)).values())
    return (2.0 * overlap) / (len(first) + len(second) - 2)


def tag_overlap(tags_a: Iterable[str], tags_b: Iterable[str]) -> float:
    a = {t.strip().lower() for t in tags_a if t and t.strip()}
    b = {t.strip().lower() for t in tags_b if t and t.strip()}
    if not a or not b:
        return 0.0
    return (2.0 * len(a & b)) / (len(a) + len(b))


def _content_prefix(record: KnowledgeRecord) -> str:
    return (record.body or "")[:CONTENT_PREFIX_CHARS].lower()


def similarity(a: KnowledgeRecord, b: KnowledgeRecord) -> float:
    """Weighted similarity in ``[0, 1]``; symmetric, and 1.0 for identical documents."""
    title_a, title_b = a.title.lower(), b.title.lower()
    content_a, content_b = _content_prefix(a), _content_prefix(b)

    if title_a == title_b and content_a == content_b and a.tag_set == b.tag_set:
        return 1.0

    score = (
        TITLE_WEIGHT * string_similarity(title_a, title_b)
        + CONTENT_WEIGHT * string_similarity(content_a, content_b)
        + TAG_WEIGHT * tag_overlap(a.tags, b.tags)
    )
    return min(1.0, max(0.0, score))


def find_similar(target: KnowledgeRecord, candidates: Iterable[KnowledgeRecord],
                 threshold: float = 0.6) -> List[Tuple[KnowledgeRecord, float]]:
    """Candidates scoring at least ``threshold`` against ``target``, best first.

    The target itself (same canonical id) is never returned.
    """
    scored = [
        (candidate, similarity(target, candidate))
        for candidate in candidates
        if candidate.canonical_id != target.canonical_id
    ]
    matches = [(candidate, score) for candidate, score in scored if score >= threshold]
    matches.sort(key=lambda item: item[1], reverse=True)
    return matches


@dataclass
class DuplicatePair:
    kind: str  # "canonical_id", "slug" or "similarity"
    first: KnowledgeRecord
    second: KnowledgeRecord
    score: float


def scan_duplicates(records: List[KnowledgeRecord], threshold: float = 0.6) -> List[DuplicatePair]:
    """Pairwise audit of a parsed corpus, before anything is stored.

    Identical canonical ids and slugs repeated within one level are reported
    with score 1.0; other pairs only when their similarity reaches
    ``threshold``.
    """
    pairs: List[DuplicatePair] = []
    for i, first in enumerate(records):
        for second in records[i + 1:]:
            if first.canonical_id == second.canonical_id:
                pairs.append(DuplicatePair("canonical_id", first, second, 1.0))
            elif first.slug == second.slug and first.level == second.level:
                pairs.append(DuplicatePair("slug", first, second, 1.0))
            else:
                score = similarity(first, second)
                if score >= threshold:
                    pairs.append(DuplicatePair("similarity", first, second, score))
    pairs.sort(key=lambda p: p.score, reverse=True)
    return pairs

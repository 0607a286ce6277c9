import pytest

from indexer.models import Level
from services.similarity import (
    find_similar,
    scan_duplicates,
    similarity,
    string_similarity,
    tag_overlap,
)
from tests.helpers import make_record


@pytest.fixture
def intro():
    return make_record("android-01", "Intro to Android", tags=["android", "basics"],
                       body="Android is a mobile operating system. Activities are screens.")


@pytest.fixture
def intro_dev():
    return make_record("android-02", "Intro to Android Development", number=2, tags=["android", "basics"],
                       body="Android is a mobile operating system. Activities are screens you build.")


@pytest.fixture
def kotlin():
    return make_record("kotlin-03", "Kotlin Coroutines", number=3, knowledgebase="kotlin", tags=["kotlin"],
                       body="Suspend functions let you write asynchronous code sequentially.")


class TestStringSimilarity:
    def test_identical_strings(self):
        assert string_similarity("hello world", "hello world") == 1.0

    def test_whitespace_is_ignored(self):
        assert string_similarity("hello world", "helloworld") == 1.0

    def test_too_short_to_compare(self):
        assert string_similarity("a", "ab") == 0.0
        assert string_similarity("", "abc") == 0.0

    def test_disjoint_strings(self):
        assert string_similarity("abc", "xyz") == 0.0

    def test_partial_overlap(self):
        # "night" / "nacht" share only the "ht" bigram.
        assert string_similarity("night", "nacht") == pytest.approx(0.25)


class TestTagOverlap:
    def test_case_insensitive(self):
        assert tag_overlap(["Android", "basics"], ["android", "BASICS"]) == 1.0

    def test_empty_side_scores_zero(self):
        assert tag_overlap([], ["android"]) == 0.0
        assert tag_overlap([], []) == 0.0

    def test_dice_over_sets(self):
        assert tag_overlap(["a", "b"], ["b", "c"]) == pytest.approx(0.5)


class TestSimilarity:
    def test_identity_scores_one(self, intro):
        assert similarity(intro, intro) == 1.0

    def test_identity_without_tags_scores_one(self):
        record = make_record("kb-1", "No tags", body="Body")
        assert similarity(record, record) == 1.0

    def test_symmetric(self, intro, intro_dev, kotlin):
        assert similarity(intro, intro_dev) == similarity(intro_dev, intro)
        assert similarity(intro, kotlin) == similarity(kotlin, intro)

    def test_in_unit_range(self, intro, intro_dev, kotlin):
        for a in (intro, intro_dev, kotlin):
            for b in (intro, intro_dev, kotlin):
                assert 0.0 <= similarity(a, b) <= 1.0

    def test_near_duplicates_score_above_warning(self, intro, intro_dev):
        assert similarity(intro, intro_dev) > 0.5

    def test_unrelated_documents_score_low(self, intro, kotlin):
        assert similarity(intro, kotlin) < 0.5

    def test_only_body_prefix_is_compared(self):
        shared = "x" * 1000
        a = make_record("a", "Same", body=shared + "tail one")
        b = make_record("b", "Same", body=shared + "something entirely different")
        assert similarity(a, b) == 1.0


class TestFindSimilar:
    def test_target_is_excluded(self, intro, intro_dev, kotlin):
        matches = find_similar(intro, [intro, intro_dev, kotlin], threshold=0.0)
        ids = [record.canonical_id for record, _ in matches]
        assert "android-01" not in ids
        assert set(ids) == {"android-02", "kotlin-03"}

    def test_sorted_by_score_descending(self, intro, intro_dev, kotlin):
        matches = find_similar(intro, [kotlin, intro_dev], threshold=0.0)
        scores = [score for _, score in matches]
        assert scores == sorted(scores, reverse=True)
        assert matches[0][0].canonical_id == "android-02"

    def test_high_threshold_returns_nothing(self, intro, intro_dev, kotlin):
        assert find_similar(intro, [intro, intro_dev, kotlin], threshold=0.99) == []

    def test_default_threshold(self, intro, intro_dev):
        matches = find_similar(intro, [intro_dev])
        assert [r.canonical_id for r, _ in matches] == ["android-02"]


class TestScanDuplicates:
    def test_repeated_canonical_id(self):
        a = make_record("dup-1", "First")
        b = make_record("dup-1", "Second", slug="second")
        pairs = scan_duplicates([a, b])
        assert len(pairs) == 1
        assert pairs[0].kind == "canonical_id"

    def test_repeated_slug_on_same_level(self):
        a = make_record("a-1", "Alpha", slug="shared")
        b = make_record("b-2", "Omega", slug="shared", body="unrelated")
        c = make_record("c-3", "Gamma", slug="shared", level=Level.ADVANCED, body="zzz")
        kinds = {(p.first.canonical_id, p.second.canonical_id): p.kind for p in scan_duplicates([a, b, c])}
        assert kinds[("a-1", "b-2")] == "slug"
        assert ("a-1", "c-3") not in kinds

    def test_similar_pair(self, intro, intro_dev, kotlin):
        pairs = scan_duplicates([intro, intro_dev, kotlin], threshold=0.5)
        assert [(p.first.canonical_id, p.second.canonical_id) for p in pairs] == [("android-01", "android-02")]
        assert pairs[0].kind == "similarity"

from indexer.models import Level
from services.roadmap import RoadmapBuilder, build_roadmap, sort_for_roadmap
from tests.helpers import make_record


def edge_pairs(roadmap):
    return [(e.source, e.target) for e in roadmap.edges]


class TestRoadmapOrdering:
    def test_sorted_by_level_then_number(self):
        records = [
            make_record("adv-1", level=Level.ADVANCED, number=1),
            make_record("beg-5", level=Level.BEGINNER, number=5),
            make_record("beg-2", level=Level.BEGINNER, number=2),
            make_record("int-3", level=Level.INTERMEDIATE, number=3),
        ]
        ordered = [r.canonical_id for r in sort_for_roadmap(records)]
        assert ordered == ["beg-2", "beg-5", "int-3", "adv-1"]

    def test_nodes_follow_sorted_order(self):
        records = [make_record("b", number=2), make_record("a", number=1)]
        roadmap = build_roadmap(records, "android")
        assert [n.id for n in roadmap.nodes] == ["a", "b"]
        assert roadmap.knowledgebase == "android"


class TestImplicitEdges:
    def test_same_level_chain(self):
        records = [
            make_record("android-01", "Intro to Android", number=1),
            make_record("android-02", "Intro to Android Development", number=2),
        ]
        roadmap = build_roadmap(records, "android")
        assert edge_pairs(roadmap) == [("android-01", "android-02")]
        assert roadmap.edges[0].id == "android-01-android-02"

    def test_one_level_up_is_chained(self):
        records = [
            make_record("beg", number=1),
            make_record("int", number=2, level=Level.INTERMEDIATE),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == [("beg", "int")]

    def test_level_gap_breaks_chain(self):
        records = [
            make_record("beg", number=1),
            make_record("adv", number=2, level=Level.ADVANCED),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == []

    def test_first_node_has_no_incoming_edge(self):
        roadmap = build_roadmap([make_record("only")], "android")
        assert roadmap.edges == []


class TestExplicitPrerequisites:
    def test_explicit_edges_replace_implicit(self):
        records = [
            make_record("a", number=1),
            make_record("b", number=2),
            make_record("c", number=3, prerequisites=["a"]),
        ]
        edges = edge_pairs(build_roadmap(records, "android"))
        assert ("a", "c") in edges
        assert ("b", "c") not in edges
        assert ("a", "b") in edges

    def test_resolution_by_slug(self):
        records = [
            make_record("android-01", slug="intro", number=1),
            make_record("android-05", number=5, level=Level.ADVANCED, prerequisites=["intro"]),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == [("android-01", "android-05")]

    def test_resolution_by_sequence_number(self):
        records = [
            make_record("android-01", number=1),
            make_record("android-07", number=7, prerequisites=["1"]),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == [("android-01", "android-07")]

    def test_canonical_id_beats_slug(self):
        records = [
            make_record("x", slug="y", number=1),
            make_record("y", slug="z", number=2),
            make_record("target", number=3, prerequisites=["y"]),
        ]
        edges = edge_pairs(build_roadmap(records, "android"))
        assert ("y", "target") in edges
        assert ("x", "target") not in edges

    def test_unresolved_and_self_references_are_dropped(self):
        records = [
            make_record("a", number=1),
            make_record("b", number=2, prerequisites=["b", "missing", "99"]),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == []

    def test_duplicate_tokens_emit_one_edge(self):
        records = [
            make_record("a", slug="alpha", number=1),
            make_record("b", number=2, prerequisites=["a", "alpha", "1"]),
        ]
        assert edge_pairs(build_roadmap(records, "android")) == [("a", "b")]

    def test_resolver_chain_is_extensible(self):
        records = [make_record("a", title="Alpha", number=1), make_record("b", number=2, prerequisites=["ALPHA"])]
        builder = RoadmapBuilder(records)
        builder.resolvers.append(
            lambda token: next((r for r in builder.records if r.title.lower() == token.lower()), None)
        )
        assert edge_pairs(builder.build("android")) == [("a", "b")]

    def test_node_keeps_declared_prerequisites(self):
        records = [make_record("a", number=1), make_record("b", number=2, prerequisites=["a", "missing"])]
        roadmap = build_roadmap(records, "android", topic="core")
        node = next(n for n in roadmap.nodes if n.id == "b")
        assert node.prerequisites == ["a", "missing"]
        assert roadmap.to_dict()["topic"] == "core"

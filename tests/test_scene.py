"""
Tests for the scene builder.

Tests:
- End-to-end scenario (tree, kinds, context satellite)
- Root inference and fallback roots
- Cycle safety and multi-parent fidelity
- Satellite placement and edge attachment points
- Malformed input tolerance and determinism
"""

import pytest

from gsn_diagram.config import NODE_HEIGHT, DEFEATER_HEIGHT, RenderOptions
from gsn_diagram.models import EdgeCategory, NodeKind, SatelliteRole
from gsn_diagram.scene import (
    SYNTHETIC_ROOT,
    build_scene,
    defeater_width,
    infer_node_kind,
    kind_from_type_iri,
    label_width,
)

from conftest import CHALLENGES, IN_CONTEXT_OF, SUPPORTED_BY, spo


def pairs(edges):
    return [(e.source.id, e.target.id) for e in edges]


class TestEndToEndScenario:
    """Rows G1 -> S1 -> Sn1 with context C1 on G1."""

    def test_roots_and_kinds(self, scenario_rows):
        scene = build_scene(scenario_rows)

        assert scene.roots == ["G1"]
        kinds = {n.id: n.kind for n in scene.nodes}
        assert kinds == {
            "G1": NodeKind.GOAL,
            "S1": NodeKind.STRATEGY,
            "Sn1": NodeKind.SOLUTION,
        }

    def test_edges(self, scenario_rows):
        scene = build_scene(scenario_rows)

        assert pairs(scene.tree_edges) == [("G1", "S1"), ("S1", "Sn1")]
        assert scene.extra_edges == []
        assert pairs(scene.context_edges) == [("G1", "C1")]
        assert scene.defeater_edges == []

    def test_context_satellite(self, scenario_rows):
        scene = build_scene(scenario_rows)

        assert len(scene.context_nodes) == 1
        ctx = scene.context_nodes[0]
        g1 = scene.get_node("G1")
        assert ctx.id == "C1"
        assert ctx.host_id == "G1"
        assert ctx.role == SatelliteRole.CONTEXT
        assert ctx.kind == NodeKind.CONTEXT
        assert ctx.x == g1.x + 80
        assert ctx.y == g1.y
        assert g1.context_ids == ["C1"]

    def test_layout_positions(self, scenario_rows):
        scene = build_scene(scenario_rows)

        g1, s1, sn1 = (scene.get_node(i) for i in ("G1", "S1", "Sn1"))
        assert (g1.x, g1.y) == (0, 0)
        assert (s1.x, s1.y) == (0, 80)
        assert (sn1.x, sn1.y) == (0, 160)
        assert [n.depth for n in (g1, s1, sn1)] == [0, 1, 2]
        assert scene.positions["S1"] == (0, 80)


class TestRootInference:
    """Tests for root selection."""

    def test_chain_has_single_root(self):
        rows = [spo("A", "supported by", "B"), spo("B", "supported by", "C")]
        assert build_scene(rows).roots == ["A"]

    def test_no_structural_rows_falls_back_to_first_subject(self):
        rows = [spo("X", "in context of", "Y")]
        scene = build_scene(rows)

        assert scene.roots == ["X"]
        assert [n.id for n in scene.nodes] == ["X"]
        assert [c.id for c in scene.context_nodes] == ["Y"]

    def test_disjoint_trees_share_one_layout(self):
        rows = [spo("A", "supported by", "A1"), spo("B", "supported by", "B1")]
        scene = build_scene(rows)

        assert scene.roots == ["A", "B"]
        a, b = scene.get_node("A"), scene.get_node("B")
        assert a.depth == b.depth == 0
        assert a.y == b.y == 0
        assert a.x < b.x
        assert SYNTHETIC_ROOT not in scene.positions

    def test_empty_rows(self):
        scene = build_scene([])
        assert scene.is_empty
        assert scene.roots == []


class TestCycleSafety:
    """Cyclic supports input must terminate with one node per member."""

    def test_three_cycle(self):
        rows = [
            spo("A", "supported by", "B"),
            spo("B", "supported by", "C"),
            spo("C", "supported by", "A"),
        ]
        scene = build_scene(rows)

        ids = [n.id for n in scene.nodes]
        assert sorted(ids) == ["A", "B", "C"]
        assert len(ids) == len(set(ids))
        assert scene.roots == ["A"]
        assert pairs(scene.tree_edges) == [("A", "B"), ("B", "C")]
        assert pairs(scene.extra_edges) == [("C", "A")]

    def test_detached_cycle_next_to_tree(self):
        rows = [
            spo("R", "supported by", "A"),
            spo("X", "supported by", "Y"),
            spo("Y", "supported by", "X"),
        ]
        scene = build_scene(rows)

        assert scene.roots == ["R"]
        assert scene.cycle_entries == ["X"]
        assert {n.id for n in scene.nodes} == {"R", "A", "X", "Y"}

    def test_self_support(self):
        scene = build_scene([spo("A", "supported by", "A"), spo("A", "supported by", "B")])

        assert [n.id for n in scene.nodes] == ["A", "B"]
        assert pairs(scene.extra_edges) == [("A", "A")]


class TestMultiParent:
    """A child with two parents keeps both edges."""

    def test_first_parent_is_primary(self):
        rows = [
            spo("R", "supported by", "A"),
            spo("R", "supported by", "B"),
            spo("A", "supported by", "X"),
            spo("B", "supported by", "X"),
        ]
        scene = build_scene(rows)

        assert ("A", "X") in pairs(scene.tree_edges)
        assert pairs(scene.extra_edges) == [("B", "X")]
        incoming = [e for e in scene.tree_edges + scene.extra_edges if e.target.id == "X"]
        assert len(incoming) == 2
        assert scene.get_node("X").x == scene.get_node("A").x

    def test_input_order_decides(self):
        rows = [
            spo("R", "supported by", "A"),
            spo("R", "supported by", "B"),
            spo("B", "supported by", "X"),
            spo("A", "supported by", "X"),
        ]
        scene = build_scene(rows)

        assert pairs(scene.extra_edges) == [("A", "X")]


class TestSatellites:
    """Context and defeater placement."""

    def test_context_stride(self, rich_rows):
        scene = build_scene(rich_rows)
        g1 = scene.get_node("G1")

        ctx = {c.id: c for c in scene.context_nodes}
        assert ctx["C1"].x == g1.x + 80
        assert ctx["A1"].x == g1.x + 130
        assert ctx["A1"].kind == NodeKind.ASSUMPTION
        assert ctx["A1"].index == 1

    def test_defeater_left_of_challenged_node(self, rich_rows):
        scene = build_scene(rich_rows)
        g2 = scene.get_node("G2")

        (d1,) = scene.defeater_nodes
        assert d1.kind == NodeKind.DEFEATER
        assert d1.role == SatelliteRole.DEFEATER
        assert d1.host_id == "G2"
        assert d1.x == g2.x - 80
        assert d1.height == DEFEATER_HEIGHT
        assert d1.width == defeater_width("D1")

        (edge,) = scene.defeater_edges
        assert (edge.source.id, edge.target.id) == ("D1", "G2")
        assert edge.start == (d1.x + d1.width / 2, d1.y)
        assert edge.end == (g2.x - g2.width / 2, g2.y)

    def test_satellite_position_index(self, rich_rows):
        scene = build_scene(rich_rows)

        assert "C1" in scene.satellite_positions
        assert "D1" in scene.satellite_positions
        assert scene.position_of("G1") == scene.positions["G1"]
        assert scene.position_of(" D1 ") == scene.satellite_positions["D1"]
        assert scene.position_of("nope") is None


class TestEdgeGeometry:
    """Attachment points and path data."""

    def test_tree_edge_bottom_to_top(self, scenario_rows):
        scene = build_scene(scenario_rows)
        edge = scene.tree_edges[0]

        assert edge.start == (edge.source.x, edge.source.y + NODE_HEIGHT / 2)
        assert edge.end == (edge.target.x, edge.target.y - NODE_HEIGHT / 2)
        assert edge.category == EdgeCategory.TREE
        assert edge.path_data().startswith("M0,13C")

    def test_context_edge_side_to_side(self, scenario_rows):
        scene = build_scene(scenario_rows)
        edge = scene.context_edges[0]
        host, ctx = edge.source, edge.target

        assert edge.start == (host.x + host.width / 2, host.y)
        assert edge.end == (ctx.x - ctx.width / 2, ctx.y)
        assert not edge.is_vertical


class TestInputTolerance:
    """Malformed rows are skipped, never raised."""

    def test_malformed_rows_skipped(self):
        rows = [
            None,
            "junk",
            {},
            {"s": "A"},
            {"s": "", "p": "supported by", "o": "B"},
            {"s": {"value": "A"}, "p": {"value": " supported by "}, "o": {"value": "B"}},
        ]
        scene = build_scene(rows)

        assert [n.id for n in scene.nodes] == ["A", "B"]

    def test_non_iterable_raises(self):
        with pytest.raises(TypeError):
            build_scene(42)

    def test_generator_input(self, scenario_rows):
        scene = build_scene(r for r in scenario_rows)
        assert len(scene.nodes) == 3

    def test_explicit_type_wins_over_label(self):
        rows = [
            spo("S9", SUPPORTED_BY, "X", typeS="https://w3id.org/OntoGSN/ontology#Goal"),
            spo("D", CHALLENGES, "X", typeS="https://w3id.org/OntoGSN/ontology#Defeater"),
        ]
        scene = build_scene(rows)

        assert scene.get_node("S9").kind == NodeKind.GOAL
        assert scene.get_node("S9").type_iri.endswith("#Goal")

    def test_legacy_type_key(self):
        rows = [spo("Sn2", SUPPORTED_BY, "X", type="http://example.org/gsn/Context")]
        assert build_scene(rows).get_node("Sn2").kind == NodeKind.CONTEXT

    def test_custom_vocabulary_and_label(self):
        options = {"supportedByAliases": ["has child"], "label": lambda i: i.lower()}
        scene = build_scene([spo("ROOT", "has child", "KID")], options)

        assert [n.label for n in scene.nodes] == ["root", "kid"]

    def test_unknown_option_keys_ignored(self, scenario_rows):
        scene = build_scene(scenario_rows, {"colour": "red", "height": 300})
        assert len(scene.nodes) == 3


class TestDeterminism:
    """Same input, same scene."""

    def test_rebuild_is_identical(self, rich_rows):
        first = build_scene(rich_rows).to_json_dict()
        second = build_scene(rich_rows).to_json_dict()
        assert first == second

    def test_unique_node_ids(self, rich_rows):
        ids = [n.id for n in build_scene(rich_rows).nodes]
        assert len(ids) == len(set(ids))


class TestKindInference:
    """Explicit types first, label prefixes second."""

    @pytest.mark.parametrize("label,kind", [
        ("Sn1", NodeKind.SOLUTION),
        ("S1", NodeKind.STRATEGY),
        ("C1", NodeKind.CONTEXT),
        ("A1", NodeKind.ASSUMPTION),
        ("J1", NodeKind.JUSTIFICATION),
        ("G1", NodeKind.GOAL),
        ("Top", NodeKind.GOAL),
    ])
    def test_label_prefix(self, label, kind):
        assert infer_node_kind(label, label) == kind

    def test_type_iri_suffix(self):
        assert kind_from_type_iri("http://w3id.org/gsn#Strategy") == NodeKind.STRATEGY
        assert kind_from_type_iri("http://w3id.org/gsn#Unknown") is None
        assert kind_from_type_iri(None) is None
        assert infer_node_kind("G1", "G1", "x#Justification") == NodeKind.JUSTIFICATION

    def test_label_width_clamped(self):
        assert label_width("") == 44
        assert label_width("x" * 10) == pytest.approx(84)
        assert label_width("x" * 100) == 180
        assert defeater_width("") == 36
        assert defeater_width("x" * 100) == 120

    def test_default_options(self):
        opts = RenderOptions.coerce(None)
        assert "gsn:supportedBy" in opts.supported_by_aliases
        assert opts.height == 520

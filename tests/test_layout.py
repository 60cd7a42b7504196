"""
Tests for the tidy tree layout.

Tests:
- Root at the origin, ranks at fixed vertical spacing
- Sibling and cousin separation
- Parents centered over their children
- Deep chains without recursion
"""

from gsn_diagram.layout import LayoutNode, tidy_tree_layout


def tree(shape):
    """Build a hierarchy from nested (id, [children]) tuples."""
    node_id, children = shape
    return LayoutNode(node_id, [tree(c) for c in children])


def positions(root):
    return {n.id: (n.x, n.y) for n in root.pre_order()}


class TestTidyTree:
    """Node placement."""

    def test_single_node(self):
        root = tidy_tree_layout(LayoutNode("R"))
        assert (root.x, root.y) == (0, 0)

    def test_two_children(self):
        root = tidy_tree_layout(tree(("R", [("a", []), ("b", [])])))
        pos = positions(root)

        assert pos["R"] == (0, 0)
        assert pos["a"] == (-100, 80)
        assert pos["b"] == (100, 80)

    def test_cousins_get_double_separation(self):
        root = tidy_tree_layout(tree(("R", [("A", [("a1", [])]), ("B", [("b1", [])])])))
        pos = positions(root)

        assert pos["b1"][0] - pos["a1"][0] == 400
        assert pos["R"][0] == 0

    def test_parent_centered_over_children(self):
        root = tidy_tree_layout(tree(("R", [("a", []), ("b", []), ("c", [])])))
        pos = positions(root)

        assert pos["R"][0] == (pos["a"][0] + pos["c"][0]) / 2
        assert pos["b"][0] == pos["R"][0]

    def test_custom_spacing(self):
        root = tidy_tree_layout(tree(("R", [("a", []), ("b", [])])), dx=50, dy=10)
        pos = positions(root)

        assert pos["a"] == (-25, 10)
        assert pos["b"] == (25, 10)

    def test_depths(self):
        root = tidy_tree_layout(tree(("R", [("a", [("a1", [])])])))
        assert [n.depth for n in root.pre_order()] == [0, 1, 2]

    def test_no_overlap_in_uneven_tree(self):
        shape = ("R", [
            ("A", [("a1", []), ("a2", []), ("a3", [])]),
            ("B", []),
            ("C", [("c1", []), ("c2", [])]),
        ])
        root = tidy_tree_layout(tree(shape))

        by_depth = {}
        for node in root.pre_order():
            by_depth.setdefault(node.depth, []).append(node.x)
        for xs in by_depth.values():
            xs.sort()
            assert all(b - a >= 200 for a, b in zip(xs, xs[1:]))

    def test_deep_chain(self):
        root = LayoutNode("n0")
        current = root
        for i in range(1, 3000):
            current = current.add_child(LayoutNode(f"n{i}"))

        tidy_tree_layout(root)
        assert current.y == 2999 * 80
        assert current.x == 0

    def test_parent_restored(self):
        root = tidy_tree_layout(LayoutNode("R"))
        assert root.parent is None

    def test_traversal_orders(self):
        root = tree(("R", [("a", [("a1", [])]), ("b", [])]))

        assert [n.id for n in root.pre_order()] == ["R", "a", "a1", "b"]
        assert [n.id for n in root.post_order()] == ["a1", "a", "b", "R"]
        assert [n.id for n in root.breadth_first()] == ["R", "a", "b", "a1"]

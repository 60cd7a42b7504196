"""
Tree layout for the primary-parent spanning forest.

Implements the Reingold-Tilford tidy tree in its linear-time form
(Buchheim, Junger and Leipert's improvement of Walker's algorithm):
- Siblings are separated by one unit, cousins by two
- Parents are centered over their first and last child
- Subtrees are shifted apart just enough to avoid overlap

Coordinates follow the fixed node-size convention: x = breadth * dx,
y = depth * dy, with the root at the origin. Traversals are iterative so
deep chains do not hit the recursion limit.

The layout function modifies nodes in-place and returns the root.
"""

from typing import Iterator, Optional


class LayoutNode:
    """A node of the layout hierarchy."""

    __slots__ = (
        "id", "children", "parent", "index", "depth", "x", "y",
        # Walker/Buchheim working state
        "_prelim", "_mod", "_change", "_shift", "_thread", "_ancestor",
    )

    def __init__(self, node_id: str, children: Optional[list["LayoutNode"]] = None):
        self.id = node_id
        self.children: list[LayoutNode] = []
        self.parent: Optional[LayoutNode] = None
        self.index = 0
        self.depth = 0
        self.x = 0.0
        self.y = 0.0
        for child in children or []:
            self.add_child(child)

    def add_child(self, child: "LayoutNode") -> "LayoutNode":
        child.parent = self
        child.index = len(self.children)
        self.children.append(child)
        return child

    def pre_order(self) -> Iterator["LayoutNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def post_order(self) -> Iterator["LayoutNode"]:
        """Children before parents, left siblings before right siblings."""
        stack = [self]
        out: list[LayoutNode] = []
        while stack:
            node = stack.pop()
            out.append(node)
            stack.extend(node.children)
        while out:
            yield out.pop()

    def breadth_first(self) -> Iterator["LayoutNode"]:
        level = [self]
        while level:
            nxt: list[LayoutNode] = []
            for node in level:
                yield node
                nxt.extend(node.children)
            level = nxt

    def __repr__(self) -> str:
        return f"LayoutNode({self.id!r}, x={self.x:g}, y={self.y:g})"


def _separation(a: LayoutNode, b: LayoutNode) -> float:
    return 1.0 if a.parent is b.parent else 2.0


def _next_left(v: LayoutNode) -> Optional[LayoutNode]:
    return v.children[0] if v.children else v._thread


def _next_right(v: LayoutNode) -> Optional[LayoutNode]:
    return v.children[-1] if v.children else v._thread


def _move_subtree(wm: LayoutNode, wp: LayoutNode, shift: float) -> None:
    change = shift / (wp.index - wm.index)
    wp._change -= change
    wp._shift += shift
    wm._change += change
    wp._prelim += shift
    wp._mod += shift


def _execute_shifts(v: LayoutNode) -> None:
    shift = 0.0
    change = 0.0
    for w in reversed(v.children):
        w._prelim += shift
        w._mod += shift
        change += w._change
        shift += w._shift + change


def _next_ancestor(vim: LayoutNode, v: LayoutNode, ancestor: LayoutNode) -> LayoutNode:
    return vim._ancestor if vim._ancestor.parent is v.parent else ancestor


def _apportion(v: LayoutNode, w: Optional[LayoutNode], ancestor: LayoutNode) -> LayoutNode:
    if w is None:
        return ancestor

    vip = vop = v
    vim = w
    vom = v.parent.children[0]
    sip, sop, sim, som = vip._mod, vop._mod, vim._mod, vom._mod

    vim = _next_right(vim)
    vip = _next_left(vip)
    while vim is not None and vip is not None:
        vom = _next_left(vom)
        vop = _next_right(vop)
        vop._ancestor = v
        shift = vim._prelim + sim - vip._prelim - sip + _separation(vim, vip)
        if shift > 0:
            _move_subtree(_next_ancestor(vim, v, ancestor), v, shift)
            sip += shift
            sop += shift
        sim += vim._mod
        sip += vip._mod
        som += vom._mod
        sop += vop._mod
        vim = _next_right(vim)
        vip = _next_left(vip)

    if vim is not None and _next_right(vop) is None:
        vop._thread = vim
        vop._mod += sim - sop
    if vip is not None and _next_left(vom) is None:
        vom._thread = vip
        vom._mod += sip - som
        ancestor = v
    return ancestor


def _reset(node: LayoutNode) -> None:
    node._prelim = 0.0
    node._mod = 0.0
    node._change = 0.0
    node._shift = 0.0
    node._thread = None
    node._ancestor = node


def tidy_tree_layout(root: LayoutNode, dx: float = 200, dy: float = 80) -> LayoutNode:
    """
    Assign (x, y) to every node of the hierarchy rooted at `root`.

    Args:
        root: Root of the hierarchy (its parent must be None)
        dx: Horizontal distance between adjacent siblings
        dy: Vertical distance between ranks

    Returns:
        The same root (nodes modified in-place)
    """
    # The root gets a throwaway parent so sibling lookups work uniformly.
    holder = LayoutNode("__holder__")
    holder.children = [root]
    root.parent = holder
    root.index = 0
    _reset(holder)

    try:
        for node in root.pre_order():
            _reset(node)
            node.depth = 0 if node is root else node.parent.depth + 1

        # First walk: bottom-up preliminary positions.
        holder_ancestor: dict[int, Optional[LayoutNode]] = {}
        for v in root.post_order():
            siblings = v.parent.children
            w = siblings[v.index - 1] if v.index else None
            if v.children:
                _execute_shifts(v)
                midpoint = (v.children[0]._prelim + v.children[-1]._prelim) / 2
                if w is not None:
                    v._prelim = w._prelim + _separation(v, w)
                    v._mod = v._prelim - midpoint
                else:
                    v._prelim = midpoint
            elif w is not None:
                v._prelim = w._prelim + _separation(v, w)
            key = id(v.parent)
            current = holder_ancestor.get(key) or siblings[0]
            holder_ancestor[key] = _apportion(v, w, current)

        # Second walk: top-down absolute positions.
        holder._mod = -root._prelim
        for v in root.pre_order():
            v.x = (v._prelim + v.parent._mod) * dx
            v.y = v.depth * dy
            v._mod += v.parent._mod
    finally:
        root.parent = None

    return root

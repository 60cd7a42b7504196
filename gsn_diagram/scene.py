"""
Scene builder - turns relation rows into a positioned scene.

Pipeline:
1. Normalize predicates and classify rows (supports / context / challenges)
2. Build children, parents, context and defeater adjacency (insertion-ordered)
3. Infer roots; fall back to a single root when the input is fully cyclic
4. Choose a primary parent per child (first parent seen)
5. Walk a spanning forest from the roots with a global visited set
6. Lay the forest out as one tree under a synthetic root
7. Size and type every node, place context and defeater satellites
8. Emit tree, extra, context and defeater edges with attachment points

Pure: no rendering side effects, no state kept between calls.
"""

import logging
from typing import Any, Callable, Iterable, Optional

from .config import (
    CHAR_WIDTH,
    DEFEATER_HEIGHT,
    DEFEATER_MAX_WIDTH,
    DEFEATER_MIN_WIDTH,
    DEFEATER_PAD,
    LABEL_MAX_WIDTH,
    LABEL_MIN_WIDTH,
    LABEL_PAD,
    NODE_HEIGHT,
    LayoutSettings,
    RenderOptions,
)
from .layout import LayoutNode, tidy_tree_layout
from .models import (
    EdgeCategory,
    NodeKind,
    RelationRow,
    SatelliteNode,
    SatelliteRole,
    Scene,
    SceneEdge,
    SceneNode,
)
from .utils import add_to_set_map

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT = "__ROOT__"


def label_width(
    text: str,
    min_width: float = LABEL_MIN_WIDTH,
    max_width: float = LABEL_MAX_WIDTH,
    pad: float = LABEL_PAD,
) -> float:
    """Estimate a node width from its label: clamp(7.2 * len + pad, min, max)."""
    return min(max_width, max(min_width, CHAR_WIDTH * len(str(text)) + pad))


def defeater_width(text: str) -> float:
    return label_width(text, DEFEATER_MIN_WIDTH, DEFEATER_MAX_WIDTH, DEFEATER_PAD)


# Type IRIs are matched on their local name after '#' or '/'.
_TYPE_SUFFIXES: list[tuple[str, NodeKind]] = [
    ("Goal", NodeKind.GOAL),
    ("Strategy", NodeKind.STRATEGY),
    ("Solution", NodeKind.SOLUTION),
    ("Context", NodeKind.CONTEXT),
    ("Assumption", NodeKind.ASSUMPTION),
    ("Justification", NodeKind.JUSTIFICATION),
    ("Defeater", NodeKind.DEFEATER),
]

# Label-prefix guesses, evaluated in order; first match wins.
_LABEL_GUESSES: list[tuple[Callable[[str], bool], NodeKind]] = [
    (lambda t: t[:2].upper() == "SN", NodeKind.SOLUTION),
    (lambda t: t[:1].upper() == "S", NodeKind.STRATEGY),
    (lambda t: t[:1].upper() == "C", NodeKind.CONTEXT),
    (lambda t: t[:1].upper() == "A", NodeKind.ASSUMPTION),
    (lambda t: t[:1].upper() == "J", NodeKind.JUSTIFICATION),
]


def kind_from_type_iri(type_iri: Optional[str]) -> Optional[NodeKind]:
    """Resolve a kind from an explicit type IRI, or None if unknown."""
    if not type_iri:
        return None
    text = str(type_iri)
    for suffix, kind in _TYPE_SUFFIXES:
        if text.endswith("#" + suffix) or text.endswith("/" + suffix):
            return kind
    return None


def kind_from_label(text: str) -> Optional[NodeKind]:
    """Guess a kind from the label prefix, or None if nothing matches."""
    for matches, kind in _LABEL_GUESSES:
        if matches(text):
            return kind
    return None


def infer_node_kind(
    node_id: str,
    label_text: Optional[str] = None,
    type_iri: Optional[str] = None,
    default: NodeKind = NodeKind.GOAL,
) -> NodeKind:
    """
    Resolve a node's kind: explicit type first, label prefix second.

    Args:
        node_id: Node IRI, used when no label is available
        label_text: Display label
        type_iri: Explicit type IRI, always wins when recognised
        default: Kind when neither the type nor the label decides

    Returns:
        The resolved NodeKind
    """
    return (
        kind_from_type_iri(type_iri)
        or kind_from_label(str(label_text or node_id))
        or default
    )


def _norm_set(values: Iterable[str]) -> set[str]:
    return {str(v).strip() for v in values}


def build_scene(
    rows: Iterable[Any],
    options: RenderOptions | dict | None = None,
    *,
    node_height: float = NODE_HEIGHT,
    width_fn: Callable[[str], float] = label_width,
) -> Scene:
    """
    Build a fully positioned scene from relation rows.

    Malformed rows are skipped. Only a non-iterable `rows` raises.

    Args:
        rows: Relation rows (dicts with s/p/o or subject/predicate/object)
        options: Label function, predicate vocabularies and layout spacing
        node_height: Fixed height of main and context nodes
        width_fn: Label-to-width heuristic

    Returns:
        Scene with nodes, satellites, edges and position indexes
    """
    try:
        iterator = iter(rows)
    except TypeError:
        raise TypeError(f"build_scene: rows must be iterable, got {type(rows).__name__}") from None

    opts = RenderOptions.coerce(options)
    label = opts.label
    layout: LayoutSettings = opts.layout
    supports = _norm_set(opts.supported_by_aliases)
    contexts = _norm_set(opts.context_of_aliases)
    challenges = _norm_set(opts.challenges_aliases)

    node_types: dict[str, str] = {}
    children: dict[str, dict] = {}
    parents: dict[str, dict] = {}
    context_of: dict[str, dict] = {}
    defeated_by: dict[str, dict] = {}
    structural: dict[str, None] = {}
    first_support: Optional[RelationRow] = None
    first_valid: Optional[RelationRow] = None

    skipped = 0
    for raw in iterator:
        row = RelationRow.from_binding(raw)
        if row is None:
            skipped += 1
            continue
        if first_valid is None:
            first_valid = row

        s, p, o = row.subject, row.predicate, row.object
        if row.subject_type:
            node_types[s] = row.subject_type
        if row.object_type:
            node_types[o] = row.object_type

        if p in supports:
            if first_support is None:
                first_support = row
            structural[s] = None
            structural[o] = None
            add_to_set_map(children, s, o)
            add_to_set_map(parents, o, s)
        elif p in contexts:
            add_to_set_map(context_of, s, o)
        elif p in challenges:
            # O is challenged; S is the defeater
            add_to_set_map(defeated_by, o, s)

    if skipped:
        logger.debug("Skipped %d malformed relation rows", skipped)

    # Roots = nodes never seen as object of a supports edge
    roots = [n for n in structural if n not in parents]
    if not roots:
        fallback = first_support or first_valid
        if fallback is not None:
            roots.append(fallback.subject)

    # Primary parent: first parent encountered for each child
    primary = {child: next(iter(ps)) for child, ps in parents.items() if ps}

    # Spanning forest, never revisiting a placed node
    visited: set[str] = set()
    layout_children: dict[str, list[str]] = {}
    layout_parent: dict[str, str] = {}

    def walk(start: str) -> None:
        if start in visited:
            return
        visited.add(start)
        stack = [(start, iter(children.get(start, ())))]
        while stack:
            node, kids = stack[-1]
            for child in kids:
                if primary.get(child) == node and child not in visited:
                    visited.add(child)
                    layout_children.setdefault(node, []).append(child)
                    layout_parent[child] = node
                    stack.append((child, iter(children.get(child, ()))))
                    break
            else:
                stack.pop()

    for root in roots:
        walk(root)

    # Structural nodes unreachable from any root sit on a detached cycle
    cycle_entries: list[str] = []
    for node_id in structural:
        if node_id not in visited:
            cycle_entries.append(node_id)
            logger.debug("Breaking detached cycle at %s", node_id)
            walk(node_id)

    tops = [*roots, *cycle_entries]
    if not tops:
        return Scene(node_types=node_types)

    def to_hierarchy(top: str) -> LayoutNode:
        root_node = LayoutNode(top)
        stack = [root_node]
        while stack:
            current = stack.pop()
            for child_id in layout_children.get(current.id, ()):
                stack.append(current.add_child(LayoutNode(child_id)))
        return root_node

    forest = [to_hierarchy(t) for t in tops]
    if len(forest) == 1:
        tree_root, depth_offset = forest[0], 0
    else:
        tree_root, depth_offset = LayoutNode(SYNTHETIC_ROOT, forest), 1
    tidy_tree_layout(tree_root, layout.dx, layout.dy)

    nodes: list[SceneNode] = []
    for laid in tree_root.breadth_first():
        if depth_offset and laid is tree_root:
            continue
        lbl = label(laid.id)
        type_iri = node_types.get(laid.id)
        nodes.append(SceneNode(
            id=laid.id,
            label=lbl,
            kind=infer_node_kind(laid.id, lbl, type_iri),
            x=laid.x,
            y=laid.y - depth_offset * layout.dy,
            width=width_fn(lbl),
            height=node_height,
            depth=laid.depth - depth_offset,
            context_ids=list(context_of.get(laid.id, ())),
            type_iri=type_iri,
        ))

    node_by_id = {n.id: n for n in nodes}

    # Every supports edge into a placed child: the spanning-forest edge is the
    # tree edge, all others are extra edges.
    tree_edges: list[SceneEdge] = []
    extra_edges: list[SceneEdge] = []
    for child_id, parent_ids in parents.items():
        target = node_by_id.get(child_id)
        if target is None:
            continue
        for parent_id in parent_ids:
            source = node_by_id.get(parent_id)
            if source is None:
                continue
            is_tree = layout_parent.get(child_id) == parent_id
            edge = SceneEdge(
                category=EdgeCategory.TREE if is_tree else EdgeCategory.EXTRA,
                source=source,
                target=target,
                start=(source.x, source.y + source.height / 2),
                end=(target.x, target.y - target.height / 2),
            )
            (tree_edges if is_tree else extra_edges).append(edge)

    context_nodes: list[SatelliteNode] = []
    context_edges: list[SceneEdge] = []
    defeater_nodes: list[SatelliteNode] = []
    defeater_edges: list[SceneEdge] = []
    satellite_positions: dict[str, tuple[float, float]] = {}

    for host in nodes:
        for i, ctx_id in enumerate(host.context_ids):
            lbl = label(ctx_id)
            type_iri = node_types.get(ctx_id)
            sat = SatelliteNode(
                id=ctx_id,
                label=lbl,
                kind=infer_node_kind(ctx_id, lbl, type_iri, default=NodeKind.CONTEXT),
                role=SatelliteRole.CONTEXT,
                host_id=host.id,
                index=i,
                x=host.x + layout.ctx_offset_x + i * layout.ctx_stride_x,
                y=host.y + i * layout.ctx_stride_y,
                width=width_fn(lbl),
                height=node_height,
                type_iri=type_iri,
            )
            context_nodes.append(sat)
            satellite_positions.setdefault(ctx_id, (sat.x, sat.y))
            context_edges.append(SceneEdge(
                category=EdgeCategory.CONTEXT,
                source=host,
                target=sat,
                start=(host.x + host.width / 2, host.y),
                end=(sat.x - sat.width / 2, sat.y),
            ))

    for host in nodes:
        for i, def_id in enumerate(defeated_by.get(host.id, ())):
            lbl = label(def_id)
            sat = SatelliteNode(
                id=def_id,
                label=lbl,
                kind=NodeKind.DEFEATER,
                role=SatelliteRole.DEFEATER,
                host_id=host.id,
                index=i,
                x=host.x - layout.def_offset_x - i * layout.def_stride_x,
                y=host.y + i * layout.def_stride_y,
                width=defeater_width(lbl),
                height=DEFEATER_HEIGHT,
                type_iri=node_types.get(def_id),
            )
            defeater_nodes.append(sat)
            satellite_positions.setdefault(def_id, (sat.x, sat.y))
            defeater_edges.append(SceneEdge(
                category=EdgeCategory.DEFEATER,
                source=sat,
                target=host,
                start=(sat.x + sat.width / 2, sat.y),
                end=(host.x - host.width / 2, host.y),
            ))

    return Scene(
        nodes=nodes,
        context_nodes=context_nodes,
        defeater_nodes=defeater_nodes,
        tree_edges=tree_edges,
        extra_edges=extra_edges,
        context_edges=context_edges,
        defeater_edges=defeater_edges,
        roots=roots,
        cycle_entries=cycle_entries,
        positions={n.id: (n.x, n.y) for n in nodes},
        satellite_positions=satellite_positions,
        node_types=node_types,
    )

"""
Scene analysis - structure of an argument before and after layout.

Used by the CLI summary and by row validation:
- cycle search over the supports relation (rows, before layout)
- connected components and per-node degree (built scene)
- goals and strategies left without support (undeveloped candidates)
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .config import RenderOptions
from .models import NodeKind, RelationRow

if TYPE_CHECKING:
    from .models import Scene

# Kinds that need supporting elements to count as developed
_DEVELOPABLE = (NodeKind.GOAL, NodeKind.STRATEGY)


@dataclass
class ConnectedComponent:
    """Ids of one connected part of the drawn diagram and the edges inside it."""
    node_ids: list[str] = field(default_factory=list)
    edge_count: int = 0

    @property
    def size(self) -> int:
        return len(self.node_ids)


@dataclass
class NodeConnectionInfo:
    """Edge degree of one drawn element."""
    node_id: str
    label: str
    incoming: int = 0
    outgoing: int = 0

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing

    def to_dict(self) -> dict:
        return {
            "id": self.node_id,
            "label": self.label,
            "connections": self.total,
            "incoming": self.incoming,
            "outgoing": self.outgoing,
        }


@dataclass
class SceneSummary:
    """What a built scene contains."""
    total_nodes: int
    total_satellites: int
    total_edges: int
    nodes_by_kind: dict[str, int]
    edges_by_category: dict[str, int]
    roots: list[str]
    cycle_entries: list[str]
    max_depth: int
    connected_components: int
    undeveloped: list[str]
    most_connected_nodes: list[NodeConnectionInfo]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            name: getattr(self, name)
            for name in (
                "total_nodes", "total_satellites", "total_edges",
                "nodes_by_kind", "edges_by_category", "roots", "cycle_entries",
                "max_depth", "connected_components", "undeveloped",
            )
        }
        data["most_connected_nodes"] = [n.to_dict() for n in self.most_connected_nodes]
        return data


def supports_adjacency(
    rows: Iterable[Any],
    options: "RenderOptions | dict | None" = None,
) -> dict[str, list[str]]:
    """
    Children by parent for every supports row, in input order.

    Malformed rows are skipped.
    """
    opts = RenderOptions.coerce(options)
    supports = {str(a).strip() for a in opts.supported_by_aliases}
    adjacency: dict[str, list[str]] = {}
    for raw in rows:
        row = RelationRow.from_binding(raw)
        if row is None or row.predicate not in supports:
            continue
        children = adjacency.setdefault(row.subject, [])
        adjacency.setdefault(row.object, [])
        if row.object not in children:
            children.append(row.object)
    return adjacency


def find_cycles(adjacency: Mapping[str, Iterable[str]]) -> list[list[str]]:
    """
    Every elementary cycle of a directed graph.

    A cycle is reported once, rotated to start at its earliest-seen member
    and closed by repeating that member.

    Args:
        adjacency: Children by parent

    Returns:
        Cycles as id lists, in discovery order
    """
    rank: dict[str, int] = {}
    for parent, children in adjacency.items():
        rank.setdefault(parent, len(rank))
        for child in children:
            rank.setdefault(child, len(rank))

    found: list[list[str]] = []
    for start in rank:
        # Only walk through members ranked after `start` so each cycle is
        # reported from its lowest-ranked member exactly once.
        trail = [start]
        on_trail = {start}
        stack = [iter(adjacency.get(start, ()))]
        while stack:
            step = next(stack[-1], None)
            if step is None:
                stack.pop()
                on_trail.discard(trail.pop())
                continue
            if step == start:
                found.append([*trail, start])
            elif step not in on_trail and rank[step] > rank[start]:
                trail.append(step)
                on_trail.add(step)
                stack.append(iter(adjacency.get(step, ())))
    return found


def find_connected_components(scene: "Scene") -> list[ConnectedComponent]:
    """
    Connected parts of the drawn scene, edges taken as undirected.

    Satellites are included; every edge category links its endpoints.
    """
    order = list(dict.fromkeys([n.id for n in scene.nodes] + [s.id for s in scene.satellites()]))
    neighbours: dict[str, dict[str, None]] = {node_id: {} for node_id in order}
    edge_sources: Counter = Counter()
    for edge in scene.edges():
        neighbours[edge.source.id][edge.target.id] = None
        neighbours[edge.target.id][edge.source.id] = None
        edge_sources[edge.source.id] += 1

    seen: set[str] = set()
    components: list[ConnectedComponent] = []
    for start in order:
        if start in seen:
            continue
        seen.add(start)
        members = []
        pending = deque([start])
        while pending:
            current = pending.popleft()
            members.append(current)
            for other in neighbours[current]:
                if other not in seen:
                    seen.add(other)
                    pending.append(other)
        components.append(ConnectedComponent(
            node_ids=members,
            edge_count=sum(edge_sources[m] for m in members),
        ))
    return components


def calculate_node_connections(scene: "Scene") -> dict[str, NodeConnectionInfo]:
    """Edge degree of every drawn element, satellites included."""
    degrees: dict[str, NodeConnectionInfo] = {}
    for element in [*scene.nodes, *scene.satellites()]:
        degrees.setdefault(element.id, NodeConnectionInfo(node_id=element.id, label=element.label))
    for edge in scene.edges():
        degrees[edge.source.id].outgoing += 1
        degrees[edge.target.id].incoming += 1
    return degrees


def find_undeveloped(scene: "Scene") -> list[str]:
    """Goals and strategies with no supports edge leaving them."""
    supported = {e.source.id for e in [*scene.tree_edges, *scene.extra_edges]}
    return [n.id for n in scene.nodes if n.kind in _DEVELOPABLE and n.id not in supported]


def summarize_scene(scene: "Scene", top_n: int = 5) -> SceneSummary:
    """
    Summarize a built scene.

    Args:
        scene: The scene to summarize
        top_n: How many of the most connected elements to list

    Returns:
        SceneSummary
    """
    kinds = Counter(n.kind.value for n in [*scene.nodes, *scene.satellites()])
    ranked = sorted(calculate_node_connections(scene).values(), key=lambda d: d.total, reverse=True)

    return SceneSummary(
        total_nodes=len(scene.nodes),
        total_satellites=len(scene.satellites()),
        total_edges=len(scene.edges()),
        nodes_by_kind=dict(kinds),
        edges_by_category={
            "tree": len(scene.tree_edges),
            "extra": len(scene.extra_edges),
            "context": len(scene.context_edges),
            "defeater": len(scene.defeater_edges),
        },
        roots=list(scene.roots),
        cycle_entries=list(scene.cycle_entries),
        max_depth=max((n.depth for n in scene.nodes), default=0),
        connected_components=len(find_connected_components(scene)),
        undeveloped=find_undeveloped(scene),
        most_connected_nodes=[d for d in ranked[:top_n] if d.total > 0],
    )

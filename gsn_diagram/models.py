"""
Core data models for GSN diagrams.

These models define the canonical scene description:
- Relation rows (subject/predicate/object facts) as read from query results
- Main tree nodes and satellite nodes (contexts, defeaters) with geometry
- Edges tagged by category, referencing resolved node records
- The complete positioned scene returned by the scene builder

Field Naming Convention:
- Relation rows use `subject`/`predicate`/`object`
- Query bindings `s`/`p`/`o`/`typeS`/`typeO` (and legacy `type`) are
  accepted on input and converted
- Node coordinates are centers; width/height describe the shape box
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .utils import cell_value


Point = tuple[float, float]


class NodeKind(str, Enum):
    """GSN element kinds."""
    GOAL = "goal"
    STRATEGY = "strategy"
    SOLUTION = "solution"
    CONTEXT = "context"
    ASSUMPTION = "assumption"
    JUSTIFICATION = "justification"
    DEFEATER = "defeater"


class EdgeCategory(str, Enum):
    """Edge buckets; tree and extra edges share the supports visual."""
    TREE = "tree"           # Primary-parent supports edge, drives layout
    EXTRA = "extra"         # Non-primary supports edge
    CONTEXT = "context"     # Host -> context satellite
    DEFEATER = "defeater"   # Defeater satellite -> challenged node


class SatelliteRole(str, Enum):
    """How a satellite is attached to its host."""
    CONTEXT = "context"
    DEFEATER = "defeater"


class RelationRow(BaseModel):
    """
    One subject-predicate-object fact.

    Accepts query bindings (`s`, `p`, `o`, `typeS`, `typeO`, `type`) on
    input, with cells either raw strings or `{"value": ...}` wrappers.
    """
    subject: str
    predicate: str
    object: str
    subject_type: Optional[str] = None
    object_type: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def convert_binding_fields(cls, data: Any) -> Any:
        """Convert binding names to field names and unwrap cells."""
        if not isinstance(data, dict):
            return data
        aliases = {
            "subject": ("subject", "s"),
            "predicate": ("predicate", "p"),
            "object": ("object", "o"),
            "subject_type": ("subject_type", "subjectType", "typeS", "type"),
            "object_type": ("object_type", "objectType", "typeO"),
        }
        converted = {}
        for field_name, keys in aliases.items():
            for key in keys:
                value = cell_value(data.get(key))
                if value is not None:
                    converted[field_name] = value
                    break
        return converted

    @field_validator("subject", "predicate", "object")
    @classmethod
    def non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("empty term")
        return value

    @classmethod
    def from_binding(cls, row: Any) -> Optional["RelationRow"]:
        """Parse a result row, returning None for malformed rows."""
        if isinstance(row, cls):
            return row
        if not isinstance(row, dict):
            return None
        try:
            return cls.model_validate(row)
        except ValueError:
            return None


class SceneNode(BaseModel):
    """A main tree node, positioned by the tree layout."""
    id: str
    label: str
    kind: NodeKind = NodeKind.GOAL
    x: float = 0
    y: float = 0
    width: float = 44
    height: float = 26
    depth: int = 0
    context_ids: list[str] = Field(default_factory=list)
    type_iri: Optional[str] = None

    def center(self) -> Point:
        """Get the center point of the node."""
        return (self.x, self.y)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (
            self.x - self.width / 2,
            self.y - self.height / 2,
            self.x + self.width / 2,
            self.y + self.height / 2,
        )

    def event_payload(self) -> dict:
        return {"id": self.id, "label": self.label, "kind": self.kind.value, "typeIri": self.type_iri}


class SatelliteNode(BaseModel):
    """A context or defeater attached to exactly one main node."""
    id: str
    label: str
    kind: NodeKind
    role: SatelliteRole
    host_id: str
    index: int = 0
    x: float = 0
    y: float = 0
    width: float = 44
    height: float = 26
    type_iri: Optional[str] = None

    def center(self) -> Point:
        return (self.x, self.y)

    def bounds(self) -> tuple[float, float, float, float]:
        return (
            self.x - self.width / 2,
            self.y - self.height / 2,
            self.x + self.width / 2,
            self.y + self.height / 2,
        )

    def event_payload(self) -> dict:
        return {"id": self.id, "label": self.label, "kind": self.kind.value, "typeIri": self.type_iri}


AnyNode = Union[SceneNode, SatelliteNode]


class SceneEdge(BaseModel):
    """
    An edge between two resolved node records.

    `start`/`end` are the attachment points: bottom-center to top-center for
    supports edges, right edge to left edge for context and defeater edges.
    """
    category: EdgeCategory
    source: AnyNode
    target: AnyNode
    start: Point
    end: Point

    @property
    def is_vertical(self) -> bool:
        return self.category in (EdgeCategory.TREE, EdgeCategory.EXTRA)

    def control_points(self) -> tuple[Point, Point]:
        """Cubic Bezier control points of the tree-link curve."""
        (sx, sy), (tx, ty) = self.start, self.end
        if self.is_vertical:
            my = (sy + ty) / 2
            return (sx, my), (tx, my)
        mx = (sx + tx) / 2
        return (mx, sy), (mx, ty)

    def path_data(self) -> str:
        """SVG path data for the edge curve."""
        (sx, sy), (tx, ty) = self.start, self.end
        (c1x, c1y), (c2x, c2y) = self.control_points()
        return f"M{sx:g},{sy:g}C{c1x:g},{c1y:g},{c2x:g},{c2y:g},{tx:g},{ty:g}"


class Scene(BaseModel):
    """
    The complete positioned scene.

    Rebuilt wholesale on every render; nothing here is mutated across renders.
    """
    nodes: list[SceneNode] = Field(default_factory=list)
    context_nodes: list[SatelliteNode] = Field(default_factory=list)
    defeater_nodes: list[SatelliteNode] = Field(default_factory=list)
    tree_edges: list[SceneEdge] = Field(default_factory=list)
    extra_edges: list[SceneEdge] = Field(default_factory=list)
    context_edges: list[SceneEdge] = Field(default_factory=list)
    defeater_edges: list[SceneEdge] = Field(default_factory=list)
    roots: list[str] = Field(default_factory=list)
    cycle_entries: list[str] = Field(default_factory=list)
    positions: dict[str, Point] = Field(default_factory=dict)
    satellite_positions: dict[str, Point] = Field(default_factory=dict)
    node_types: dict[str, str] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def get_node(self, node_id: str) -> Optional[SceneNode]:
        """Get a main node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def satellites(self) -> list[SatelliteNode]:
        return [*self.context_nodes, *self.defeater_nodes]

    def edges(self) -> list[SceneEdge]:
        return [*self.tree_edges, *self.extra_edges, *self.context_edges, *self.defeater_edges]

    def position_of(self, node_id: str) -> Optional[Point]:
        """Anchor lookup: main nodes first, then satellites."""
        key = str(node_id).strip()
        return self.positions.get(key) or self.satellite_positions.get(key)

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict with edges as id pairs."""
        def edge_dict(edge: SceneEdge) -> dict:
            return {
                "source": edge.source.id,
                "target": edge.target.id,
                "start": list(edge.start),
                "end": list(edge.end),
                "d": edge.path_data(),
            }

        return {
            "roots": list(self.roots),
            "nodes": [n.model_dump(mode="json") for n in self.nodes],
            "context_nodes": [n.model_dump(mode="json") for n in self.context_nodes],
            "defeater_nodes": [n.model_dump(mode="json") for n in self.defeater_nodes],
            "tree_edges": [edge_dict(e) for e in self.tree_edges],
            "extra_edges": [edge_dict(e) for e in self.extra_edges],
            "context_edges": [edge_dict(e) for e in self.context_edges],
            "defeater_edges": [edge_dict(e) for e in self.defeater_edges],
        }


class CollectionGroup(BaseModel):
    """Items grouped under an anchor node via an intermediate hub."""
    anchor_id: str
    group_id: str
    items: list[str] = Field(default_factory=list)

    def add(self, item_id: str) -> None:
        if item_id not in self.items:
            self.items.append(item_id)

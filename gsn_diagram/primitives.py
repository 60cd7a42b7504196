"""
Drawable primitives held by the renderer.

The renderer keeps a retained scene of these records grouped in named
layers; SVG output is generated from them on demand. Every primitive can
report its bounding box so the viewport can fit the drawn content.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from .models import NodeKind, Point

BBox = tuple[float, float, float, float]  # (x0, y0, x1, y1)


def union_bbox(boxes: list[BBox]) -> Optional[BBox]:
    """Smallest box containing all boxes, or None when there are none."""
    if not boxes:
        return None
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


@dataclass
class PathPrimitive:
    """An edge path or collection spoke."""
    d: str
    points: list[Point]
    classes: list[str]
    marker: Optional[str] = None   # Marker id for the arrowhead
    title: Optional[str] = None

    def bbox(self) -> BBox:
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return (min(xs), min(ys), max(xs), max(ys))


@dataclass
class NodePrimitive:
    """
    A node group: shape, inline label, optional A/J corner tag.

    Coordinates are the node center. `role` is one of main, context,
    defeater or collection.
    """
    id: str
    label: str
    role: str
    x: float
    y: float
    width: float
    height: float
    base_classes: list[str]
    kind: Optional[NodeKind] = None
    title: str = ""
    type_iri: Optional[str] = None
    host_id: Optional[str] = None
    highlight_classes: set[str] = field(default_factory=set)

    @property
    def shape(self) -> str:
        if self.role in ("defeater", "collection"):
            return "rect"
        if self.kind == NodeKind.SOLUTION:
            return "circle"
        if self.kind == NodeKind.STRATEGY:
            return "parallelogram"
        if self.kind in (NodeKind.ASSUMPTION, NodeKind.JUSTIFICATION):
            return "ellipse"
        return "rect"

    @property
    def corner_tag(self) -> Optional[str]:
        if self.role in ("defeater", "collection"):
            return None
        if self.kind == NodeKind.ASSUMPTION:
            return "A"
        if self.kind == NodeKind.JUSTIFICATION:
            return "J"
        return None

    @property
    def slant(self) -> float:
        return min(20.0, self.width / 5)

    def polygon_points(self) -> list[Point]:
        """Parallelogram corners relative to the center."""
        w, h, s = self.width, self.height, self.slant
        x, y = -w / 2, -h / 2
        return [(x + s, y), (x + w + s, y), (x + w - s, y + h), (x - s, y + h)]

    def shape_box(self) -> BBox:
        """Shape extent relative to the node center."""
        w, h = self.width, self.height
        if self.shape == "circle":
            r = max(w, h) / 2
            return (-r, -r, r, r)
        if self.shape == "parallelogram":
            s = self.slant
            return (-w / 2 - s, -h / 2, w / 2 + s, h / 2)
        return (-w / 2, -h / 2, w / 2, h / 2)

    def bbox(self) -> BBox:
        x0, y0, x1, y1 = self.shape_box()
        return (self.x + x0, self.y + y0, self.x + x1, self.y + y1)

    def contains(self, px: float, py: float) -> bool:
        x0, y0, x1, y1 = self.bbox()
        return x0 <= px <= x1 and y0 <= py <= y1

    def class_attr(self) -> str:
        return " ".join([*self.base_classes, *sorted(self.highlight_classes)])

    def event_payload(self) -> dict:
        kind = self.kind.value if self.kind is not None else None
        return {"id": self.id, "label": self.label, "kind": kind, "typeIri": self.type_iri}


@dataclass
class DotPrimitive:
    """A collection hub dot."""
    x: float
    y: float
    r: float
    classes: list[str]

    def bbox(self) -> BBox:
        return (self.x - self.r, self.y - self.r, self.x + self.r, self.y + self.r)


@dataclass
class DiamondPrimitive:
    """The undeveloped glyph drawn under a node."""
    node_id: str
    cx: float
    cy: float
    size: float = 6

    @property
    def d(self) -> str:
        cx, cy, s = self.cx, self.cy, self.size
        return f"M{cx:g},{cy - s:g}L{cx + s:g},{cy:g}L{cx:g},{cy + s:g}L{cx - s:g},{cy:g}Z"

    def bbox(self) -> BBox:
        s = self.size
        return (self.cx - s, self.cy - s, self.cx + s, self.cy + s)


Primitive = Union[PathPrimitive, NodePrimitive, DotPrimitive, DiamondPrimitive]


@dataclass
class Layer:
    """An ordered group of primitives that can be hidden as a whole."""
    name: str
    items: list[Primitive] = field(default_factory=list)
    visible: bool = True

    def clear(self) -> None:
        self.items.clear()

    def bbox(self) -> Optional[BBox]:
        return union_bbox([item.bbox() for item in self.items])

"""
Diagram renderer - materializes a scene as layered drawable primitives.

The renderer owns two pieces of mutable view state:
- highlight classes by node id (replaced per class, never accumulated)
- the viewport transform (fit, reset, zoom and pan)

Primitives are retained records; `to_svg()` turns them into an SVG
document with drawsvg. Pointer gestures arrive as `click`, `double_click`
or `click_at` and are forwarded to the event bus as activation events.
"""

import itertools
import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

import drawsvg as draw

from .config import (
    DEFAULT_HEIGHT,
    FIT_DURATION,
    FIT_PADDING,
    FIT_SCALE_MAX,
    FIT_SCALE_MIN,
    RESET_DURATION,
    UNDEVELOPED_CLASSES,
    ZOOM_SCALE_MAX,
    ZOOM_SCALE_MIN,
)
from .events import CONTEXT_ACTIVATED, DEFEATER_ACTIVATED, NODE_ACTIVATED, NODE_OPENED
from .exceptions import RendererStateError
from .models import EdgeCategory, Point, SatelliteNode, Scene, SceneEdge
from .primitives import (
    BBox,
    DiamondPrimitive,
    DotPrimitive,
    Layer,
    NodePrimitive,
    PathPrimitive,
    union_bbox,
)
from .viewport import IDENTITY, Transform, ViewportAnimator

if TYPE_CHECKING:
    from .events import EventBus
    from .surface import DiagramSurface

logger = logging.getLogger(__name__)

# Draw order: edges, nodes, satellites, overlays
LAYER_NAMES = (
    "links",
    "extra-links",
    "ctx-links",
    "def-links",
    "nodes",
    "ctx-nodes",
    "def-nodes",
    "collections",
    "decorations",
)

# Short names accepted by set_layer_visible
LAYER_GROUPS = {
    "ctx": ("ctx-links", "ctx-nodes"),
    "def": ("def-links", "def-nodes"),
    "extra": ("extra-links",),
    "collections": ("collections",),
}

NODE_LAYERS = ("nodes", "ctx-nodes", "def-nodes")

_EDGE_STYLE = {
    EdgeCategory.TREE: ("links", ["gsn-link"], "norm", "supported by"),
    EdgeCategory.EXTRA: ("extra-links", ["gsn-link", "extra"], "norm", "supported by"),
    EdgeCategory.CONTEXT: ("ctx-links", ["gsn-link", "ctx"], "ctx", "in context of"),
    EdgeCategory.DEFEATER: ("def-links", ["gsn-link", "def"], "def", "challenges"),
}

ARROW_PATH = "M-9,-5 L1,0 L-9,5 Z"
DIAMOND_SIZE = 6
LABEL_FONT_SIZE = 11
TAG_FONT_SIZE = 9

_renderer_ids = itertools.count(1)


class RendererState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RENDERED = "rendered"
    DESTROYED = "destroyed"


def compute_fit_transform(
    bbox: Optional[BBox],
    view_width: float,
    view_height: float,
    padding: float = FIT_PADDING,
) -> Optional[Transform]:
    """
    Transform that scales and centers `bbox` inside the view.

    Returns None when the box has zero extent.
    """
    if bbox is None:
        return None
    x0, y0, x1, y1 = bbox
    bw, bh = x1 - x0, y1 - y0
    if bw <= 0 or bh <= 0:
        return None
    sx = (view_width - padding * 2) / bw
    sy = (view_height - padding * 2) / bh
    s = max(FIT_SCALE_MIN, min(FIT_SCALE_MAX, min(1.0, sx, sy)))
    tx = padding - x0 * s + (view_width - (bw * s + padding * 2)) / 2
    ty = padding - y0 * s + (view_height - (bh * s + padding * 2)) / 2
    return Transform(k=s, x=tx, y=ty)


class DiagramRenderer:
    """
    Draws one scene at a time onto a surface.

    State: uninitialized -> rendered -> (rendered | destroyed). A
    destroyed renderer refuses to render again.
    """

    def __init__(self, surface: "DiagramSurface", bus: Optional["EventBus"] = None):
        self.surface = surface
        self.bus = bus
        self.state = RendererState.UNINITIALIZED
        self.scene: Optional[Scene] = None
        self.layers: dict[str, Layer] = {name: Layer(name) for name in LAYER_NAMES}
        self.viewport = ViewportAnimator()
        self._index: dict[str, list[NodePrimitive]] = {}

        uid = next(_renderer_ids)
        self.marker_ids = {
            "norm": f"arrow-{uid}",
            "ctx": f"arrow-ctx-{uid}",
            "def": f"arrow-def-{uid}",
        }

    @property
    def is_destroyed(self) -> bool:
        return self.state == RendererState.DESTROYED

    @property
    def is_attached(self) -> bool:
        return self.surface.owner is self

    def attach(self) -> None:
        """Take ownership of the surface, destroying its previous renderer."""
        if self.is_destroyed:
            raise RendererStateError("Cannot attach a destroyed renderer")
        self.surface.attach(self)

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def render(self, scene: Scene) -> None:
        """Discard every primitive and draw `scene` from scratch."""
        if self.is_destroyed:
            raise RendererStateError("Cannot render on a destroyed renderer")

        for layer in self.layers.values():
            layer.clear()
        self._index.clear()
        self.scene = scene

        for edge in scene.edges():
            self._draw_edge(edge)

        for node in scene.nodes:
            self._add_node(NodePrimitive(
                id=node.id,
                label=node.label,
                role="main",
                x=node.x,
                y=node.y,
                width=node.width,
                height=node.height,
                base_classes=["gsn-node", node.kind.value],
                kind=node.kind,
                title=node.id,
                type_iri=node.type_iri,
            ), "nodes")

        for sat in scene.context_nodes:
            self._add_node(self._satellite_primitive(
                sat, "context", ["gsn-node", "ctx", sat.kind.value],
                f"{sat.id} (context of {sat.host_id})",
            ), "ctx-nodes")

        for sat in scene.defeater_nodes:
            self._add_node(self._satellite_primitive(
                sat, "defeater", ["gsn-node", "def"],
                f"{sat.id} (challenges {sat.host_id})",
            ), "def-nodes")

        self.state = RendererState.RENDERED
        logger.debug(
            "Rendered %d nodes, %d satellites, %d edges",
            len(scene.nodes), len(scene.satellites()), len(scene.edges()),
        )

    def _draw_edge(self, edge: SceneEdge) -> None:
        layer, classes, marker, title = _EDGE_STYLE[edge.category]
        c1, c2 = edge.control_points()
        self.layers[layer].items.append(PathPrimitive(
            d=edge.path_data(),
            points=[edge.start, c1, c2, edge.end],
            classes=list(classes),
            marker=self.marker_ids[marker],
            title=title,
        ))

    @staticmethod
    def _satellite_primitive(sat: SatelliteNode, role: str, classes: list[str], title: str) -> NodePrimitive:
        return NodePrimitive(
            id=sat.id,
            label=sat.label,
            role=role,
            x=sat.x,
            y=sat.y,
            width=sat.width,
            height=sat.height,
            base_classes=classes,
            kind=sat.kind,
            title=title,
            type_iri=sat.type_iri,
            host_id=sat.host_id,
        )

    def _add_node(self, prim: NodePrimitive, layer: str) -> None:
        self.layers[layer].items.append(prim)
        self._index.setdefault(prim.id, []).append(prim)

    def node_primitives(self, node_id: str) -> list[NodePrimitive]:
        """All drawn groups for an id (a shared context is drawn once per host)."""
        return list(self._index.get(str(node_id).strip(), ()))

    # ------------------------------------------------------------------
    # Highlights
    # ------------------------------------------------------------------

    def highlight(self, ids: Iterable[str], cls: str) -> None:
        """Replace the membership of highlight class `cls` with `ids`."""
        if not cls:
            raise ValueError("highlight class must be a non-empty string")
        members = {str(i).strip() for i in (ids or ())}
        for node_id, prims in self._index.items():
            on = node_id in members
            for prim in prims:
                if on:
                    prim.highlight_classes.add(cls)
                else:
                    prim.highlight_classes.discard(cls)
        if cls in UNDEVELOPED_CLASSES:
            self.mark_undeveloped()

    def highlighted(self, cls: str) -> set[str]:
        """Ids currently drawn with class `cls`."""
        return {
            node_id for node_id, prims in self._index.items()
            if any(cls in p.highlight_classes for p in prims)
        }

    def classes_of(self, node_id: str) -> set[str]:
        classes: set[str] = set()
        for prim in self.node_primitives(node_id):
            classes |= prim.highlight_classes
        return classes

    def clear_all(self) -> None:
        """Remove every highlight class and the derived decorations."""
        for prims in self._index.values():
            for prim in prims:
                prim.highlight_classes.clear()
        self.layers["decorations"].clear()

    def mark_undeveloped(self) -> None:
        """Redraw a diamond under every node carrying the undeveloped class."""
        decorations = self.layers["decorations"]
        decorations.clear()
        for layer in NODE_LAYERS:
            for prim in self.layers[layer].items:
                if prim.highlight_classes & UNDEVELOPED_CLASSES:
                    x0, _, x1, y1 = prim.bbox()
                    decorations.items.append(DiamondPrimitive(
                        node_id=prim.id,
                        cx=(x0 + x1) / 2,
                        cy=y1 + DIAMOND_SIZE + 1,
                        size=DIAMOND_SIZE,
                    ))

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    @property
    def transform(self) -> Transform:
        return self.viewport.transform

    def content_bbox(self) -> Optional[BBox]:
        """Bounding box of every primitive in a visible layer."""
        boxes = []
        for layer in self.layers.values():
            if layer.visible:
                box = layer.bbox()
                if box is not None:
                    boxes.append(box)
        return union_bbox(boxes)

    def view_size(self) -> tuple[float, float]:
        return (self.surface.pixel_width, self.surface.height or DEFAULT_HEIGHT)

    def fit(self, padding: float = FIT_PADDING) -> Optional[Transform]:
        """
        Animate the viewport so all visible content fits the view.

        Returns the target transform, or None when there is nothing to fit.
        """
        vw, vh = self.view_size()
        target = compute_fit_transform(self.content_bbox(), vw, vh, padding)
        if target is None:
            return None
        self.viewport.animate_to(target, FIT_DURATION)
        return target

    def reset(self) -> Transform:
        """Animate the viewport back to the identity transform."""
        self.viewport.animate_to(IDENTITY, RESET_DURATION)
        return IDENTITY

    def zoom_by(self, factor: float, about: Optional[Point] = None) -> Transform:
        """Scale the view by `factor`, keeping the screen point `about` fixed."""
        self.viewport.interrupt()
        current = self.viewport.transform
        if about is None:
            vw, vh = self.view_size()
            about = (vw / 2, vh / 2)
        k = max(ZOOM_SCALE_MIN, min(ZOOM_SCALE_MAX, current.k * factor))
        cx, cy = current.invert(about)
        zoomed = Transform(k=k, x=about[0] - cx * k, y=about[1] - cy * k)
        self.viewport.set(zoomed)
        return zoomed

    def pan_by(self, dx: float, dy: float) -> Transform:
        current = self.viewport.transform
        moved = Transform(k=current.k, x=current.x + dx, y=current.y + dy)
        self.viewport.set(moved)
        return moved

    def set_layer_visible(self, name: str, visible: bool) -> None:
        """Show or hide a layer by full name or group name (ctx, def, extra)."""
        names = LAYER_GROUPS.get(name, (name,))
        for layer_name in names:
            if layer_name not in self.layers:
                raise KeyError(f"Unknown layer: {name}")
            self.layers[layer_name].visible = bool(visible)

    # ------------------------------------------------------------------
    # Pointer gestures
    # ------------------------------------------------------------------

    def node_at(self, x: float, y: float) -> Optional[NodePrimitive]:
        """Top-most visible node under the screen point (x, y)."""
        cx, cy = self.viewport.transform.invert((x, y))
        for layer_name in reversed(NODE_LAYERS):
            layer = self.layers[layer_name]
            if not layer.visible:
                continue
            for prim in reversed(layer.items):
                if prim.contains(cx, cy):
                    return prim
        return None

    def _pick(self, node_id: str) -> Optional[NodePrimitive]:
        prims = self.node_primitives(node_id)
        return prims[0] if prims else None

    def click(self, node_id: str, detail: int = 1) -> bool:
        """
        Single click on a node. Returns True if an event was emitted.

        Clicks that are part of a double-click gesture (detail > 1) are
        suppressed.
        """
        if detail > 1:
            return False
        prim = self._pick(node_id)
        if prim is None:
            return False
        return self._activate(prim)

    def double_click(self, node_id: str) -> bool:
        prim = self._pick(node_id)
        if prim is None:
            return False
        return self._open(prim)

    def click_at(self, x: float, y: float, detail: int = 1) -> bool:
        """Click at a screen point; detail 2 completes a double click."""
        prim = self.node_at(x, y)
        if prim is None:
            return False
        if detail == 2:
            return self._open(prim)
        if detail > 1:
            return False
        return self._activate(prim)

    def _activate(self, prim: NodePrimitive) -> bool:
        if prim.role == "context":
            return self._emit(CONTEXT_ACTIVATED, {"id": prim.id, "label": prim.label})
        if prim.role == "defeater":
            return self._emit(DEFEATER_ACTIVATED, {"id": prim.id, "label": prim.label})
        return self._emit(NODE_ACTIVATED, prim.event_payload())

    def _open(self, prim: NodePrimitive) -> bool:
        return self._emit(NODE_OPENED, prim.event_payload())

    def _emit(self, event: str, payload: dict) -> bool:
        if self.bus is None or self.is_destroyed:
            return False
        self.bus.emit(event, payload)
        return True

    # ------------------------------------------------------------------
    # Teardown and output
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Release all primitives, the event sink and the surface. Idempotent."""
        if self.is_destroyed:
            return
        self.state = RendererState.DESTROYED
        self.viewport.interrupt()
        for layer in self.layers.values():
            layer.clear()
        self._index.clear()
        self.scene = None
        self.bus = None
        self.surface.release(self)
        logger.debug("Renderer destroyed")

    def to_svg(self) -> str:
        """Serialize the current primitives and transform to an SVG document."""
        width, height = self.view_size()
        d = draw.Drawing(width, height, class_="gsn-svg")
        stylesheet = self.surface.stylesheet
        if stylesheet:
            d.append_css(stylesheet)

        markers = {}
        for klass, marker_id in self.marker_ids.items():
            marker = draw.Marker(
                -9, -5, 1, 5,
                scale=0.8,
                orient="auto-start-reverse",
                id=marker_id,
                class_=f"gsn-marker {klass}",
            )
            marker.append(draw.Path(d=ARROW_PATH, fill="currentColor"))
            markers[marker_id] = marker

        viewport = draw.Group(class_="gsn-viewport", transform=self.viewport.transform.to_svg())
        for layer in self.layers.values():
            if not layer.visible:
                continue
            group = draw.Group(class_=f"gsn-layer-{layer.name}")
            for item in layer.items:
                group.append(_draw_primitive(item, markers))
            viewport.append(group)
        d.append(viewport)
        return d.as_svg()


def _draw_primitive(item, markers: dict):
    if isinstance(item, PathPrimitive):
        kwargs = {"class_": " ".join(item.classes), "fill": "none"}
        if item.marker and item.marker in markers:
            kwargs["marker_end"] = markers[item.marker]
        path = draw.Path(d=item.d, **kwargs)
        if item.title:
            path.append_title(item.title)
        return path

    if isinstance(item, DotPrimitive):
        hub = draw.Group(class_="collection-hub", transform=f"translate({item.x:g},{item.y:g})")
        hub.append(draw.Circle(0, 0, item.r, class_=" ".join(item.classes)))
        return hub

    if isinstance(item, DiamondPrimitive):
        return draw.Path(d=item.d, class_="undev-diamond")

    return _draw_node(item)


def _draw_node(prim: NodePrimitive) -> draw.Group:
    group = draw.Group(
        class_=prim.class_attr(),
        transform=f"translate({prim.x:g},{prim.y:g})",
        data_id=prim.id,
    )
    w, h = prim.width, prim.height
    shape_group = draw.Group(class_="gsn-node-shape")
    if prim.shape == "circle":
        shape_group.append(draw.Circle(0, 0, max(w, h) / 2))
    elif prim.shape == "parallelogram":
        coords = [c for point in prim.polygon_points() for c in point]
        shape_group.append(draw.Lines(*coords, close=True))
    elif prim.shape == "ellipse":
        shape_group.append(draw.Ellipse(0, 0, w / 2, h / 2))
    else:
        shape_group.append(draw.Rectangle(-w / 2, -h / 2, w, h))
    group.append(shape_group)

    text = draw.Text(prim.label, LABEL_FONT_SIZE, 0, 0, text_anchor="middle", dy="0.35em")
    if prim.title:
        text.append_title(prim.title)
    group.append(text)

    tag = prim.corner_tag
    if tag:
        group.append(draw.Text(
            tag, TAG_FONT_SIZE, w / 2 - 6, h / 2 + 8,
            class_="gsn-node-tag", text_anchor="start",
        ))
    return group

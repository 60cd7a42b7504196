"""
Mount contract - builds a diagram onto a surface and returns its handle.

`build_graph` produces a rendered but detached diagram so a caller can
still throw it away (a superseded render) without touching the surface.
`mount` resolves the target, builds, attaches and fits in one step.
"""

import logging
from typing import Any, Iterable, Optional

from .collections_overlay import CollectionsController
from .config import DEFAULT_OVERLAY_CLASS, FIT_PADDING, CollectionLayout, RenderOptions
from .events import EventBus
from .models import Point, Scene
from .renderer import DiagramRenderer
from .scene import build_scene
from .surface import DiagramSurface, SurfaceRegistry, resolve_surface
from .viewport import Transform

logger = logging.getLogger(__name__)


class GraphHandle:
    """
    Controller handle for one mounted diagram.

    Wraps the renderer and its collections overlay; this is what the host
    and the diagram controller talk to.
    """

    def __init__(self, renderer: DiagramRenderer, collections: CollectionsController):
        self.renderer = renderer
        self.collections = collections

    @property
    def scene(self) -> Optional[Scene]:
        return self.renderer.scene

    @property
    def surface(self) -> DiagramSurface:
        return self.renderer.surface

    @property
    def is_destroyed(self) -> bool:
        return self.renderer.is_destroyed

    def attach(self) -> None:
        self.renderer.attach()

    def fit(self, padding: float = FIT_PADDING) -> Optional[Transform]:
        return self.renderer.fit(padding)

    def reset(self) -> Transform:
        return self.renderer.reset()

    def zoom_by(self, factor: float, about: Optional[Point] = None) -> Transform:
        return self.renderer.zoom_by(factor, about)

    def pan_by(self, dx: float, dy: float) -> Transform:
        return self.renderer.pan_by(dx, dy)

    def set_layer_visible(self, name: str, visible: bool) -> None:
        self.renderer.set_layer_visible(name, visible)

    def highlight_by_ids(self, ids: Iterable[str], cls: str = DEFAULT_OVERLAY_CLASS) -> None:
        self.renderer.highlight(ids, cls or DEFAULT_OVERLAY_CLASS)

    def clear_all(self) -> None:
        self.renderer.clear_all()

    def add_collections(self, rows: Iterable[Any], options: "CollectionLayout | dict | None" = None) -> int:
        return self.collections.add_collections(rows, options)

    def clear_collections(self) -> None:
        self.collections.clear_collections()

    def to_svg(self) -> str:
        return self.renderer.to_svg()

    def destroy(self) -> None:
        self.renderer.destroy()


async def build_graph(
    rows: Iterable[Any],
    surface: DiagramSurface,
    options: "RenderOptions | dict | None" = None,
    bus: Optional[EventBus] = None,
) -> GraphHandle:
    """
    Build and render a diagram without attaching it to the surface.

    Args:
        rows: Relation rows
        surface: Surface the diagram will be drawn on once attached
        options: Render options (size, label function, predicate aliases)
        bus: Event sink for activation events

    Returns:
        A detached GraphHandle
    """
    opts = RenderOptions.coerce(options)
    await surface.prepare()

    scene = build_scene(rows, opts)
    renderer = DiagramRenderer(surface, bus)
    renderer.render(scene)

    collections = CollectionsController(
        renderer.layers["collections"],
        scene.position_of,
        label=opts.label,
    )
    return GraphHandle(renderer, collections)


async def mount(
    target: "DiagramSurface | str | None",
    rows: Iterable[Any],
    options: "RenderOptions | dict | None" = None,
    bus: Optional[EventBus] = None,
    registry: Optional[SurfaceRegistry] = None,
) -> GraphHandle:
    """
    Mount a diagram of `rows` onto `target` and fit it to the view.

    Raises:
        MountTargetError: the target cannot be resolved
    """
    surface = resolve_surface(target, registry, name="mount")
    opts = RenderOptions.coerce(options)
    if "width" in opts.model_fields_set and opts.width:
        surface.width = opts.width
    if "height" in opts.model_fields_set:
        surface.height = opts.height

    handle = await build_graph(rows, surface, opts, bus)
    handle.attach()
    handle.fit()
    return handle

"""
Drawable surfaces and mount target resolution.

A surface is the container a diagram is mounted into. It is owned by at
most one renderer at a time: attaching a new renderer destroys the
previous one first.
"""

import asyncio
import logging
from importlib import resources
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_WIDTH, MIN_WIDTH, default_height
from .exceptions import MountTargetError

if TYPE_CHECKING:
    from .renderer import DiagramRenderer

logger = logging.getLogger(__name__)

DEFAULT_MOUNT = "gsn-host"


def _read_stylesheet() -> str:
    return resources.files("gsn_diagram").joinpath("static/graph.css").read_text(encoding="utf-8")


class DiagramSurface:
    """
    A named drawing area with a pixel size.

    `width` is the explicit size; `client_width` is what the host reports
    for the container and is used when no explicit width is set.
    """

    def __init__(
        self,
        name: str = DEFAULT_MOUNT,
        width: Optional[int] = None,
        height: Optional[int] = None,
        client_width: Optional[int] = None,
        stylesheet: Optional[str] = None,
    ):
        self.name = name
        self.width = width
        self.height = height if height is not None else default_height()
        self.client_width = client_width
        self._stylesheet = stylesheet
        self._owner: Optional["DiagramRenderer"] = None

    @property
    def pixel_width(self) -> int:
        if self.width:
            return int(self.width)
        return max(MIN_WIDTH, int(self.client_width or DEFAULT_WIDTH))

    @property
    def owner(self) -> Optional["DiagramRenderer"]:
        return self._owner

    @property
    def stylesheet(self) -> str:
        return self._stylesheet or ""

    async def prepare(self) -> None:
        """Load the packaged stylesheet once."""
        if self._stylesheet is None:
            self._stylesheet = await asyncio.to_thread(_read_stylesheet)

    def attach(self, renderer: "DiagramRenderer") -> None:
        """Hand the surface to a renderer, tearing down the previous owner."""
        previous = self._owner
        if previous is renderer:
            return
        self._owner = renderer
        if previous is not None:
            logger.debug("Surface %s: replacing renderer", self.name)
            previous.destroy()

    def release(self, renderer: "DiagramRenderer") -> None:
        """Drop ownership if `renderer` is the current owner."""
        if self._owner is renderer:
            self._owner = None

    def to_svg(self) -> str:
        if self._owner is None:
            return (
                f'<svg xmlns="http://www.w3.org/2000/svg" width="{self.pixel_width}" '
                f'height="{self.height}"></svg>'
            )
        return self._owner.to_svg()

    def __repr__(self) -> str:
        return f"DiagramSurface({self.name!r}, {self.pixel_width}x{self.height})"


class SurfaceRegistry:
    """Named surfaces the host has made available for mounting."""

    def __init__(self):
        self._surfaces: dict[str, DiagramSurface] = {}

    def register(self, surface: DiagramSurface) -> DiagramSurface:
        self._surfaces[surface.name] = surface
        return surface

    def unregister(self, name: str) -> Optional[DiagramSurface]:
        return self._surfaces.pop(name, None)

    def get(self, name: str) -> Optional[DiagramSurface]:
        return self._surfaces.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._surfaces


default_registry = SurfaceRegistry()


def resolve_surface(
    target: "DiagramSurface | str | None",
    registry: Optional[SurfaceRegistry] = None,
    name: str = "mount",
) -> DiagramSurface:
    """
    Resolve a mount target to a surface.

    Raises:
        MountTargetError: the target is missing or not registered
    """
    if isinstance(target, DiagramSurface):
        return target
    if target is None:
        raise MountTargetError(None, f"{name}: no mount target given")
    reg = registry if registry is not None else default_registry
    surface = reg.get(str(target))
    if surface is None:
        raise MountTargetError(target, f'{name}: mount target "{target}" not found')
    return surface

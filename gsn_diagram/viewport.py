"""
Viewport transform and its animation.

A Transform is immutable: every animation frame installs a complete new
value, so interrupting an animation at any point leaves a valid transform.
Animations run as asyncio tasks when an event loop is running; otherwise
the target transform is applied at once.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .models import Point

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 60


@dataclass(frozen=True)
class Transform:
    """Scale k followed by translation (x, y): screen = content * k + (x, y)."""
    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def apply(self, point: Point) -> Point:
        return (point[0] * self.k + self.x, point[1] * self.k + self.y)

    def invert(self, point: Point) -> Point:
        return ((point[0] - self.x) / self.k, (point[1] - self.y) / self.k)

    def interpolate(self, other: "Transform", t: float) -> "Transform":
        return Transform(
            k=self.k + (other.k - self.k) * t,
            x=self.x + (other.x - self.x) * t,
            y=self.y + (other.y - self.y) * t,
        )

    def is_close(self, other: "Transform", tol: float = 1e-9) -> bool:
        return (
            abs(self.k - other.k) <= tol
            and abs(self.x - other.x) <= tol
            and abs(self.y - other.y) <= tol
        )

    def to_svg(self) -> str:
        return f"translate({self.x:g},{self.y:g}) scale({self.k:g})"


IDENTITY = Transform()


def ease_cubic_in_out(t: float) -> float:
    t *= 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


class ViewportAnimator:
    """Owns the current transform and at most one running transition."""

    def __init__(self, transform: Transform = IDENTITY):
        self._transform = transform
        self._task: Optional[asyncio.Task] = None

    @property
    def transform(self) -> Transform:
        return self._transform

    @property
    def is_animating(self) -> bool:
        return self._task is not None and not self._task.done()

    def interrupt(self) -> None:
        """Stop any running transition where it stands."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def set(self, transform: Transform) -> None:
        """Jump to a transform, interrupting any transition."""
        self.interrupt()
        self._transform = transform

    def animate_to(self, target: Transform, duration: float) -> None:
        """Transition to `target`, replacing any running transition."""
        self.interrupt()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None or duration <= 0:
            self._transform = target
            return
        self._task = loop.create_task(self._run(self._transform, target, duration))

    async def _run(self, start: Transform, target: Transform, duration: float) -> None:
        loop = asyncio.get_running_loop()
        began = loop.time()
        while True:
            t = min(1.0, (loop.time() - began) / duration)
            self._transform = start.interpolate(target, ease_cubic_in_out(t))
            if t >= 1.0:
                break
            await asyncio.sleep(FRAME_INTERVAL)
        self._transform = target

    async def wait(self) -> None:
        """Wait for the running transition, if any, to finish or be interrupted."""
        task = self._task
        if task is None:
            return
        await asyncio.wait([task])
        if task.cancelled():
            logger.debug("Viewport transition interrupted")

"""
Collections overlay - radial hub-and-spoke groupings under anchor nodes.

Rows shaped {ctx, clt, item} are grouped by (anchor, collection). Each
group gets a hub placed at a fixed offset from its anchor; hubs sharing an
anchor stack downwards. Items sit on concentric rings around the hub. The
main layout is never touched: everything is drawn into its own layer.
"""

import logging
import math
from typing import Any, Callable, Iterable, Optional

from .config import LABEL_MAX_WIDTH, CollectionLayout
from .models import CollectionGroup, Point
from .primitives import DotPrimitive, Layer, NodePrimitive, PathPrimitive
from .scene import label_width
from .utils import row_cell

logger = logging.getLogger(__name__)

AnchorLookup = Callable[[str], Optional[Point]]


def group_collection_rows(rows: Iterable[Any]) -> list[CollectionGroup]:
    """Group {ctx, clt, item} rows by (anchor, collection), in input order."""
    groups: dict[tuple[str, str], CollectionGroup] = {}
    for row in rows or ():
        if not isinstance(row, dict):
            continue
        anchor = row_cell(row, "ctx")
        group_id = row_cell(row, "clt")
        item = row_cell(row, "item")
        if not (anchor and group_id and item):
            continue
        key = (anchor, group_id)
        if key not in groups:
            groups[key] = CollectionGroup(anchor_id=anchor, group_id=group_id)
        groups[key].add(item)
    return list(groups.values())


def ring_positions(
    count: int,
    hub: Point,
    layout: CollectionLayout,
) -> list[Point]:
    """Item centers around a hub, `max_per_row` per ring."""
    per_ring = max(1, layout.max_per_row)
    hx, hy = hub
    positions = []
    for i in range(count):
        ring, slot = divmod(i, per_ring)
        angle = layout.start_angle + (2 * math.pi / per_ring) * slot
        radius = layout.arm_len + ring * layout.ring_gap
        positions.append((hx + math.cos(angle) * radius, hy + math.sin(angle) * radius))
    return positions


def _line(a: Point, b: Point) -> PathPrimitive:
    return PathPrimitive(
        d=f"M{a[0]:g},{a[1]:g} L{b[0]:g},{b[1]:g}",
        points=[a, b],
        classes=["gsn-link", "collection"],
    )


class CollectionsController:
    """
    Draws collection groups into a dedicated layer.

    Args:
        layer: Layer the overlay owns
        lookup: Anchor id -> center position, or None when not drawn
        label: Item id -> display label
        width_fn: Label -> width heuristic
    """

    def __init__(
        self,
        layer: Layer,
        lookup: AnchorLookup,
        label: Callable[[str], str] = str,
        width_fn: Callable[[str], float] = label_width,
    ):
        self.layer = layer
        self.lookup = lookup
        self.label = label
        self.width_fn = width_fn

    def clear_collections(self) -> None:
        self.layer.clear()

    def add_collections(
        self,
        rows: Iterable[Any],
        options: "CollectionLayout | dict | None" = None,
    ) -> int:
        """
        Replace the overlay with the groups in `rows`.

        Groups whose anchor has no known position are skipped.

        Returns:
            Number of groups drawn
        """
        self.clear_collections()
        if isinstance(options, CollectionLayout):
            layout = options
        else:
            layout = CollectionLayout.model_validate(options or {})

        hubs_per_anchor: dict[str, int] = {}
        drawn = 0
        for group in group_collection_rows(rows):
            anchor = self.lookup(group.anchor_id)
            if anchor is None:
                logger.debug(
                    "Collection %s skipped: anchor %s not in scene",
                    group.group_id, group.anchor_id,
                )
                continue

            idx = hubs_per_anchor.get(group.anchor_id, 0)
            hubs_per_anchor[group.anchor_id] = idx + 1
            hub = (anchor[0] + layout.dx_hub, anchor[1] + layout.dy_hub + idx * layout.dy_stride)

            items = self.layer.items
            items.append(_line(anchor, hub))
            items.append(DotPrimitive(x=hub[0], y=hub[1], r=layout.r_hub, classes=["collection-dot"]))

            for item_id, pos in zip(group.items, ring_positions(len(group.items), hub, layout)):
                items.append(_line(hub, pos))
                text = self.label(item_id)
                width = max(layout.item_min_width, min(LABEL_MAX_WIDTH, self.width_fn(text)))
                items.append(NodePrimitive(
                    id=item_id,
                    label=text,
                    role="collection",
                    x=pos[0],
                    y=pos[1],
                    width=width,
                    height=layout.item_height,
                    base_classes=["gsn-node", "collection", "item"],
                    title=str(item_id),
                    host_id=group.group_id,
                ))
            drawn += 1
        return drawn

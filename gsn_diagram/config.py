"""
Configuration for diagram construction, rendering and query wiring.

Module constants hold the fixed geometry; pydantic models hold the option
sets callers may override. Unknown option keys are ignored, never errors.

Environment overrides:
- GSN_DIAGRAM_HEIGHT: default diagram height in pixels
- GSN_DIAGRAM_QUERY_DIR: base directory for query files
"""

import math
import os
from pathlib import Path
from typing import Callable, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


NODE_HEIGHT = 26
DEFEATER_HEIGHT = 18
DEFAULT_HEIGHT = 520
DEFAULT_WIDTH = 800
MIN_WIDTH = 300
FIT_PADDING = 40

# Label width heuristic: clamp(7.2 * len + pad, min, max)
CHAR_WIDTH = 7.2
LABEL_MIN_WIDTH = 44
LABEL_MAX_WIDTH = 180
LABEL_PAD = 12
DEFEATER_MIN_WIDTH = 36
DEFEATER_MAX_WIDTH = 120
DEFEATER_PAD = 10

# Viewport
FIT_SCALE_MIN = 0.25
FIT_SCALE_MAX = 2.5
ZOOM_SCALE_MIN = 0.25
ZOOM_SCALE_MAX = 3.0
FIT_DURATION = 0.45   # seconds
RESET_DURATION = 0.40

DEFAULT_SUPPORTED_BY = [
    "supported by",
    "gsn:supportedBy",
    "https://w3id.org/OntoGSN/ontology#supportedBy",
    "http://w3id.org/gsn#supportedBy",
]

DEFAULT_CONTEXT_OF = [
    "in context of",
    "gsn:inContextOf",
    "https://w3id.org/OntoGSN/ontology#inContextOf",
    "http://w3id.org/gsn#inContextOf",
]

DEFAULT_CHALLENGES = [
    "challenges",
    "gsn:challenges",
    "https://w3id.org/OntoGSN/ontology#challenges",
    "http://w3id.org/gsn#challenges",
]

# Overlay classes with built-in meaning
UNDEVELOPED_CLASSES = frozenset({"undev", "undeveloped"})
IN_CONTEXT_CLASS = "in-context"
DEFEATER_PROPAGATION_CLASS = "def-prop"
DEFAULT_OVERLAY_CLASS = "overlay"
COLLECTION_CLASS = "collection"


def _identity(value: str) -> str:
    return value


def default_height() -> int:
    """Default diagram height, overridable via GSN_DIAGRAM_HEIGHT."""
    raw = os.environ.get("GSN_DIAGRAM_HEIGHT")
    try:
        return int(raw) if raw else DEFAULT_HEIGHT
    except ValueError:
        return DEFAULT_HEIGHT


def query_dir() -> Path:
    """Base directory for query files, overridable via GSN_DIAGRAM_QUERY_DIR."""
    return Path(os.environ.get("GSN_DIAGRAM_QUERY_DIR", "."))


class LayoutSettings(BaseModel):
    """Spacing of the tree layout and of satellite placement."""
    model_config = ConfigDict(extra="ignore")

    dx: float = 200           # horizontal node spacing
    dy: float = 80            # vertical rank spacing
    ctx_offset_x: float = 80  # host center -> first context
    ctx_stride_x: float = 50  # between successive contexts
    ctx_stride_y: float = 0
    def_offset_x: float = 80  # challenged center -> first defeater (leftwards)
    def_stride_x: float = 50
    def_stride_y: float = 0


class RenderOptions(BaseModel):
    """
    Options recognised by mount().

    Accepts both the camelCase keys of the host contract
    (supportedByAliases, contextOfAliases, challengesAliases) and
    snake_case names.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    height: int = Field(default_factory=default_height)
    width: Optional[int] = None
    label: Callable[[str], str] = _identity
    supported_by_aliases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_BY),
        validation_alias=AliasChoices("supported_by_aliases", "supportedByAliases", "supportedBy"),
    )
    context_of_aliases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONTEXT_OF),
        validation_alias=AliasChoices("context_of_aliases", "contextOfAliases", "contextOf"),
    )
    challenges_aliases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CHALLENGES),
        validation_alias=AliasChoices("challenges_aliases", "challengesAliases", "challenges"),
    )
    layout: LayoutSettings = Field(default_factory=LayoutSettings)

    @classmethod
    def coerce(cls, options: "RenderOptions | dict | None") -> "RenderOptions":
        """Accept an options model, a plain dict, or None."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(options)


class CollectionLayout(BaseModel):
    """Geometry of the radial collections overlay."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    dx_hub: float = Field(default=90, validation_alias=AliasChoices("dx_hub", "dxHub", "dx"))
    dy_hub: float = Field(default=40, validation_alias=AliasChoices("dy_hub", "dyHub", "dy"))
    dy_stride: float = Field(default=30, validation_alias=AliasChoices("dy_stride", "dyStride"))
    r_hub: float = Field(default=5, validation_alias=AliasChoices("r_hub", "rHub"))
    arm_len: float = Field(default=50, validation_alias=AliasChoices("arm_len", "armLen"))
    max_per_row: int = Field(default=6, validation_alias=AliasChoices("max_per_row", "maxPerRow"))
    ring_gap: float = Field(default=16, validation_alias=AliasChoices("ring_gap", "ringGap"))
    start_angle: float = Field(default=math.pi / 2, validation_alias=AliasChoices("start_angle", "startAngle"))
    item_height: float = 20
    item_min_width: float = 42


class QueryPaths(BaseModel):
    """Query files used by the diagram controller."""
    model_config = ConfigDict(extra="ignore")

    visualize: str = "data/queries/visualize_graph.sparql"
    visualize_by_module: str = "data/queries/visualize_graph_by_module.sparql"
    list_modules: str = "data/queries/list_modules.sparql"
    propagate_context: str = "data/queries/propagate_context.sparql"
    propagate_defeater: str = "data/queries/propagate_defeater.sparql"

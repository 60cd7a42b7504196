"""
GSN Diagram - Assurance-case diagrams from subject/predicate/object rows.

This package turns relation rows into a positioned GSN scene, draws it
with highlight overlays and a fit-to-content viewport, and orchestrates
the queries that feed it.
"""

from .models import (
    # Enums
    NodeKind,
    EdgeCategory,
    SatelliteRole,
    # Core models
    RelationRow,
    SceneNode,
    SatelliteNode,
    SceneEdge,
    Scene,
    CollectionGroup,
)
from .config import RenderOptions, CollectionLayout, LayoutSettings, QueryPaths
from .exceptions import GraphError, MountTargetError, RendererStateError, QueryExecutionError
from .scene import build_scene, infer_node_kind, label_width
from .layout import LayoutNode, tidy_tree_layout
from .renderer import DiagramRenderer
from .viewport import Transform
from .collections_overlay import CollectionsController
from .surface import DiagramSurface, SurfaceRegistry, resolve_surface
from .events import EventBus
from .graph import GraphHandle, build_graph, mount
from .queries import QueryResult, QueryService, HttpQueryService, classify_rows
from .controller import DiagramController
from .validation import validate_rows, validation_summary, ValidationIssue, IssueSeverity
from .analysis import summarize_scene, find_cycles, find_connected_components

__all__ = [
    # Enums
    "NodeKind",
    "EdgeCategory",
    "SatelliteRole",
    # Models
    "RelationRow",
    "SceneNode",
    "SatelliteNode",
    "SceneEdge",
    "Scene",
    "CollectionGroup",
    # Configuration
    "RenderOptions",
    "CollectionLayout",
    "LayoutSettings",
    "QueryPaths",
    # Errors
    "GraphError",
    "MountTargetError",
    "RendererStateError",
    "QueryExecutionError",
    # Scene and layout
    "build_scene",
    "infer_node_kind",
    "label_width",
    "LayoutNode",
    "tidy_tree_layout",
    # Drawing
    "DiagramRenderer",
    "Transform",
    "CollectionsController",
    "DiagramSurface",
    "SurfaceRegistry",
    "resolve_surface",
    # Mounting and control
    "EventBus",
    "GraphHandle",
    "build_graph",
    "mount",
    "DiagramController",
    # Queries
    "QueryResult",
    "QueryService",
    "HttpQueryService",
    "classify_rows",
    # Validation and analysis
    "validate_rows",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
    "summarize_scene",
    "find_cycles",
    "find_connected_components",
]

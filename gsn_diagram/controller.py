"""
Diagram Controller - decides why and how the diagram changes.

This module implements:
- Query dispatch by result shape (full render, collections, highlight-only)
- Stale render discarding via request sequence numbers
- Named overlay highlight sets that survive every rebuild
- Context/defeater propagation queries triggered by activation events
- External highlight commands, rule toggles and the module filter
- Busy tracking for in-flight queries
"""

import logging
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel

from .config import (
    COLLECTION_CLASS,
    DEFAULT_OVERLAY_CLASS,
    DEFEATER_PROPAGATION_CLASS,
    IN_CONTEXT_CLASS,
    QueryPaths,
    RenderOptions,
)
from .events import (
    CONTEXT_ACTIVATED,
    DEFEATER_ACTIVATED,
    GRAPH_CLEAR_HIGHLIGHTS,
    GRAPH_HIGHLIGHT,
    EventBus,
)
from .exceptions import QueryExecutionError
from .graph import GraphHandle, build_graph
from .queries import QueryResult, QueryService, ResultKind, ResultShape, classify_rows
from .surface import DEFAULT_MOUNT, DiagramSurface, SurfaceRegistry, resolve_surface
from .utils import cell_value, row_cell, shorten_iri, split_tokens, unique

logger = logging.getLogger(__name__)

# Hub offsets used when a query result adds collections to the diagram
COLLECTIONS_LAYOUT = {"dx": 90, "dy": 26}

MODULE_PLACEHOLDER = "{{MODULE_IRI}}"
CONTEXT_PLACEHOLDER = "{{CTX_IRI}}"
DEFEATER_PLACEHOLDER = "{{DFT_IRI}}"


class ModuleEntry(BaseModel):
    """One entry of the module filter."""
    iri: str
    label: str


class DiagramController:
    """
    Orchestrates queries, rendering and overlay highlights for one surface.

    Overlay sets (class name -> node ids) live here, outside the renderer,
    and are reapplied after every rebuild. Only full-scene results are
    sequence-guarded; overlay and collections updates apply immediately.
    """

    def __init__(
        self,
        bus: EventBus,
        paths: "QueryPaths | dict",
        query_service: Optional[QueryService] = None,
        label: Optional[Callable[[str], str]] = shorten_iri,
        render_options: "RenderOptions | dict | None" = None,
    ):
        if bus is None:
            raise ValueError("DiagramController: bus is required")
        if paths is None:
            raise ValueError("DiagramController: paths is required")

        self.bus = bus
        self.paths = paths if isinstance(paths, QueryPaths) else QueryPaths.model_validate(paths)
        self.query_service = query_service
        self.surface: Optional[DiagramSurface] = None

        opts = RenderOptions.coerce(render_options)
        if label is not None:
            opts = opts.model_copy(update={"label": label})
        self.render_options = opts

        self.graph: Optional[GraphHandle] = None
        self.overlays: dict[str, set[str]] = {}
        self.modules: list[ModuleEntry] = []
        self.visibility = {"ctx": True, "def": True}

        self._unsubs: list[Callable[[], None]] = []
        self._wired = False
        self._render_seq = 0    # Last sequence number handed out
        self._applied_seq = 0   # Sequence of the scene on screen
        self._busy_count = 0
        self._active_module: Optional[str] = None
        self._on_error_callbacks: list[Callable[[Exception], Any]] = []
        self._on_busy_callbacks: list[Callable[[bool], Any]] = []

    # --- Lifecycle ---

    async def init(
        self,
        query_service: Optional[QueryService] = None,
        surface: "DiagramSurface | str | None" = None,
        registry: Optional[SurfaceRegistry] = None,
    ) -> None:
        """
        Bind the query service and surface, then wire bus listeners once.

        Raises:
            ValueError: no query service was supplied
            MountTargetError: the surface cannot be resolved
        """
        if query_service is not None:
            self.query_service = query_service
        if self.query_service is None:
            raise ValueError("DiagramController.init: query_service is required")

        target = surface if surface is not None else (self.surface or DEFAULT_MOUNT)
        self.surface = resolve_surface(target, registry, name="DiagramController root")

        if self._wired:
            return
        self._wired = True
        self._wire_bus()

    def destroy(self) -> None:
        """Unwire listeners and tear down the current diagram."""
        for off in self._unsubs:
            off()
        self._unsubs = []

        if self.graph is not None:
            self.graph.destroy()
        self.graph = None
        self.overlays.clear()

        # Renders still in flight become stale
        self._render_seq += 1
        self._applied_seq = self._render_seq

        self._wired = False
        if self._busy_count:
            self._busy_count = 0
            self._notify_busy()

    # --- Properties ---

    @property
    def is_busy(self) -> bool:
        return self._busy_count > 0

    @property
    def active_module(self) -> Optional[str]:
        return self._active_module

    # --- Callbacks ---

    def on_error(self, callback: Callable[[Exception], Any]):
        """Register a callback for failures of event-triggered queries."""
        self._on_error_callbacks.append(callback)

    def on_busy_change(self, callback: Callable[[bool], Any]):
        """Register a callback receiving the busy flag whenever it flips."""
        self._on_busy_callbacks.append(callback)

    def _notify_error(self, error: Exception):
        for callback in self._on_error_callbacks:
            try:
                callback(error)
            except Exception:
                logger.exception("Error callback failed")

    def _notify_busy(self):
        busy = self.is_busy
        for callback in self._on_busy_callbacks:
            try:
                callback(busy)
            except Exception:
                logger.exception("Busy callback failed")

    def _begin_busy(self):
        self._busy_count += 1
        if self._busy_count == 1:
            self._notify_busy()

    def _end_busy(self):
        was_busy = self.is_busy
        self._busy_count = max(0, self._busy_count - 1)
        if was_busy and not self.is_busy:
            self._notify_busy()

    def _require_service(self, caller: str) -> QueryService:
        if self.query_service is None or self.surface is None:
            raise ValueError(f"DiagramController.{caller}: call init(query_service=...) first")
        return self.query_service

    def _next_seq(self) -> int:
        self._render_seq += 1
        return self._render_seq

    # --- Running queries ---

    async def run(self, query_path: str, overlay_class: Optional[str] = None) -> None:
        """
        Run a query file and apply its result to the diagram.

        Raises:
            QueryExecutionError: the query failed; the diagram is untouched
        """
        service = self._require_service("run")

        # The full visualization resets the module filter
        if query_path == self.paths.visualize:
            self._active_module = None

        seq = self._next_seq()
        self._begin_busy()
        try:
            result = await self._execute(query_path, service.run_path(query_path))
            await self.handle_result(result, overlay_class, seq=seq)
        finally:
            self._end_busy()

    async def run_inline(
        self,
        query_text: str,
        overlay_class: Optional[str] = None,
        source: str = "inline",
    ) -> None:
        """Run query text and apply its result to the diagram."""
        service = self._require_service("run_inline")

        seq = self._next_seq()
        self._begin_busy()
        try:
            result = await self._execute(source, service.run_text(query_text, source=source))
            await self.handle_result(result, overlay_class, seq=seq)
        finally:
            self._end_busy()

    @staticmethod
    async def _execute(source: str, pending) -> QueryResult:
        try:
            result = await pending
        except QueryExecutionError:
            raise
        except Exception as e:
            raise QueryExecutionError(source, e) from e
        if isinstance(result, dict):
            result = QueryResult.model_validate(result)
        return result

    @staticmethod
    async def _fetch_template(service: QueryService, path: str) -> str:
        try:
            return await service.fetch_query_text(path)
        except QueryExecutionError:
            raise
        except Exception as e:
            raise QueryExecutionError(path, e) from e

    async def handle_result(
        self,
        result: "QueryResult | dict | None",
        overlay_class: Optional[str] = None,
        seq: Optional[int] = None,
    ) -> ResultShape:
        """
        Dispatch a query result by its column shape.

        Returns:
            The shape the result was classified as
        """
        if result is None:
            return ResultShape.EMPTY
        if isinstance(result, dict):
            result = QueryResult.model_validate(result)

        # Update results never touch the diagram
        if result.kind == ResultKind.UPDATE:
            return ResultShape.OTHER

        rows = result.rows
        shape = classify_rows(rows)

        if shape == ResultShape.COLLECTIONS:
            if self.graph is not None:
                self.graph.add_collections(rows, COLLECTIONS_LAYOUT)
                self.graph.fit()
        elif shape == ResultShape.SCENE:
            await self._render_graph(rows, seq if seq is not None else self._next_seq())
        elif shape == ResultShape.HIGHLIGHT:
            if self.graph is not None:
                ids = unique(i for i in (row_cell(r, "s") for r in rows) if i)
                self.overlays[overlay_class or DEFAULT_OVERLAY_CLASS] = set(ids)
                self._reapply_overlays()
        return shape

    async def _render_graph(self, rows: list[dict], seq: int) -> bool:
        """Build a new diagram; discard it if a newer scene got there first."""
        # Runs are numbered when requested but only lose to a scene that was
        # applied: a newer request may still fail, and the older result is
        # then the freshest diagram available.
        if seq < self._applied_seq or self.surface is None:
            logger.debug("Render %d superseded before build", seq)
            return False

        handle = await build_graph(rows, self.surface, self.render_options, self.bus)

        if seq < self._applied_seq:
            logger.debug("Render %d superseded by %d, discarding", seq, self._applied_seq)
            handle.destroy()
            return False

        handle.attach()
        self.graph = handle
        self._applied_seq = seq

        self._apply_visibility()
        self._reapply_overlays()
        await self._refresh_modules()
        return True

    # --- Overlays ---

    def _reapply_overlays(self) -> None:
        if self.graph is None:
            return
        self.graph.clear_all()
        for cls, ids in self.overlays.items():
            if ids:
                self.graph.highlight_by_ids(sorted(ids), cls)

    def set_overlay(self, cls: str, ids: Iterable[str], replace: bool = True) -> None:
        """Replace (or extend) one overlay set and redraw all overlays."""
        cls = cls or DEFAULT_OVERLAY_CLASS
        incoming = {i for i in (cell_value(x) for x in ids or ()) if i}
        if replace:
            self.overlays[cls] = incoming
        else:
            self.overlays.setdefault(cls, set()).update(incoming)
        self._reapply_overlays()

    def clear_overlays(self) -> None:
        self.overlays.clear()
        self._reapply_overlays()

    # --- Visibility ---

    def set_visibility(self, contexts: Optional[bool] = None, defeaters: Optional[bool] = None) -> None:
        """Show or hide context and defeater satellites, then refit."""
        if contexts is not None:
            self.visibility["ctx"] = bool(contexts)
        if defeaters is not None:
            self.visibility["def"] = bool(defeaters)
        self._apply_visibility()

    def _apply_visibility(self) -> None:
        if self.graph is None:
            return
        for group, visible in self.visibility.items():
            self.graph.set_layer_visible(group, visible)
        self.graph.fit()

    # --- Bus wiring ---

    def _wire_bus(self) -> None:
        self._unsubs.append(self.bus.on(CONTEXT_ACTIVATED, self._on_context_activated))
        self._unsubs.append(self.bus.on(DEFEATER_ACTIVATED, self._on_defeater_activated))
        self._unsubs.append(self.bus.on(GRAPH_HIGHLIGHT, self._on_highlight_command))
        self._unsubs.append(self.bus.on(GRAPH_CLEAR_HIGHLIGHTS, self._on_clear_command))

    async def _on_context_activated(self, payload: dict) -> None:
        await self._propagate(
            payload, self.paths.propagate_context, CONTEXT_PLACEHOLDER, "nodeIRI", IN_CONTEXT_CLASS,
        )

    async def _on_defeater_activated(self, payload: dict) -> None:
        await self._propagate(
            payload, self.paths.propagate_defeater, DEFEATER_PLACEHOLDER, "hitIRI",
            DEFEATER_PROPAGATION_CLASS,
        )

    async def _propagate(
        self,
        payload: dict,
        query_path: str,
        placeholder: str,
        column: str,
        cls: str,
    ) -> None:
        """Run a propagation query for the activated element and focus its hits."""
        iri = cell_value((payload or {}).get("id"))
        if not iri or self.graph is None or self.query_service is None:
            return

        try:
            template = await self._fetch_template(self.query_service, query_path)
            query = template.replace(placeholder, f"<{iri}>")
            result = await self._execute(query_path, self.query_service.run_text(query, source=query_path))
        except QueryExecutionError as e:
            logger.warning("Propagation for %s failed: %s", iri, e)
            self._notify_error(e)
            return

        if self.graph is None:
            return
        ids = unique(i for i in (row_cell(r, column) for r in result.rows) if i)

        # Single focus: activating a context or defeater replaces every overlay
        self.overlays.clear()
        self.overlays[cls] = set(ids)
        self._reapply_overlays()

    def _on_highlight_command(self, payload: dict) -> None:
        payload = payload or {}
        self.set_overlay(
            payload.get("cls") or DEFAULT_OVERLAY_CLASS,
            payload.get("ids") or [],
            replace=payload.get("replace", True),
        )

    def _on_clear_command(self, payload: dict) -> None:
        self.clear_overlays()

    # --- Rules ---

    async def toggle_rule(
        self,
        cls: str,
        query_paths: "str | Iterable[str]",
        checked: bool,
        delete_query: Optional[str] = None,
        event_name: Optional[str] = None,
    ) -> None:
        """
        Switch a highlight rule on or off.

        Args:
            cls: Overlay class the rule's results are drawn with
            query_paths: One or more query files (';' or ',' separated string)
            checked: True to run the rule, False to retract it
            delete_query: Query run when the rule is switched off
            event_name: Bus event emitted with {active} afterwards
        """
        cls = cls or DEFAULT_OVERLAY_CLASS
        paths = split_tokens(query_paths) if isinstance(query_paths, str) else list(query_paths)
        if not paths:
            return

        if checked:
            for path in paths:
                await self.run(path, cls)
        else:
            if delete_query:
                await self.run(delete_query, cls)
            self.overlays[cls] = set()
            self._reapply_overlays()
            if cls == COLLECTION_CLASS and self.graph is not None:
                self.graph.clear_collections()

        if event_name:
            self.bus.emit(event_name, {"active": bool(checked)})

    # --- Modules ---

    async def list_modules(self) -> list[ModuleEntry]:
        """Query the available modules for the module filter."""
        service = self._require_service("list_modules")
        path = self.paths.list_modules
        self._begin_busy()
        try:
            result = await self._execute(path, service.run_path(path))
        finally:
            self._end_busy()

        modules = []
        for row in result.rows:
            iri = row_cell(row, "module")
            if not iri:
                continue
            modules.append(ModuleEntry(
                iri=iri,
                label=row_cell(row, "label") or self.render_options.label(iri) or iri,
            ))
        self.modules = modules
        return modules

    async def _refresh_modules(self) -> None:
        try:
            await self.list_modules()
        except QueryExecutionError as e:
            logger.warning("Module list unavailable: %s", e)
            self._notify_error(e)

    async def select_module(self, iri: Optional[str]) -> None:
        """Render a single module, or everything when `iri` is None."""
        service = self._require_service("select_module")
        if not iri:
            await self.run(self.paths.visualize)
            return

        path = self.paths.visualize_by_module
        template = await self._fetch_template(service, path)
        self._active_module = iri

        query = template.replace(f"<{MODULE_PLACEHOLDER}>", f"<{iri}>")
        query = query.replace(MODULE_PLACEHOLDER, f"<{iri}>")
        await self.run_inline(query, source=path)

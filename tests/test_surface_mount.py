"""
Tests for surfaces and the mount contract.

Tests:
- Surface sizing and the stylesheet
- Mount target resolution
- mount() sizing, attachment and replacement
"""

import pytest

from gsn_diagram.config import default_height
from gsn_diagram.exceptions import MountTargetError
from gsn_diagram.graph import build_graph, mount
from gsn_diagram.surface import DiagramSurface, SurfaceRegistry, resolve_surface


class TestSurface:
    """Surface sizing."""

    def test_explicit_width(self):
        assert DiagramSurface("s", width=1000, client_width=640).pixel_width == 1000

    def test_client_width_floor(self):
        assert DiagramSurface("s", client_width=640).pixel_width == 640
        assert DiagramSurface("s", client_width=120).pixel_width == 300
        assert DiagramSurface("s").pixel_width == 800

    def test_default_height(self, monkeypatch):
        monkeypatch.delenv("GSN_DIAGRAM_HEIGHT", raising=False)
        assert DiagramSurface("s").height == 520

        monkeypatch.setenv("GSN_DIAGRAM_HEIGHT", "640")
        assert default_height() == 640
        assert DiagramSurface("s").height == 640

        monkeypatch.setenv("GSN_DIAGRAM_HEIGHT", "tall")
        assert default_height() == 520

    @pytest.mark.asyncio
    async def test_prepare_loads_stylesheet(self):
        surface = DiagramSurface("s")
        await surface.prepare()
        assert ".gsn-node" in surface.stylesheet

    def test_empty_svg(self, surface):
        assert surface.to_svg().startswith("<svg")


class TestResolve:
    """Mount target resolution."""

    def test_instance_passthrough(self, surface):
        assert resolve_surface(surface) is surface

    def test_by_name(self, registry, surface):
        assert resolve_surface("test-host", registry) is surface

    def test_missing(self, registry):
        with pytest.raises(MountTargetError) as exc_info:
            resolve_surface("elsewhere", registry, name="mount")

        assert exc_info.value.target == "elsewhere"
        assert isinstance(exc_info.value, LookupError)

    def test_none(self):
        with pytest.raises(MountTargetError):
            resolve_surface(None)

    def test_unregister(self, registry):
        registry.unregister("test-host")
        assert "test-host" not in registry


class TestMount:
    """The mount contract."""

    @pytest.mark.asyncio
    async def test_mount_attaches_and_fits(self, surface, rich_rows):
        handle = await mount(surface, rich_rows)

        assert surface.owner is handle.renderer
        assert handle.renderer.viewport.is_animating
        assert [n.id for n in handle.scene.nodes][0] == "G1"

    @pytest.mark.asyncio
    async def test_mount_by_name(self, registry, surface, scenario_rows):
        handle = await mount("test-host", scenario_rows, registry=registry)
        assert handle.surface is surface

    @pytest.mark.asyncio
    async def test_unknown_target(self, scenario_rows):
        with pytest.raises(MountTargetError):
            await mount("nowhere", scenario_rows, registry=SurfaceRegistry())

    @pytest.mark.asyncio
    async def test_width_only_when_given(self, scenario_rows):
        surface = DiagramSurface("s", client_width=640, stylesheet="")

        await mount(surface, scenario_rows)
        assert surface.pixel_width == 640

        await mount(surface, scenario_rows, {"width": 1000, "height": 300})
        assert surface.pixel_width == 1000
        assert surface.height == 300

    @pytest.mark.asyncio
    async def test_remount_destroys_previous(self, surface, scenario_rows, rich_rows):
        first = await mount(surface, scenario_rows)
        second = await mount(surface, rich_rows)

        assert first.is_destroyed
        assert not second.is_destroyed
        assert surface.owner is second.renderer

    @pytest.mark.asyncio
    async def test_empty_rows(self, surface):
        handle = await mount(surface, [])

        assert handle.scene.is_empty
        assert handle.fit() is None

    @pytest.mark.asyncio
    async def test_build_graph_is_detached(self, surface, scenario_rows):
        handle = await build_graph(scenario_rows, surface)

        assert surface.owner is None
        handle.attach()
        assert surface.owner is handle.renderer

    @pytest.mark.asyncio
    async def test_handle_operations(self, surface, rich_rows):
        handle = await mount(surface, rich_rows, {"label": str.lower})

        handle.highlight_by_ids(["G1"], "")
        assert handle.renderer.highlighted("overlay") == {"G1"}

        handle.set_layer_visible("extra", False)
        assert not handle.renderer.layers["extra-links"].visible

        assert handle.scene.get_node("G1").label == "g1"
        handle.destroy()
        assert handle.is_destroyed

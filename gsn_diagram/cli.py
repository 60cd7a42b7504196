#!/usr/bin/env python3
"""GSN diagram CLI - render, validate and summarize assurance-case rows."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .analysis import summarize_scene
from .config import DEFAULT_OVERLAY_CLASS, RenderOptions, default_height
from .events import EventBus
from .exceptions import GraphError
from .graph import mount
from .queries import HttpQueryService, ResultShape, bindings_to_rows, classify_rows
from .scene import build_scene
from .surface import DiagramSurface
from .utils import shorten_iri, split_tokens
from .validation import validate_rows, validation_summary


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _fail(message):
    _json_out({"status": "error", "error": message}, code=1)


def _load_rows(path):
    """Read rows from a JSON file: a list of rows or SPARQL JSON results."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        _fail(f"Cannot read {path}: {e}")
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {path}: {e}")

    if isinstance(data, dict) and "results" in data:
        return bindings_to_rows(data)
    if isinstance(data, dict) and "rows" in data:
        return data["rows"]
    if isinstance(data, list):
        return data
    _fail(f"{path}: expected a list of rows or SPARQL JSON results")


def _options(args):
    opts = {"height": args.height}
    if args.width:
        opts["width"] = args.width
    if args.short_labels:
        opts["label"] = shorten_iri
    return RenderOptions.model_validate(opts)


async def _render_svg(rows, args, collections=None):
    surface = DiagramSurface(name="cli", width=args.width, height=args.height)
    handle = await mount(surface, rows, _options(args), bus=EventBus())

    if args.highlight:
        handle.highlight_by_ids(split_tokens(args.highlight), args.cls)
    if args.undeveloped:
        handle.highlight_by_ids(split_tokens(args.undeveloped), "undev")
    if collections:
        handle.add_collections(collections)
    for layer in args.hide or []:
        handle.set_layer_visible(layer, False)

    handle.fit()
    await handle.renderer.viewport.wait()
    svg = handle.to_svg()
    scene = handle.scene
    handle.destroy()
    return svg, scene


def _write_svg(svg, output):
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(svg, encoding="utf-8")
    return str(path)


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_render(args):
    rows = _load_rows(args.input)
    collections = _load_rows(args.collections) if args.collections else None
    svg, scene = asyncio.run(_render_svg(rows, args, collections))
    _json_out({
        "status": "ok",
        "output": _write_svg(svg, args.output),
        "nodes": len(scene.nodes),
        "satellites": len(scene.satellites()),
        "edges": len(scene.edges()),
    })


def cmd_validate(args):
    rows = _load_rows(args.input)
    issues = validate_rows(rows)
    _json_out({
        "summary": validation_summary(issues),
        "issues": [i.to_dict() for i in issues],
    })


def cmd_summarize(args):
    rows = _load_rows(args.input)
    scene = build_scene(rows, _options(args))
    _json_out(summarize_scene(scene, top_n=args.top).to_dict())


async def _run_query(args):
    async with HttpQueryService(args.endpoint, update_endpoint=args.update_endpoint) as service:
        if args.query_file:
            return await service.run_path(args.query_file)
        return await service.run_text(args.query, source="inline")


def cmd_query(args):
    if not args.query_file and not args.query:
        _fail("Either --query-file or --query is required")

    result = asyncio.run(_run_query(args))
    shape = classify_rows(result.rows)

    if args.output and shape == ResultShape.SCENE:
        svg, scene = asyncio.run(_render_svg(result.rows, args))
        _json_out({
            "status": "ok",
            "shape": shape.value,
            "output": _write_svg(svg, args.output),
            "nodes": len(scene.nodes),
        })

    _json_out({
        "status": "ok",
        "kind": result.kind.value,
        "shape": shape.value,
        "elapsed_ms": round(result.elapsed_ms, 1),
        "rows": result.rows,
    })


def _add_render_args(p):
    p.add_argument("--width", type=int, default=None)
    p.add_argument("--height", type=int, default=default_height())
    p.add_argument("--short-labels", action="store_true", help="Label nodes by IRI fragment")
    p.add_argument("--highlight", default=None, help="Comma-separated node ids to highlight")
    p.add_argument("--cls", default=DEFAULT_OVERLAY_CLASS, help="Highlight class")
    p.add_argument("--undeveloped", default=None, help="Comma-separated undeveloped node ids")
    p.add_argument("--hide", action="append", choices=["ctx", "def", "extra"], default=None)


def main(argv=None):
    parser = argparse.ArgumentParser(description="GSN diagram CLI")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("render")
    p.add_argument("--input", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--collections", default=None, help="JSON rows with ctx, clt, item")
    _add_render_args(p)

    p = sub.add_parser("validate")
    p.add_argument("--input", required=True)

    p = sub.add_parser("summarize")
    p.add_argument("--input", required=True)
    p.add_argument("--top", type=int, default=5)
    p.add_argument("--width", type=int, default=None)
    p.add_argument("--height", type=int, default=default_height())
    p.add_argument("--short-labels", action="store_true")

    p = sub.add_parser("query")
    p.add_argument("--endpoint", required=True)
    p.add_argument("--update-endpoint", default=None)
    p.add_argument("--query-file", default=None)
    p.add_argument("--query", default=None)
    p.add_argument("--output", default=None, help="Render scene results to this SVG")
    _add_render_args(p)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmd_map = {
        "render": cmd_render,
        "validate": cmd_validate,
        "summarize": cmd_summarize,
        "query": cmd_query,
    }
    try:
        cmd_map[args.command](args)
    except GraphError as e:
        _fail(str(e))


if __name__ == "__main__":
    main()

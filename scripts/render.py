#!/usr/bin/env python3
"""
Headless collage thumbnail renderer.

Usage:
    python3 scripts/render.py /path/to/snapshot.json [output_dir] [--max-dim N]
                              [--assets DIR] [--config FILE]

Output is written as JSON to stdout:
    {"output_image": "/path/to/snapshot_thumb.jpg", "width": 256, "height": 256}

All progress/debug messages go to stderr.
"""

import argparse
import io
import json
import logging
import os
import sys
from pathlib import Path

from PIL import Image

# ---------------------------------------------------------------------------
# Project root resolution (script lives in <root>/scripts/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from collage_render import LocalAssetStore, RenderConfig, render_snapshot_sync  # noqa: E402
from collage_render.errors import CollageRenderError  # noqa: E402


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

def _log(msg: str) -> None:
    """Print a debug/progress message to stderr."""
    print(f"[render] {msg}", file=sys.stderr)


def _fatal(msg: str) -> None:
    """Print an error to stderr and exit with code 1."""
    print(f"[render] ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[render] %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("collage_render")
    if not root.handlers:
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a collage snapshot to a JPEG thumbnail.")
    parser.add_argument("snapshot", help="Path to the snapshot JSON file")
    parser.add_argument("output_dir", nargs="?", default=None,
                        help="Directory for the thumbnail (defaults to the snapshot's directory)")
    parser.add_argument("--max-dim", type=int, default=None, help="Output width in pixels")
    parser.add_argument("--assets", default=None, help="Directory that serves library keys")
    parser.add_argument("--config", default=None, help="Render config JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log renderer internals")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    _configure_logging(args.verbose)

    snapshot_path = args.snapshot
    if not os.path.isfile(snapshot_path):
        _fatal(f"Snapshot JSON file not found: {snapshot_path}")

    try:
        with open(snapshot_path, "r", encoding="utf-8") as f:
            snapshot = json.load(f)
    except json.JSONDecodeError as exc:
        _fatal(f"Malformed snapshot JSON: {exc}")

    config = RenderConfig()
    if args.config:
        try:
            config = RenderConfig.from_file(args.config)
        except CollageRenderError as exc:
            _fatal(str(exc))

    store = None
    if args.assets:
        if not os.path.isdir(args.assets):
            _fatal(f"Asset directory not found: {args.assets}")
        store = LocalAssetStore(args.assets)
        _log(f"Serving library keys from {store.root}")

    src = Path(snapshot_path)
    out_dir = Path(args.output_dir) if args.output_dir else src.parent
    if not out_dir.is_dir():
        os.makedirs(out_dir, exist_ok=True)
        _log(f"Created output directory: {out_dir}")

    max_dim = args.max_dim or config.max_dim
    _log(f"Rendering {src.name} at width {max_dim}")
    data = render_snapshot_sync(snapshot, max_dim=max_dim, store=store, config=config)
    if data is None:
        _fatal(f"Snapshot is not a valid collage: {snapshot_path}")

    output_image_path = str(out_dir / f"{src.stem}_thumb.jpg")
    with open(output_image_path, "wb") as f:
        f.write(data)
    with Image.open(io.BytesIO(data)) as img:
        width, height = img.size
    _log(f"Saved thumbnail: {output_image_path} ({width}x{height})")

    # Output result JSON to stdout
    result = {"output_image": output_image_path, "width": width, "height": height}
    print(json.dumps(result))


if __name__ == "__main__":
    main()

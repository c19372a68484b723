"""Headless renderer that turns a collage snapshot into a JPEG thumbnail."""

from collage_render.assets import AssetStore, LocalAssetStore, MemoryAssetStore, resolve_image
from collage_render.compositor import render_many, render_snapshot, render_snapshot_sync
from collage_render.config import RenderConfig
from collage_render.errors import AssetFetchError, CollageRenderError, FontLoadError, SnapshotError
from collage_render.layouts import resolve_layout
from collage_render.models import Snapshot

__all__ = [
    "AssetFetchError",
    "AssetStore",
    "CollageRenderError",
    "FontLoadError",
    "LocalAssetStore",
    "MemoryAssetStore",
    "RenderConfig",
    "Snapshot",
    "SnapshotError",
    "render_many",
    "render_snapshot",
    "render_snapshot_sync",
    "resolve_image",
    "resolve_layout",
]

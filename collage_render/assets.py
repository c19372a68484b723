"""Image resolver: fetch and decode image references, one failure never blocking another."""

import asyncio
import base64
import io
import logging
import os
import urllib.parse
from typing import Protocol

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from collage_render.config import RenderConfig
from collage_render.errors import AssetFetchError
from collage_render.models import ImageRef

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    """Binary blob lookup by library key."""

    async def get(self, key: str) -> bytes: ...


class LocalAssetStore:
    """Serves library keys as files under *root*."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.commonpath([self.root, path]) != self.root:
            raise AssetFetchError(f"Key escapes asset root: {key}")
        return path

    async def get(self, key: str) -> bytes:
        path = self._path(key)

        def _read() -> bytes:
            with open(path, "rb") as f:
                return f.read()

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            raise AssetFetchError(f"Cannot read asset {key}: {exc}") from exc


class MemoryAssetStore:
    """Serves library keys from an in-memory dict."""

    def __init__(self, blobs: dict[str, bytes] | None = None):
        self.blobs = dict(blobs or {})

    async def get(self, key: str) -> bytes:
        try:
            return self.blobs[key]
        except KeyError:
            raise AssetFetchError(f"Unknown asset key: {key}") from None


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def _decode_data_uri(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise AssetFetchError("Malformed data URI")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except ValueError as exc:
            raise AssetFetchError(f"Bad base64 payload: {exc}") from exc
    return urllib.parse.unquote_to_bytes(payload)


async def fetch_url(url: str, client: httpx.AsyncClient | None) -> bytes:
    """Fetch bytes behind a ``data:``, ``file:`` or ``http(s):`` URL.

    Raises:
        AssetFetchError: On any transport or protocol failure.
    """
    scheme = urllib.parse.urlsplit(url).scheme.lower()
    if scheme == "data":
        return _decode_data_uri(url)
    if scheme == "file":
        path = urllib.parse.unquote(urllib.parse.urlsplit(url).path)

        def _read() -> bytes:
            with open(path, "rb") as f:
                return f.read()

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            raise AssetFetchError(f"Cannot read {path}: {exc}") from exc
    if scheme not in ("http", "https"):
        raise AssetFetchError(f"Unsupported URL scheme: {scheme or '(none)'}")
    if client is None:
        raise AssetFetchError("No HTTP client available")
    try:
        resp = await client.get(url)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise AssetFetchError(f"GET {url} failed: {exc}") from exc
    return resp.content


def decode_image(data: bytes) -> Image.Image:
    """Decode, apply EXIF orientation and convert to RGBA.

    Raises:
        AssetFetchError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise AssetFetchError(f"Cannot decode image: {exc}") from exc


async def _fetch_ref(ref: ImageRef, store: AssetStore | None, client) -> bytes:
    if ref.library_key:
        if store is None:
            if not ref.url:
                raise AssetFetchError(f"No asset store for key {ref.library_key}")
        else:
            try:
                return await store.get(ref.library_key)
            except Exception as exc:
                # any store failure falls through to the URL
                if not ref.url:
                    if isinstance(exc, AssetFetchError):
                        raise
                    raise AssetFetchError(f"Store failed for {ref.library_key}: {exc!r}") from exc
                logger.debug("Library fetch failed for %s (%r); trying URL", ref.library_key, exc)
    if ref.url:
        return await fetch_url(ref.url, client)
    raise AssetFetchError("Empty image reference")


async def resolve_image(
    ref: ImageRef | None,
    store: AssetStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> Image.Image | None:
    """Resolve one reference to a decoded bitmap, or None. Never raises."""
    if ref is None or ref.is_empty:
        return None
    try:
        data = await _fetch_ref(ref, store, client)
        return await asyncio.to_thread(decode_image, data)
    except AssetFetchError as exc:
        logger.warning("Image unavailable (%s): %s", ref.library_key or ref.url, exc)
    except Exception as exc:
        # Custom stores may raise anything
        logger.warning("Image resolve failed (%s): %r", ref.library_key or ref.url, exc)
    return None


async def resolve_all(
    refs,
    store: AssetStore | None = None,
    config: RenderConfig | None = None,
) -> list[Image.Image | None]:
    """Resolve every reference concurrently, preserving order."""
    refs = list(refs)
    if not refs:
        return []
    config = config or RenderConfig()
    needs_http = any(
        r is not None and r.url and r.url.lower().startswith(("http:", "https:")) for r in refs
    )
    if not needs_http:
        return list(await asyncio.gather(*(resolve_image(r, store) for r in refs)))
    async with httpx.AsyncClient(timeout=config.fetch_timeout, follow_redirects=True) as client:
        return list(await asyncio.gather(*(resolve_image(r, store, client) for r in refs)))

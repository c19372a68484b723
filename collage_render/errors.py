"""Exception types raised inside the collage renderer."""


class CollageRenderError(RuntimeError):
    """Base class for expected renderer failures."""


class SnapshotError(CollageRenderError, ValueError):
    """The snapshot is missing or structurally invalid."""


class AssetFetchError(CollageRenderError):
    """An asset could not be fetched from the store or its URL."""


class FontLoadError(CollageRenderError):
    """A font face could not be loaded."""

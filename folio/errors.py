"""
folio.errors - Exception types shared across the store, context and CLI layers.
"""


class FolioError(Exception):
    """Base class for all folio errors."""
    pass


class NotFoundError(FolioError):
    """A referenced work, node or version does not exist."""
    pass


class StorageError(FolioError):
    """The underlying LMDB store failed (disk, map full, corruption)."""
    pass


class ValidationError(FolioError):
    """Malformed input rejected at the boundary (unknown kind, bad title)."""
    pass


class GenerationError(FolioError):
    """Raised by generation services: missing credentials, blocked content, empty reply."""
    pass

"""Infrastructure adapters."""

from .storage import LocalMediaStorage, MediaStorage

__all__ = ["LocalMediaStorage", "MediaStorage"]

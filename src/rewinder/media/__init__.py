from .layout import Library, LibraryLayout, Placement

__all__ = ["Library", "LibraryLayout", "Placement"]

"""Shared media library lifecycle and consensus engine.

Users mark movies and TV seasons they no longer need; once every eligible
user agrees the item is moved to its library's trash tier and deleted after a
grace period unless someone persists it.
"""

from .services.engine import LifecycleEngine, MediaQuery

__all__ = ["LifecycleEngine", "MediaQuery"]

"""Bookends <-> Zotero synchronization through a global exchange format."""

from .dictionary import Dictionary, Direction
from .errors import InvalidFieldRule
from .translator import append, to_global, to_local, translate

__all__ = ["Dictionary", "Direction", "InvalidFieldRule", "append", "to_global", "to_local", "translate"]

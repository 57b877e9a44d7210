from .bookends import BOOKENDS
from .zotero import ZOTERO

__all__ = ["BOOKENDS", "ZOTERO"]

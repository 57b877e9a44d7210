"""
Exceptions raised by bibsync.
Translation errors are configuration defects; client errors wrap failed I/O.
"""


class BibSyncError(Exception):
    pass


class InvalidFieldRule(BibSyncError):
    """A dictionary entry has a shape the translator does not understand."""

    def __init__(self, field, rule=None):
        self.field = field
        self.rule = rule
        super().__init__(f"Invalid field definition for '{field}': {rule!r}")


class ConfigError(BibSyncError):
    pass


class BookendsError(BibSyncError):
    pass


class ZoteroError(BibSyncError):
    def __init__(self, status, message):
        self.status = status
        self.message = message
        super().__init__(f"Zotero API error [{status}]: {message}")

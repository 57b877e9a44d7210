"""
Translation dictionary: the field rules of one local schema, in both directions.
"""

from enum import Enum

from .rules import coerce_rule

DEFAULT_EXEMPT_PREFIXES = ("user", "default")
EXTRA = "extra"


class Direction(Enum):
    TO_GLOBAL = "to_global"
    TO_LOCAL = "to_local"


class Dictionary:
    """
    :param name: Name of the local schema (used in log messages)
    :param to_global: {local field: rule} for local -> pivot
    :param to_local: {pivot field: rule} for pivot -> local
    :param exempt_prefixes: Unmapped fields starting with these are dropped, not archived in "extra"
    :param extra_field: Local field that stores the packed "extra" bucket
    """

    def __init__(self, name, to_global, to_local, exempt_prefixes=DEFAULT_EXEMPT_PREFIXES, extra_field=EXTRA):
        self.name = name
        self.to_global = {field: coerce_rule(field, rule) for field, rule in to_global.items()}
        self.to_local = {field: coerce_rule(field, rule) for field, rule in to_local.items()}
        self.exempt_prefixes = tuple(exempt_prefixes)
        self.extra_field = extra_field

    def rules(self, direction: Direction) -> dict:
        return self.to_global if direction is Direction.TO_GLOBAL else self.to_local

    def knows(self, field: str) -> bool:
        return field in self.to_global or field in self.to_local

    def is_exempt(self, field: str) -> bool:
        return field.startswith(self.exempt_prefixes)

    def __repr__(self):
        return f"<Dictionary {self.name}: {len(self.to_global)} to_global, {len(self.to_local)} to_local>"

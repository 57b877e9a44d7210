"""
Field rules: how one field of a record is renamed and converted.

Dictionaries are authored as plain Python data (see bibsync.dictionaries):

    False                         -> NoMapping()
    "title"                       -> Rename("title")
    lambda record: "bookTitle"    -> Computed(fn)
    {"translate_name": ...,
     "translate_content": ...,
     "default": ...}              -> RuleObject(...)

coerce_rule() turns that data into one of the variants below, and the
resolve_* helpers dispatch on the variant. Rule functions are called as-is,
their exceptions go straight to the caller.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .errors import InvalidFieldRule

RULE_KEYS = ("translate_name", "translate_content", "default")


@dataclass(frozen=True)
class NoMapping:
    pass


@dataclass(frozen=True)
class Rename:
    name: str


@dataclass(frozen=True)
class Computed:
    fn: Callable[[dict], Union[str, bool]]


@dataclass(frozen=True)
class RuleObject:
    translate_name: Optional[Callable[[dict], Union[str, bool]]] = None
    translate_content: Optional[Callable[[dict], Any]] = None
    default: Optional[Callable[[], Any]] = None


FieldRule = Union[NoMapping, Rename, Computed, RuleObject]


def coerce_rule(field: str, raw) -> FieldRule:
    """Converts an authored rule into a FieldRule, or raises InvalidFieldRule."""
    if isinstance(raw, (NoMapping, Rename, Computed, RuleObject)):
        return raw
    # bool before str/callable: True is not a valid rule
    if raw is False:
        return NoMapping()
    if isinstance(raw, str):
        return Rename(raw)
    if isinstance(raw, dict):
        methods = {k: raw[k] for k in RULE_KEYS if k in raw}
        if not methods or set(raw) - set(RULE_KEYS):
            raise InvalidFieldRule(field, raw)
        if not all(callable(m) for m in methods.values()):
            raise InvalidFieldRule(field, raw)
        return RuleObject(**methods)
    if callable(raw):
        return Computed(raw)
    raise InvalidFieldRule(field, raw)


def resolve_name(rule: Optional[FieldRule], field: str, record: dict):
    """Target field name for the rule, or False when there is none."""
    if rule is None:
        return False
    if isinstance(rule, NoMapping):
        return False
    if isinstance(rule, Rename):
        return rule.name
    if isinstance(rule, Computed):
        return rule.fn(record)
    if isinstance(rule, RuleObject):
        if rule.translate_name is None:
            return False
        return rule.translate_name(record)
    raise InvalidFieldRule(field, rule)


def resolve_content(rule: Optional[FieldRule], field: str, record: dict):
    if isinstance(rule, RuleObject) and rule.translate_content is not None:
        return rule.translate_content(record)
    return record[field]


def resolve_default(rule: Optional[FieldRule]):
    """Returns (True, value) if the rule supplies a default, else (False, None)."""
    if isinstance(rule, RuleObject) and rule.default is not None:
        return True, rule.default()
    return False, None

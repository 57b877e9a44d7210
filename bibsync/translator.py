"""
Field translation between a local schema and the global exchange format.

    Bookends record --to_global(BOOKENDS)--> pivot --to_local(ZOTERO)--> Zotero item

The same algorithm runs in both directions; the dictionary supplies the rules.
Fields that have no equivalent in the target schema are kept in the "extra"
bucket instead of being lost.
"""

import logging

from . import extra as extra_codec
from .dictionary import EXTRA, Direction
from .rules import resolve_content, resolve_default, resolve_name

logger = logging.getLogger("BibSync-Translator")

SEPARATOR = "; "


def append(record: dict, field: str, content, separator=SEPARATOR):
    """
    Merges content into record[field] without clobbering what is already there.
    Lists are concatenated (or the content pushed onto them), strings are joined
    with the separator.
    """
    old = record.get(field)
    if old is None or old == "":
        record[field] = list(content) if isinstance(content, list) else content
        return
    if isinstance(old, list):
        if isinstance(content, list):
            record[field] = old + content
        else:
            record[field] = old + [content]
    elif isinstance(old, str):
        record[field] = f"{old}{separator}{content}"
    else:
        # Undefined for other shapes (dict + dict, numbers): keep what we have
        logger.debug(f"Cannot append to '{field}' holding {type(old).__name__}, value dropped")


def _direction(direction) -> Direction:
    if isinstance(direction, Direction):
        return direction
    if isinstance(direction, bool):
        return Direction.TO_GLOBAL if direction else Direction.TO_LOCAL
    raise ValueError(f"Invalid direction {direction!r}: must be a Direction or a bool")


def translate(dictionary, record: dict, direction=Direction.TO_GLOBAL) -> dict:
    """
    Translates a record.

    :param dictionary: bibsync.dictionary.Dictionary of the local schema
    :param record: The record to translate (not modified)
    :param direction: Direction.TO_GLOBAL (local -> pivot) or Direction.TO_LOCAL (pivot -> local)
    :return: The translated record
    """
    direction = _direction(direction)
    rules = dictionary.rules(direction)
    if direction is Direction.TO_GLOBAL:
        source_extra, target_extra = dictionary.extra_field, EXTRA
    else:
        source_extra, target_extra = EXTRA, dictionary.extra_field

    # 1. Unpack the "extra" field of the source
    raw_extra = record.get(source_extra)
    if isinstance(raw_extra, str):
        extra = extra_codec.unpack(raw_extra)
    elif isinstance(raw_extra, dict):
        extra = {k: list(v) if isinstance(v, list) else v for k, v in raw_extra.items()}
    else:
        extra = {}

    translated = {}
    # target fields still holding a seeded default
    seeded = set()

    def supply(name, content):
        if name in seeded:
            seeded.discard(name)
            translated.pop(name, None)
        append(translated, name, content)

    # 2. Field by field
    for field, value in record.items():
        if field == source_extra or value is None or value == "":
            continue
        rule = rules.get(field)
        name = resolve_name(rule, field, record)
        content = resolve_content(rule, field, record)

        if name is not False and name is not None:
            has_default, default = resolve_default(rule)
            if has_default and translated.get(name) is None:
                translated[name] = default
                seeded.add(name)
            # direct equivalent in the target schema, replaces a seeded default
            if content is not None and content != "":
                supply(name, content)
            continue

        if isinstance(content, dict):
            # the content decides where it goes
            for key, sub_value in content.items():
                if dictionary.knows(key):
                    supply(key, sub_value)
                else:
                    append(extra, key, sub_value)
        elif not dictionary.is_exempt(field):
            logger.debug(f"[{dictionary.name}] '{field}' has no equivalent, kept in extra")
            append(extra, field, content)

    # 3. Pack "extra"
    translated[target_extra] = extra_codec.pack(extra) if extra else {}
    return translated


def to_global(dictionary, record: dict) -> dict:
    """Local schema -> global exchange format."""
    return translate(dictionary, record, Direction.TO_GLOBAL)


def to_local(dictionary, record: dict) -> dict:
    """Global exchange format -> local schema."""
    return translate(dictionary, record, Direction.TO_LOCAL)

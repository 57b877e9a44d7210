"""
Dictionary of the Bookends field schema (Bookends <-> global exchange format).
Rules are plain data here; bibsync.dictionary.Dictionary validates them.
"""

import re

from ..config import BOOKENDS_EXTRA_FIELD
from ..dictionary import Dictionary

# 1. REFERENCE TYPES (Bookends name : global type)

TYPE_CONVERSION = {
    "Artwork": "artwork",
    "Audiovisual material": "audiovisual",
    "Book": "book",
    "Book chapter": "bookSection",
    "Conference proceedings": "conferencePaper",
    "Dissertation": "thesis",
    "Edited book": "editedBook",
    "Editorial": "editorial",
    "In press": "inPress",
    "Journal article": "journalArticle",
    "Letter": "letter",
    "Map": "map",
    "Newspaper article": "newspaperArticle",
    "Patent": "patent",
    "Personal communication": "personalCommunication",
    "Review": "review",
    "Internet": "webpage",

    # Fallback if the type is unknown
    "DEFAULT": "journalArticle"
}

# Reverse table, plus global types that only exist in other schemas
TYPE_CONVERSION_LOCAL = {v: k for k, v in TYPE_CONVERSION.items() if k != "DEFAULT"}
TYPE_CONVERSION_LOCAL.update({
    "report": "Book",
    "magazineArticle": "Journal article",
    "document": "Journal article",
    "DEFAULT": "Journal article"
})

# Types whose secondary title is the title of the containing book
CONTAINER_TYPES = ("Book chapter", "Conference proceedings")

EDITOR_TYPES = ("editor", "seriesEditor")

_LIST_SPLIT = re.compile(r"[\r\n;]+")
_NAME_SPLIT = re.compile(r"[\r\n]+")


def split_list(text):
    return [part.strip() for part in _LIST_SPLIT.split(text or "") if part.strip()]


def parse_names(text, creator_type):
    """'Doe, John\\nACME Corp.' -> [{lastName, firstName}, {name}] with creatorType set."""
    creators = []
    for line in _NAME_SPLIT.split(text or ""):
        line = line.strip()
        if not line:
            continue
        if "," in line:
            last, first = line.split(",", 1)
            creators.append({"creatorType": creator_type, "lastName": last.strip(), "firstName": first.strip()})
        else:
            creators.append({"creatorType": creator_type, "name": line})
    return creators


def format_name(creator):
    if creator.get("name"):
        return creator["name"]
    if creator.get("firstName"):
        return f"{creator.get('lastName', '')}, {creator['firstName']}"
    return creator.get("lastName", "")


def split_creators(record):
    """Global creators -> {"authors": ..., "editors": ...} (only non-empty keys)."""
    authors, editors = [], []
    for creator in record.get("creators") or []:
        target = editors if creator.get("creatorType") in EDITOR_TYPES else authors
        name = format_name(creator)
        if name:
            target.append(name)
    result = {}
    if authors:
        result["authors"] = "\n".join(authors)
    if editors:
        result["editors"] = "\n".join(editors)
    return result


def _secondary_title(record):
    return "bookTitle" if record.get("type") in CONTAINER_TYPES else "seriesTitle"


# 2. FIELD RULES

TO_GLOBAL = {
    # --- IDENTITY ---
    # No global field; ends up in "extra" so the reference can be found again
    "uniqueID": {
        "translate_content": lambda r: {"bookends-uniqueId": str(r["uniqueID"])}
    },
    "type": {
        "translate_name": lambda r: "type",
        "translate_content": lambda r: TYPE_CONVERSION.get(r["type"], TYPE_CONVERSION["DEFAULT"])
    },

    # --- TITLES ---
    "title": "title",
    "journal": "publicationTitle",
    "title2": _secondary_title,

    # --- CREATORS ---
    # Both map to "creators": the lists are concatenated, authors first
    "authors": {
        "translate_name": lambda r: "creators",
        "translate_content": lambda r: parse_names(r["authors"], "author")
    },
    "editors": {
        "translate_name": lambda r: "creators",
        "translate_content": lambda r: parse_names(r["editors"], "editor")
    },

    # --- PUBLICATION ---
    "volume": "volume",
    "pages": "pages",
    "publisher": "publisher",
    "location": "place",
    "thedate": "date",

    # --- CONTENT ---
    "abstract": "abstract",
    "notes": "notes",
    "keywords": {
        "translate_name": lambda r: "keywords",
        "translate_content": lambda r: split_list(r["keywords"])
    },
    "attachments": {
        "translate_name": lambda r: "attachments",
        "translate_content": lambda r: split_list(r["attachments"])
    },

    # Local bookkeeping, archived in "extra" on one line
    "groups": {
        "translate_content": lambda r: "; ".join(split_list(r["groups"]))
    },
}

TO_LOCAL = {
    "type": {
        "translate_name": lambda r: "type",
        "translate_content": lambda r: TYPE_CONVERSION_LOCAL.get(r["type"], TYPE_CONVERSION_LOCAL["DEFAULT"])
    },
    "title": "title",
    "publicationTitle": "journal",
    "bookTitle": "title2",
    "seriesTitle": "title2",

    # Split by role; the keys are Bookends fields, so they are promoted
    "creators": {
        "translate_content": split_creators
    },

    "volume": "volume",
    "pages": "pages",
    "publisher": "publisher",
    "place": "location",
    "date": "thedate",

    "abstract": "abstract",
    "notes": "notes",
    "keywords": {
        "translate_name": lambda r: "keywords",
        "translate_content": lambda r: "\n".join(r["keywords"]) if isinstance(r["keywords"], list) else r["keywords"]
    },
    "attachments": {
        "translate_name": lambda r: "attachments",
        "translate_content": lambda r: "\n".join(r["attachments"]) if isinstance(r["attachments"], list) else r["attachments"]
    },
}

BOOKENDS = Dictionary(
    "bookends",
    TO_GLOBAL,
    TO_LOCAL,
    exempt_prefixes=("user", "default"),
    extra_field=BOOKENDS_EXTRA_FIELD,
)

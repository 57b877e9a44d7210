"""
Dictionary of the Zotero item schema (Zotero web API <-> global exchange format).
"""

from ..dictionary import Dictionary

# 1. ITEM TYPES (Zotero itemType : global type)

TYPE_CONVERSION = {
    "artwork": "artwork",
    "videoRecording": "audiovisual",
    "audioRecording": "audiovisual",
    "film": "audiovisual",
    "book": "book",
    "bookSection": "bookSection",
    "conferencePaper": "conferencePaper",
    "thesis": "thesis",
    "journalArticle": "journalArticle",
    "magazineArticle": "magazineArticle",
    "letter": "letter",
    "email": "personalCommunication",
    "map": "map",
    "newspaperArticle": "newspaperArticle",
    "patent": "patent",
    "report": "report",
    "webpage": "webpage",
    "document": "document",

    "DEFAULT": "document"
}

TYPE_CONVERSION_LOCAL = {
    "artwork": "artwork",
    "audiovisual": "videoRecording",
    "book": "book",
    "editedBook": "book",
    "bookSection": "bookSection",
    "conferencePaper": "conferencePaper",
    "thesis": "thesis",
    "editorial": "journalArticle",
    "inPress": "journalArticle",
    "journalArticle": "journalArticle",
    "magazineArticle": "magazineArticle",
    "review": "journalArticle",
    "letter": "letter",
    "personalCommunication": "letter",
    "map": "map",
    "newspaperArticle": "newspaperArticle",
    "patent": "patent",
    "report": "report",
    "webpage": "webpage",
    "document": "document",

    "DEFAULT": "document"
}

CREATOR_KEYS = ("creatorType", "firstName", "lastName", "name")

# Service bookkeeping: never archived in "extra"
EXEMPT_PREFIXES = ("key", "version", "dateAdded", "dateModified", "collections", "relations", "parentItem")


def normalize_creators(creators):
    result = []
    for creator in creators or []:
        result.append({k: creator[k] for k in CREATOR_KEYS if creator.get(k)})
    return result


def _as_list(value):
    return value if isinstance(value, list) else [value]


def _container_title(record):
    return "proceedingsTitle" if record.get("type") == "conferencePaper" else "bookTitle"


# 2. FIELD RULES

TO_GLOBAL = {
    "itemType": {
        "translate_name": lambda r: "type",
        "translate_content": lambda r: TYPE_CONVERSION.get(r["itemType"], TYPE_CONVERSION["DEFAULT"])
    },
    "title": "title",
    "shortTitle": "shortTitle",
    "publicationTitle": "publicationTitle",
    "bookTitle": "bookTitle",
    "proceedingsTitle": "bookTitle",
    "series": "seriesTitle",
    "seriesTitle": "seriesTitle",
    "creators": {
        "translate_name": lambda r: "creators",
        "translate_content": lambda r: normalize_creators(r["creators"])
    },
    "volume": "volume",
    "issue": "issue",
    "pages": "pages",
    "edition": "edition",
    "publisher": "publisher",
    "place": "place",
    "date": "date",
    "language": "language",
    "url": "url",
    "DOI": "doi",
    "ISBN": "isbn",
    "ISSN": "issn",
    "abstractNote": "abstract",
    "tags": {
        "translate_name": lambda r: "keywords",
        "translate_content": lambda r: [t["tag"] for t in r["tags"] if t.get("tag")]
    },
    # child note items
    "note": "notes",
}

TO_LOCAL = {
    "type": {
        "translate_name": lambda r: "itemType",
        "translate_content": lambda r: TYPE_CONVERSION_LOCAL.get(r["type"], TYPE_CONVERSION_LOCAL["DEFAULT"])
    },
    "title": "title",
    "shortTitle": "shortTitle",
    "publicationTitle": "publicationTitle",
    "bookTitle": _container_title,
    "seriesTitle": "series",
    "creators": {
        "translate_name": lambda r: "creators",
        "translate_content": lambda r: normalize_creators(r["creators"])
    },
    "volume": "volume",
    "issue": "issue",
    "pages": "pages",
    "edition": "edition",
    "publisher": "publisher",
    "place": "place",
    "date": "date",
    "language": "language",
    "url": "url",
    "doi": "DOI",
    "isbn": "ISBN",
    "issn": "ISSN",
    "abstract": "abstractNote",
    "keywords": {
        "translate_name": lambda r: "tags",
        "translate_content": lambda r: [{"tag": k} for k in _as_list(r["keywords"])],
        "default": lambda: []
    },
    # Not item fields: the synchronizer turns them into child items
    "notes": "notes",
    "attachments": "attachments",
}

ZOTERO = Dictionary("zotero", TO_GLOBAL, TO_LOCAL, exempt_prefixes=EXEMPT_PREFIXES)

"""
Fixtures for pytest: small dictionaries and in-memory stand-ins for Bookends and Zotero.
"""
import pytest

from bibsync.bookends import FIELDS
from bibsync.dictionary import Dictionary

COMMON = ["itemType", "title", "creators", "abstractNote", "date", "language", "shortTitle", "url", "extra", "tags"]

TEMPLATES = {
    "journalArticle": COMMON + ["publicationTitle", "volume", "issue", "pages", "DOI", "ISSN"],
    "book": COMMON + ["publisher", "place", "ISBN", "edition", "series"],
    "bookSection": COMMON + ["bookTitle", "publisher", "place", "pages", "ISBN"],
    "note": ["itemType", "note", "tags"],
    "attachment": ["itemType", "linkMode", "title", "filename", "tags"],
}


class FakeBookends:
    def __init__(self, refs, mod_dates=None):
        self.refs = {r["uniqueID"]: dict(r) for r in refs}
        self.mod_dates = mod_dates or {}
        self.updates = []
        self.added = []
        self.next_id = 1000

    def get_fields(self):
        return list(FIELDS)

    def get_group_reference_ids(self, group):
        return list(self.refs)

    def modification_dates(self, ids):
        return [self.mod_dates[i] for i in ids]

    def read_references(self, ids, field_names, convert_type=True):
        return [{f: self.refs[i][f] for f in field_names if f in self.refs[i]} for i in ids]

    def update_references(self, records):
        self.updates.append([dict(r) for r in records])

    def add_references(self, records):
        ids = []
        for record in records:
            self.next_id += 1
            self.added.append(dict(record, uniqueID=self.next_id))
            ids.append(self.next_id)
        return ids


class FakeZotero:
    def __init__(self, items=None, fail_titles=()):
        self.version = 10
        self.items = items or []
        self.fail_titles = fail_titles
        self.posted = []
        self.uploads = []
        self.template_calls = []
        self._next_key = 0

    def item_template(self, item_type, link_mode=None):
        self.template_calls.append((item_type, link_mode))
        template = {name: "" for name in TEMPLATES.get(item_type, COMMON)}
        template.update({"itemType": item_type, "creators": [], "tags": []})
        if item_type in ("note", "attachment"):
            template.pop("creators")
        if link_mode:
            template["linkMode"] = link_mode
        return template

    def post_items(self, items):
        self.version += 1
        self.posted.append([dict(i) for i in items])
        success, failed = {}, {}
        for index, item in enumerate(items):
            if item.get("title") in self.fail_titles:
                failed[str(index)] = {"code": 400, "message": "Invalid item"}
                continue
            key = item.get("key")
            if not key:
                self._next_key += 1
                key = f"KEY{self._next_key:05d}"
            success[str(index)] = key
        return {"success": success, "failed": failed, "unchanged": {}}

    def upload_attachment(self, key, file_path):
        self.uploads.append((key, file_path))
        return True

    def get_items(self, since=0, start=0, limit=100):
        return self.items[start:start + limit], len(self.items), self.version


@pytest.fixture
def simple_dictionary():
    return Dictionary(
        "simple",
        to_global={
            "title": "title",
            "author": "creator",
            "kw1": "keywords",
            "kw2": "keywords",
            "first": {"translate_name": lambda r: "creators", "translate_content": lambda r: [r["first"]]},
            "second": {"translate_name": lambda r: "creators", "translate_content": lambda r: [r["second"]]},
            "skip": False,
        },
        to_local={
            "title": "title",
            "creator": "author",
        },
    )


@pytest.fixture
def fake_zotero():
    return FakeZotero()

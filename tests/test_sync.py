from datetime import datetime, timezone

import pytest

from bibsync.errors import ConfigError
from bibsync.sync import (
    SyncEntry, Synchronizer,
    parse_date, parse_sync_data, read_sync_entry, sync_id_for, update_sync_data,
)
from tests.conftest import FakeBookends, FakeZotero

SYNC_ID = "zotero:group:123"
SYNC_TIME = 1_600_000_000_000  # 2020-09-13T12:26:40Z


def synced(key, version, sync_time=SYNC_TIME):
    return "{'Synchronization data':'DO NOT MODIFY THIS FIELD!','%s':'%d,%d,%s'}" % (SYNC_ID, sync_time, version, key)


def at(seconds):
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


# --- sync data field ---

def test_sync_id_for():
    assert sync_id_for("groups/123") == "zotero:group:123"
    assert sync_id_for("users/7") == "zotero:user:7"
    with pytest.raises(ConfigError):
        sync_id_for("group/abc")


def test_parse_sync_data():
    assert parse_sync_data(synced("K", 3))[SYNC_ID] == f"{SYNC_TIME},3,K"
    assert parse_sync_data("") is None
    assert parse_sync_data("not json") is None
    assert parse_sync_data("['a list']") is None


def test_read_sync_entry():
    assert read_sync_entry(parse_sync_data(synced("K", 3)), SYNC_ID) == SyncEntry(SYNC_TIME, 3, "K")
    assert read_sync_entry(parse_sync_data(synced("K", 3)), "zotero:user:1") is None
    assert read_sync_entry({SYNC_ID: "garbage"}, SYNC_ID) is None


def test_update_sync_data_keeps_other_libraries():
    value = update_sync_data("{'zotero:user:1':'1,2,OTHER'}", SYNC_ID, 5, 6, "KEY")
    data = parse_sync_data(value)
    assert data == {"zotero:user:1": "1,2,OTHER", SYNC_ID: "5,6,KEY"}
    assert '"' not in value


def test_update_sync_data_initializes_banner():
    data = parse_sync_data(update_sync_data("broken", SYNC_ID, 5, 6, "KEY"))
    assert data["Synchronization data"] == "DO NOT MODIFY THIS FIELD!"
    assert data[SYNC_ID] == "5,6,KEY"


def test_update_sync_data_reset():
    data = parse_sync_data(update_sync_data("{'zotero:user:1':'1,2,OTHER'}", SYNC_ID, 5, 6, "KEY", reset=True))
    assert "zotero:user:1" not in data


def test_parse_date():
    assert parse_date("2020-09-13T12:26:40Z") == at(1_600_000_000)
    assert parse_date("2020-09-13 12:26:40").tzinfo == timezone.utc
    assert parse_date("") is None
    assert parse_date("not a date") is None


# --- prepare ---

def make_sync(refs, mod_dates=None, zotero=None, **kwargs):
    bookends = FakeBookends(refs, mod_dates)
    zotero = zotero or FakeZotero()
    kwargs.setdefault("reset", False)
    kwargs.setdefault("batch_size", 50)
    return Synchronizer(bookends, zotero, SYNC_ID, **kwargs), bookends, zotero


def test_prepare_finds_modified_references():
    refs = [
        {"uniqueID": 1, "title": "New"},
        {"uniqueID": 2, "title": "Unchanged", "user15": synced("KEY2", 7)},
        {"uniqueID": 3, "title": "Changed", "user15": synced("KEY3", 9)},
    ]
    mod_dates = {1: at(1_600_000_050), 2: at(1_600_000_050), 3: at(1_600_001_000)}
    sync, _, _ = make_sync(refs, mod_dates)

    sync.prepare()

    assert sync.modified_ids == [1, 3]
    assert sync.unmodified == 1
    assert sync.library_version == 9
    assert sync.key_to_bookends_id == {"KEY2": 2, "KEY3": 3}


def test_prepare_with_reset_ignores_sync_data():
    refs = [{"uniqueID": 2, "user15": synced("KEY2", 7)}]
    sync, _, _ = make_sync(refs, {2: at(1_600_000_050)}, reset=True)
    sync.prepare()
    assert sync.modified_ids == [2]


# --- push ---

def test_push_creates_item_with_children(tmp_path):
    (tmp_path / "paper.pdf").write_bytes(b"%PDF")
    refs = [{
        "uniqueID": 1,
        "type": "Journal article",
        "title": "On Things",
        "authors": "Doe, John",
        "notes": "Read twice",
        "attachments": "paper.pdf\nmissing.pdf",
    }]
    sync, bookends, zotero = make_sync(refs, {1: at(1_600_000_000)}, attachment_path=str(tmp_path))

    sync.run("zotero")

    parents, children = zotero.posted
    assert len(parents) == 1
    parent = parents[0]
    assert parent["itemType"] == "journalArticle"
    assert parent["title"] == "On Things"
    assert parent["extra"] == "bookends-uniqueId:1"
    assert "key" not in parent

    note, attachment = children
    assert note["itemType"] == "note"
    assert note["note"] == "Read twice"
    assert note["parentItem"] == "KEY00001"
    assert attachment["itemType"] == "attachment"
    assert attachment["linkMode"] == "imported_file"
    assert attachment["filename"] == "paper.pdf"
    assert attachment["parentItem"] == "KEY00001"

    assert zotero.uploads == [("KEY00003", str(tmp_path / "paper.pdf"))]
    assert sync.missing_attachments == ["missing.pdf"]
    assert sync.created == 1
    assert len(sync.synchronized) == 3

    # sync data written back: uniqueID and sync field only
    (update,) = bookends.updates
    assert update[0]["uniqueID"] == 1
    assert set(update[0]) == {"uniqueID", "user15"}
    entry = read_sync_entry(parse_sync_data(update[0]["user15"]), SYNC_ID)
    assert entry.key == "KEY00001"
    assert entry.version == 11


def test_push_adds_anonymous_creator():
    sync, _, zotero = make_sync([{"uniqueID": 1, "type": "Book", "title": "Nobody's"}], {1: at(0)})
    sync.run("zotero")
    assert zotero.posted[0][0]["creators"] == [{"creatorType": "author", "name": "Anonymous"}]


def test_push_moves_invalid_fields_to_extra():
    refs = [{"uniqueID": 1, "type": "Book", "title": "A Book", "journal": "Not for books"}]
    sync, _, zotero = make_sync(refs, {1: at(0)})
    sync.run("zotero")
    item = zotero.posted[0][0]
    assert "publicationTitle" not in item
    assert item["extra"] == "bookends-uniqueId:1\npublicationTitle:Not for books"


def test_push_updates_existing_item_without_children():
    refs = [{
        "uniqueID": 3,
        "type": "Journal article",
        "title": "Changed",
        "notes": "Not sent again",
        "user15": synced("KEY3", 9),
    }]
    sync, _, zotero = make_sync(refs, {3: at(1_600_001_000)})

    sync.run("zotero")

    (batch,) = zotero.posted
    assert len(batch) == 1
    assert batch[0]["key"] == "KEY3"
    assert batch[0]["version"] == 9
    assert sync.updated == 1
    assert sync.created == 0


def test_push_sends_batches():
    refs = [{"uniqueID": i, "type": "Book", "title": f"Book {i}"} for i in range(1, 6)]
    sync, bookends, zotero = make_sync(refs, {i: at(0) for i in range(1, 6)}, batch_size=2)
    sync.run("zotero")
    assert [len(batch) for batch in zotero.posted] == [2, 2, 1]
    assert len(bookends.updates) == 3


def test_children_of_failed_parent_are_not_sent():
    refs = [{"uniqueID": 1, "type": "Book", "title": "Broken", "notes": "orphan"}]
    zotero = FakeZotero(fail_titles=("Broken",))
    sync, bookends, _ = make_sync(refs, {1: at(0)}, zotero=zotero)

    summary = sync.run("zotero")

    assert len(zotero.posted) == 1
    assert summary["failed"] == 2
    assert sync.failed_requests[0]["code"] == 400
    assert sync.failed_requests[1]["message"] == "Parent item was not saved"
    assert bookends.updates == []


# --- pull ---

def zotero_item(key, title, date_modified, **fields):
    data = {"key": key, "version": 12, "itemType": "journalArticle", "title": title,
            "dateModified": date_modified, "creators": [], "tags": []}
    data.update(fields)
    return {"key": key, "version": 12, "data": data}


def test_pull_updates_creates_and_skips():
    refs = [
        {"uniqueID": 2, "title": "Known", "user15": synced("KEY2", 7)},
        {"uniqueID": 4, "title": "Also known", "user15": synced("KEY4", 7)},
    ]
    items = [
        zotero_item("KEY2", "Known, edited online", "2021-01-01T00:00:00Z"),
        zotero_item("KEY4", "Not edited", "2020-09-13T12:26:40Z"),
        zotero_item("NEW1", "Created online", "2021-01-01T00:00:00Z",
                    creators=[{"creatorType": "author", "firstName": "A", "lastName": "B"}]),
        {"key": "NOTE", "data": {"key": "NOTE", "itemType": "note", "note": "x"}},
    ]
    zotero = FakeZotero(items=items)
    sync, bookends, _ = make_sync(refs, {2: at(1_600_000_050), 4: at(1_600_000_050)}, zotero=zotero)

    summary = sync.run("bookends")

    (update,) = bookends.updates
    record = update[0]
    assert record["uniqueID"] == 2
    assert record["title"] == "Known, edited online"
    assert record["type"] == "Journal article"
    assert read_sync_entry(parse_sync_data(record["user15"]), SYNC_ID).key == "KEY2"

    (added,) = bookends.added
    assert added["title"] == "Created online"
    assert added["authors"] == "B, A"
    assert "user20" not in added

    assert summary["pulled_updated"] == 1
    assert summary["pulled_created"] == 1
    assert sync.pulled_unchanged == 1
    assert sync.key_to_bookends_id["NEW1"] == added["uniqueID"]


def test_pull_finds_reference_through_extra():
    items = [zotero_item("KEY9", "Linked by id", "2021-01-01T00:00:00Z", extra="bookends-uniqueId:77\nnote:kept")]
    sync, bookends, _ = make_sync([], zotero=FakeZotero(items=items))

    sync.pull()

    record = bookends.updates[0][0]
    assert record["uniqueID"] == 77
    assert record["user20"] == "note:kept"


def test_pull_nothing_to_do():
    sync, bookends, _ = make_sync([])
    sync.pull()
    assert bookends.updates == []
    assert bookends.added == []


def test_run_rejects_unknown_target():
    sync, _, _ = make_sync([])
    with pytest.raises(ValueError):
        sync.run("dropbox")

"""
Bookends <-> Zotero synchronization.

Each Bookends reference keeps its synchronization data in one user field
(BOOKENDS_SYNCDATA_FIELD), a JSON object written with single quotes:

    {'Synchronization data': 'DO NOT MODIFY THIS FIELD!',
     'zotero:group:12345': '<sync time ms>,<library version>,<zotero key>'}

Records go through the global exchange format in both directions:

    Bookends --to_global(BOOKENDS)--> pivot --to_local(ZOTERO)--> Zotero
    Zotero   --to_global(ZOTERO)----> pivot --to_local(BOOKENDS)--> Bookends
"""

import os
import json
import time
import logging
import concurrent.futures
from dataclasses import dataclass, field
from datetime import timezone
from typing import Optional

from dateutil import parser

from . import extra as extra_codec
from .config import (
    BOOKENDS_GROUP, BOOKENDS_SYNCDATA_FIELD, BOOKENDS_ATTACHMENT_PATH,
    SYNC_BATCH_SIZE, SYNC_LAG_SECONDS, SYNC_RESET,
)
from .dictionaries import BOOKENDS, ZOTERO
from .errors import BookendsError, ZoteroError
from .translator import to_global, to_local
from .zotero import MAX_BATCH, parse_library

logger = logging.getLogger("BibSync-Core")

SYNC_BANNER = {"Synchronization data": "DO NOT MODIFY THIS FIELD!"}
UNIQUE_ID_KEY = "bookends-uniqueId"
CHILD_TYPES = ("note", "attachment")
ANONYMOUS = {"creatorType": "author", "name": "Anonymous"}
UPLOAD_WORKERS = 4
PAGE_SIZE = 100


@dataclass(frozen=True)
class SyncEntry:
    sync_time: int  # ms since epoch
    version: int
    key: str


@dataclass(eq=False)
class PendingItem:
    """A Zotero item waiting to be written. Children wait for their parent's key."""
    data: dict
    source: Optional[dict] = None
    parent: Optional["PendingItem"] = None
    file_path: Optional[str] = None
    key: Optional[str] = None
    children: list = field(default_factory=list)


# --- SYNC DATA FIELD ---

def sync_id_for(library):
    kind, library_id = parse_library(library)
    return f"zotero:{kind}:{library_id}"


def parse_sync_data(value):
    """Contents of the sync data field as a dict, or None if empty or invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        data = json.loads(value.replace("'", '"'))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def read_sync_entry(data, sync_id):
    if not data or data.get(sync_id) is None:
        return None
    parts = str(data[sync_id]).split(",")
    if len(parts) != 3:
        return None
    sync_time, version, key = parts
    try:
        return SyncEntry(int(sync_time or 0), int(version or 0), key)
    except ValueError:
        return None


def update_sync_data(value, sync_id, timestamp, version, key, reset=False):
    """Returns the new content of the sync data field with the entry for sync_id replaced."""
    data = None if reset else parse_sync_data(value)
    if data is None:
        data = dict(SYNC_BANNER)
    data[sync_id] = f"{timestamp},{version},{key}"
    return json.dumps(data, ensure_ascii=False).replace('"', "'")


def parse_date(date_str):
    """ISO date of the Zotero API -> aware UTC datetime (None if missing or invalid)."""
    if not date_str:
        return None
    try:
        dt = parser.parse(date_str)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def now_ms():
    return int(time.time() * 1000)


class Synchronizer:
    """
    Owns the state of one synchronization run between a Bookends library and a Zotero library.
    :param bookends: bibsync.bookends.BookendsClient (or compatible)
    :param zotero: bibsync.zotero.ZoteroClient (or compatible)
    :param sync_id: Key of this Zotero library in the sync data field (see sync_id_for)
    """

    def __init__(self, bookends, zotero, sync_id,
                 group=BOOKENDS_GROUP,
                 syncdata_field=BOOKENDS_SYNCDATA_FIELD,
                 attachment_path=BOOKENDS_ATTACHMENT_PATH,
                 batch_size=SYNC_BATCH_SIZE,
                 reset=SYNC_RESET,
                 bookends_dict=BOOKENDS,
                 zotero_dict=ZOTERO):
        self.bookends = bookends
        self.zotero = zotero
        self.sync_id = sync_id
        self.group = group
        self.syncdata_field = syncdata_field
        self.attachment_path = attachment_path
        self.batch_size = min(batch_size, MAX_BATCH)
        self.reset = reset
        self.bookends_dict = bookends_dict
        self.zotero_dict = zotero_dict

        # Bookends side
        self.sync_data = {}           # uniqueID -> SyncEntry
        self.sync_fields = {}         # uniqueID -> raw sync data field
        self.modified_ids = []
        self.key_to_bookends_id = {}
        self.unmodified = 0
        self.library_version = 0
        self.missing_attachments = []

        # Zotero side
        self.queue = []
        self.pending_uploads = []
        self.synchronized = []
        self.failed_requests = []
        self.created = 0
        self.updated = 0
        self.pulled_created = 0
        self.pulled_updated = 0
        self.pulled_unchanged = 0

    # --- PREPARE ---

    def prepare(self):
        """Reads the sync data of all references in the group and finds the modified ones."""
        logger.info(f"🔎 Getting information on Bookends references in '{self.group}'...")
        self.unmodified = 0
        self.modified_ids = []
        self.key_to_bookends_id = {}

        ids = self.bookends.get_group_reference_ids(self.group)
        if not ids:
            logger.info("Bookends group is empty.")
            return
        mod_dates = dict(zip(ids, self.bookends.modification_dates(ids)))
        refs = self.bookends.read_references(ids, ["uniqueID", self.syncdata_field], convert_type=False)

        for ref in refs:
            uid = ref["uniqueID"]
            raw = ref.get(self.syncdata_field) or ""
            self.sync_fields[uid] = raw
            entry = None if self.reset else read_sync_entry(parse_sync_data(raw), self.sync_id)
            if entry is None:
                self.modified_ids.append(uid)
                continue

            self.sync_data[uid] = entry
            self.key_to_bookends_id[entry.key] = uid
            # highest version seen = version of the library at the last sync
            self.library_version = max(self.library_version, entry.version)

            # Saving the sync data modifies the reference itself, hence the lag
            mod_time = mod_dates[uid].timestamp() * 1000
            if mod_time - entry.sync_time < SYNC_LAG_SECONDS * 1000:
                self.unmodified += 1
                continue
            self.modified_ids.append(uid)

        logger.info(
            f"📚 {len(ids)} references: {len(self.modified_ids)} new or modified, "
            f"{self.unmodified} unchanged (library version {self.library_version})"
        )

    # --- BOOKENDS -> ZOTERO ---

    def push(self):
        if not self.modified_ids:
            logger.info("Zotero library is up to date.")
            return

        logger.info(f"Retrieving {len(self.modified_ids)} changed or new Bookends references...")
        records = self.bookends.read_references(self.modified_ids, self.bookends.get_fields())
        total = len(records)

        parents = 0
        for index, record in enumerate(records, start=1):
            self.queue_reference(record)
            parents += 1
            if parents >= self.batch_size:
                logger.info(f"⚙️ Processed {index}/{total} references ({len(self.failed_requests)} errors)")
                self.flush()
                parents = 0
        self.flush()
        self.wait_for_uploads()

        logger.info(
            f"✅ Synchronized {len(self.synchronized)} items with Zotero (including notes and attachments), "
            f"creating {self.created} and updating {self.updated} items."
        )
        if self.missing_attachments:
            logger.warning("⚠️ Attachments not found:\n - " + "\n - ".join(self.missing_attachments))
        if self.failed_requests:
            logger.error(f"❌ {len(self.failed_requests)} errors while saving items to Zotero")
            for failure in self.failed_requests:
                logger.error(f"   {failure}")

    def queue_reference(self, record):
        """Translates a Bookends reference and queues it (with new notes and attachments)."""
        pivot = to_global(self.bookends_dict, record)
        item = to_local(self.zotero_dict, pivot)
        self.dump_translation(record, pivot, item)

        notes = item.pop("notes", None)
        attachments = item.pop("attachments", None)
        if not item.get("extra"):
            item.pop("extra", None)
        if not item.get("creators"):
            item["creators"] = [dict(ANONYMOUS)]

        entry = self.sync_data.get(record.get("uniqueID"))
        item = self.apply_template(item)
        if entry is not None:
            item["key"] = entry.key
            item["version"] = entry.version
            self.updated += 1
        else:
            self.created += 1

        parent = PendingItem(data=item, source=record)
        self.queue.append(parent)

        # Children only for new items; existing ones already have theirs
        if entry is None:
            if notes:
                self._queue_child(parent, self.new_child("note", note=notes))
            if isinstance(attachments, str):
                attachments = attachments.split(";")
            for filename in attachments or []:
                filename = filename.strip()
                path = os.path.join(self.attachment_path, filename)
                if not os.path.exists(path):
                    self.missing_attachments.append(filename)
                    continue
                data = self.new_child("attachment", link_mode="imported_file", title=filename, filename=filename)
                self._queue_child(parent, data, file_path=path)
        return parent

    def _queue_child(self, parent, data, file_path=None):
        child = PendingItem(data=data, parent=parent, file_path=file_path)
        parent.children.append(child)
        self.queue.append(child)

    def new_child(self, item_type, link_mode=None, **fields):
        data = self.zotero.item_template(item_type, link_mode)
        data.update(fields)
        return data

    def apply_template(self, item):
        """
        Keeps the fields valid for the item type. Text of invalid fields is moved
        to "extra" so that nothing is lost.
        """
        template = self.zotero.item_template(item["itemType"])
        data = dict(template)
        moved = {}
        for name, value in item.items():
            if name in template:
                data[name] = value
            elif isinstance(value, (str, int)):
                moved[name] = value
            else:
                logger.debug(f"'{name}' is not a field of {item['itemType']}, dropped")
        if moved:
            bucket = extra_codec.unpack(data.get("extra") or "")
            bucket.update(moved)
            data["extra"] = extra_codec.pack(bucket)
        return data

    def flush(self):
        """
        Sends the queue. Parents go first; a child is only sent once its parent's key is known.
        Children of parents that could not be saved are reported as failed.
        """
        saved = []
        while self.queue:
            ready = [p for p in self.queue if p.parent is None or p.parent.key]
            if not ready:
                for orphan in self.queue:
                    self.failed_requests.append({"message": "Parent item was not saved", "data": orphan.data})
                self.queue = []
                break
            batch = ready[:MAX_BATCH]
            for pending in batch:
                if pending.parent is not None:
                    pending.data["parentItem"] = pending.parent.key
            self.queue = [p for p in self.queue if p not in batch]

            result = self.zotero.post_items([p.data for p in batch])
            saved.extend(self._record_result(batch, result))

        self.pending_uploads.extend(p for p in saved if p.file_path)
        self.save_bookends_sync_data([p for p in saved if p.source is not None])
        return saved

    def _record_result(self, batch, result):
        version = self.zotero.version
        for index, failure in (result.get("failed") or {}).items():
            pending = batch[int(index)]
            self.failed_requests.append({
                "code": failure.get("code"),
                "message": failure.get("message"),
                "data": pending.data,
            })
        saved = []
        written = dict(result.get("unchanged") or {})
        written.update(result.get("success") or {})
        for index, key in written.items():
            pending = batch[int(index)]
            pending.key = key
            pending.data["key"] = key
            pending.data["version"] = version
            self.synchronized.append(pending)
            saved.append(pending)
        return saved

    def save_bookends_sync_data(self, items):
        """Stores sync time, library version and key in the saved references (sync field only)."""
        if not items:
            return
        timestamp = now_ms()
        records = []
        for pending in items:
            uid = pending.source["uniqueID"]
            version = pending.data.get("version", self.zotero.version)
            value = update_sync_data(
                self.sync_fields.get(uid, pending.source.get(self.syncdata_field)),
                self.sync_id, timestamp, version, pending.key, self.reset
            )
            self.sync_fields[uid] = value
            self.sync_data[uid] = SyncEntry(timestamp, version, pending.key)
            self.key_to_bookends_id[pending.key] = uid
            records.append({"uniqueID": uid, self.syncdata_field: value})
        try:
            self.bookends.update_references(records)
        except BookendsError as e:
            logger.error(f"❌ Could not save sync data in Bookends: {e}")
            self.failed_requests.append({"message": f"Sync data not saved: {e}", "data": records})

    def wait_for_uploads(self):
        """Uploads the files of saved attachment items in parallel."""
        if not self.pending_uploads:
            return
        logger.info(f"⏳ Waiting for {len(self.pending_uploads)} pending uploads...")
        uploads, self.pending_uploads = self.pending_uploads, []
        with concurrent.futures.ThreadPoolExecutor(max_workers=UPLOAD_WORKERS) as executor:
            futures = {executor.submit(self.zotero.upload_attachment, p.key, p.file_path): p for p in uploads}
            for future in concurrent.futures.as_completed(futures):
                pending = futures[future]
                try:
                    future.result()
                except (ZoteroError, OSError) as e:
                    logger.error(f"❌ Upload of {os.path.basename(pending.file_path)} failed: {e}")
                    self.failed_requests.append({"message": str(e), "file": pending.file_path})

    # --- ZOTERO -> BOOKENDS ---

    def pull(self):
        """Writes Zotero items changed since the last sync into Bookends."""
        since = self.library_version
        items, total, version = self.zotero.get_items(since=since, start=0, limit=PAGE_SIZE)
        if total == 0:
            logger.info("Bookends library is up to date.")
            return

        sync_timestamp = now_ms()
        retrieved = 0
        while items:
            logger.info(f"Retrieving Zotero items {retrieved}/{total}")
            for entry in items:
                self.pull_item(entry.get("data", entry), version, sync_timestamp)
            retrieved += len(items)
            if retrieved >= total:
                break
            items, total, version = self.zotero.get_items(since=since, start=retrieved, limit=PAGE_SIZE)

        self.library_version = version
        logger.info(
            f"✅ Updated {self.pulled_updated} and created {self.pulled_created} references "
            f"({self.pulled_unchanged} unchanged)."
        )

    def pull_item(self, data, version, sync_timestamp):
        if data.get("itemType") in CHILD_TYPES:
            # notes and attachments are not downloaded
            return None
        key = data.get("key")

        pivot = to_global(self.zotero_dict, data)
        record = to_local(self.bookends_dict, pivot)
        self.dump_translation(data, pivot, record)

        bookends_id = self.key_to_bookends_id.get(key)
        if bookends_id is None:
            unique_id = extra_codec.unpack(pivot["extra"]).get(UNIQUE_ID_KEY) if isinstance(pivot["extra"], str) else None
            if unique_id and unique_id.strip().isdigit():
                bookends_id = int(unique_id)

        entry = self.sync_data.get(bookends_id)
        modified = parse_date(data.get("dateModified"))
        if entry is not None and modified is not None:
            if modified.timestamp() * 1000 - entry.sync_time < SYNC_LAG_SECONDS * 1000:
                self.pulled_unchanged += 1
                return None

        self._strip_unique_id(record)
        record[self.syncdata_field] = update_sync_data(
            self.sync_fields.get(bookends_id), self.sync_id, sync_timestamp, version, key, self.reset
        )

        if bookends_id is not None:
            record["uniqueID"] = bookends_id
            self.bookends.update_references([record])
            self.pulled_updated += 1
        else:
            bookends_id = self.bookends.add_references([record])[0]
            self.pulled_created += 1
        self.sync_fields[bookends_id] = record[self.syncdata_field]
        self.sync_data[bookends_id] = SyncEntry(sync_timestamp, version, key)
        self.key_to_bookends_id[key] = bookends_id
        return bookends_id

    def _strip_unique_id(self, record):
        """The id is a Bookends field already; keeping it in "extra" would duplicate it."""
        field_name = self.bookends_dict.extra_field
        bucket = record.get(field_name)
        bucket = extra_codec.unpack(bucket) if isinstance(bucket, str) else {}
        bucket.pop(UNIQUE_ID_KEY, None)
        if bucket:
            record[field_name] = extra_codec.pack(bucket)
        else:
            record.pop(field_name, None)

    # --- RUN ---

    def run(self, target=None):
        """
        :param target: "zotero" (one-way push), "bookends" (one-way pull) or None (both)
        :return: Summary of the run
        """
        if target not in (None, "zotero", "bookends"):
            raise ValueError(f"Invalid target '{target}': must be bookends, zotero or None")
        self.prepare()
        if target in (None, "zotero"):
            self.push()
        if target in (None, "bookends"):
            self.pull()
        return {
            "created": self.created,
            "updated": self.updated,
            "synchronized": len(self.synchronized),
            "pulled_created": self.pulled_created,
            "pulled_updated": self.pulled_updated,
            "unmodified": self.unmodified,
            "failed": len(self.failed_requests),
            "missing_attachments": list(self.missing_attachments),
        }

    def dump_translation(self, source, pivot, target):
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(f"==== Source ====\n{source}")
        logger.debug(f"==== Global ====\n{pivot}")
        logger.debug(f"==== Target ====\n{target}")

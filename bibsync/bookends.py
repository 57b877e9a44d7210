import json
import logging
import subprocess
import unicodedata
from datetime import datetime, timedelta, timezone

from .config import TIMEOUT
from .errors import BookendsError

logger = logging.getLogger("BookendsClient")

# Replies that are errors even though osascript succeeded
ERROR_REPLIES = ("No Bookends library window is open",)

# Bookends counts seconds from 1904-01-01 (local time)
MAC_EPOCH = datetime(1904, 1, 1)

TYPES = [
    "Artwork",
    "Audiovisual material",
    "Book",
    "Book chapter",
    "Conference proceedings",
    "Dissertation",
    "Edited book",
    "Editorial",
    "In press",
    "Journal article",
    "Letter",
    "Map",
    "Newspaper article",
    "Patent",
    "Personal communication",
    "Review",
    "Internet",
]

FIELDS = (
    ["uniqueID", "authors", "title", "editors", "journal", "volume", "pages", "publisher",
     "thedate", "location", "title2", "abstract", "keywords", "notes"]
    + [f"user{i}" for i in range(1, 21)]
    + ["attachments", "type", "groups"]
)


def command(event_code, *parameters):
    """Apple Event command for Bookends (creator codes are ignored since OS X 10.6)."""
    return f'tell application "Bookends" to «event XXXX{event_code}» ' + " ".join(parameters)


def quote(text):
    if not isinstance(text, str):
        raise ValueError("Argument must be a string.")
    return '"' + text.replace('"', '\\"') + '"'


def remove_quotes(text):
    text = text.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return text


def run_osascript(cmd):
    proc = subprocess.run(["osascript", "-e", cmd], capture_output=True, text=True, timeout=TIMEOUT)
    if proc.returncode != 0:
        raise BookendsError(proc.stderr.strip() or f"osascript exited with {proc.returncode}")
    return proc.stdout


class BookendsClient:
    """
    Bookends (>= 13.1.1) driven through Apple Events.
    :param runner: Callable taking the AppleScript source and returning its output
    """

    def __init__(self, runner=None):
        self.runner = runner or run_osascript

    def _run(self, cmd):
        logger.debug(f"OSA >>> {cmd}")
        try:
            result = self.runner(cmd)
        except BookendsError as e:
            logger.error(f"❌ Bookends command failed: {e}")
            raise
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"❌ Could not run osascript: {e}")
            raise BookendsError(str(e)) from e
        if isinstance(result, str):
            result = unicodedata.normalize("NFC", result)
            if any(err in result for err in ERROR_REPLIES):
                logger.error(f"❌ Bookends replied with an error: {result.strip()}")
                raise BookendsError(result.strip())
        return result

    # --- TYPES & FIELDS ---

    def get_types(self):
        return list(TYPES)

    def get_fields(self):
        return list(FIELDS)

    def code_from_type(self, ref_type):
        if not ref_type or not isinstance(ref_type, str):
            raise ValueError("Parameter must be a string")
        if ref_type not in TYPES:
            raise ValueError(f"Invalid type '{ref_type}'")
        return TYPES.index(ref_type)

    def type_from_code(self, code):
        if isinstance(code, bool) or not isinstance(code, int):
            raise ValueError("Parameter must be a number")
        if code < 0 or code >= len(TYPES):
            raise ValueError(f"No type with code {code}.")
        return TYPES[code]

    def _check_fields(self, names):
        for name in names:
            if name not in FIELDS:
                raise ValueError(f"Unknown field '{name}'")

    # --- READ ---

    def get_version(self):
        return remove_quotes(self._run(command("VERS")))

    def get_group_reference_ids(self, group_name):
        """Unique ids in a group ("All", "Hits", "Selection" or a user group)."""
        if not group_name or not isinstance(group_name, str):
            raise ValueError("Parameter must be a string")
        result = remove_quotes(self._run(command("RUID", quote(group_name))))
        return [int(i) for i in result.split("\r") if i.strip()]

    def find_ids_where(self, search):
        """Unique ids matching an SQL search, as typed into Refs -> SQL/Regex Search."""
        if not search or not isinstance(search, str):
            raise ValueError("Parameter must be a string")
        result = remove_quotes(self._run(command("SQLS", quote(search))))
        return [int(i) for i in result.split("\r") if i.strip()]

    def read_references(self, ids, field_names, convert_type=True):
        if not ids:
            raise ValueError("First parameter must be a list with at least one element")
        if not field_names:
            raise ValueError("Second parameter must be a list with at least one element")
        self._check_fields(field_names)

        cmd = command(
            "RJSN", quote(",".join(str(i) for i in ids if i)), "given string:", quote(",".join(field_names))
        )
        result = self._run(cmd)
        try:
            refs = json.loads(result)
        except (TypeError, ValueError) as e:
            raise BookendsError(f"Invalid reply to RJSN: {result}") from e

        if convert_type:
            for ref in refs:
                if isinstance(ref.get("type"), int):
                    ref["type"] = self.type_from_code(ref["type"])
        return refs

    def modification_dates(self, ids):
        """Last modification of each reference, as aware UTC datetimes in the order of ids."""
        if not ids:
            raise ValueError("Parameter must be a list with at least one element")
        result = remove_quotes(self._run(command("RMOD", quote(",".join(str(i) for i in ids)))))
        dates = []
        for stamp in result.split("\x00"):
            if not stamp.strip():
                continue
            local = MAC_EPOCH + timedelta(seconds=int(stamp))
            dates.append(local.astimezone(timezone.utc))
        if len(dates) != len(ids):
            raise BookendsError("modificationDates() failed: is the database empty?")
        return dates

    # --- WRITE ---

    def update_references(self, records):
        """Updates references with a matching 'uniqueID'. Types are sent as numeric codes."""
        if not records:
            raise ValueError("Parameter must be a list with at least one element")
        data = []
        for index, record in enumerate(records):
            record = dict(record)
            self._check_fields(record)
            if record.get("type") is not None and not isinstance(record["type"], int):
                try:
                    record["type"] = self.code_from_type(record["type"])
                except ValueError as e:
                    raise ValueError(f"Invalid reference type '{record['type']}' in reference {index}.") from e
            data.append(record)

        payload = json.dumps(data, ensure_ascii=False).replace("\\", "\\\\")
        result = self._run(command("SJSN", quote(payload)))
        if result and result.strip():
            raise BookendsError(f"updateReferences() failed.\n >>> Error:\n{result}\n >>> Data:\n{payload}")
        logger.info(f"✅ Updated {len(data)} Bookends references")

    def add_references(self, records):
        """Creates references and fills in their data. Returns the new unique ids."""
        if not records:
            raise ValueError("Parameter must be a list with at least one element")
        created = []
        for i, record in enumerate(records):
            if not isinstance(record, dict) or record.get("type") is None:
                raise ValueError(f"Invalid element {i}: must be a dict with at least the key 'type'")
            result = self._run(command("ADDA", '""', 'given «class RIST»:"TY - JOUR\n"'))
            record = dict(record, uniqueID=int(result.strip()))
            created.append(record)
        self.update_references(created)
        logger.info(f"✅ Created {len(created)} Bookends references")
        return [r["uniqueID"] for r in created]

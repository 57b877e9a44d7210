import os
import re
import uuid
import hashlib
import logging

import requests
from requests.exceptions import RequestException

from .config import ZOTERO_API_URL, ZOTERO_API_KEY, TIMEOUT, UPLOAD_TIMEOUT
from .errors import ConfigError, ZoteroError

logger = logging.getLogger("ZoteroClient")

LIBRARY_PATH = re.compile(r"^(groups|users)/([0-9]+)$")

# Write requests are limited to 50 objects by the API
MAX_BATCH = 50


def parse_library(library):
    """'groups/123' -> ('group', 123)"""
    match = LIBRARY_PATH.match(library or "")
    if not match:
        raise ConfigError(f"Invalid Zotero library '{library}': must be groups/<id> or users/<id>")
    return match.group(1)[:-1], int(match.group(2))


def write_token():
    """Random 32-character token for unversioned write requests."""
    return uuid.uuid4().hex


class ZoteroClient:
    def __init__(self, library, api_key=ZOTERO_API_KEY, base_url=ZOTERO_API_URL, session=None):
        parse_library(library)
        self.library = library
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers.update({
            "Zotero-API-Version": "3",
            "Accept": "application/json",
        })
        if api_key:
            self.session.headers["Zotero-API-Key"] = api_key
        self.version = 0
        self.templates = {}

    def _request(self, method, endpoint, library=True, expected=(200,), **kwargs):
        url = f"{self.base_url}/{self.library}{endpoint}" if library else f"{self.base_url}{endpoint}"
        timeout = kwargs.pop('timeout', TIMEOUT)
        try:
            resp = self.session.request(method, url, timeout=timeout, **kwargs)
        except RequestException as e:
            logger.error(f"❌ Request Exception [{method} {endpoint}]: {e}")
            raise ZoteroError(None, str(e)) from e

        if resp.status_code not in expected:
            logger.error(f"❌ [{method} {endpoint}] failed [Status {resp.status_code}]")
            logger.error(f"Response: {resp.text}")
            raise ZoteroError(resp.status_code, resp.text)

        version = resp.headers.get("Last-Modified-Version")
        if version:
            self.version = int(version)
        return resp

    # --- READ ---

    def library_version(self):
        self._request("GET", "/items", params={"limit": 1, "format": "versions"})
        return self.version

    def get_items(self, since=0, start=0, limit=100):
        """
        Items modified after library version `since`.
        :return: (items, total number of results, library version)
        """
        resp = self._request("GET", "/items", params={"since": since, "start": start, "limit": limit})
        total = int(resp.headers.get("Total-Results", 0))
        return resp.json(), total, self.version

    def item_template(self, item_type, link_mode=None):
        cache_key = (item_type, link_mode)
        if cache_key not in self.templates:
            params = {"itemType": item_type}
            if link_mode:
                params["linkMode"] = link_mode
            resp = self._request("GET", "/items/new", library=False, params=params)
            self.templates[cache_key] = resp.json()
        return dict(self.templates[cache_key])

    # --- WRITE ---

    def post_items(self, items):
        """
        Sends one batch of items (new ones without key, existing ones with key and version).
        :return: API response: {"success": {index: key}, "failed": {index: {...}}, "unchanged": {...}}
        """
        if len(items) > MAX_BATCH:
            raise ValueError(f"At most {MAX_BATCH} items per write request")
        resp = self._request(
            "POST", "/items", json=items, headers={"Zotero-Write-Token": write_token()}
        )
        result = resp.json()
        logger.info(
            f"📤 Sent {len(items)} items: {len(result.get('success') or {})} saved, "
            f"{len(result.get('failed') or {})} failed (library version {self.version})"
        )
        return result

    def upload_attachment(self, key, file_path):
        """
        Uploads the file of an attachment item: authorize, upload, register.
        :return: True if uploaded, False if the server already has the file
        """
        if not os.path.exists(file_path):
            logger.error(f"❌ File not found on disk: {file_path}")
            raise FileNotFoundError(file_path)

        with open(file_path, 'rb') as f:
            content = f.read()
        stat = os.stat(file_path)
        form = {"Content-Type": "application/x-www-form-urlencoded", "If-None-Match": "*"}

        resp = self._request("POST", f"/items/{key}/file", headers=form, data={
            "md5": hashlib.md5(content).hexdigest(),
            "filename": os.path.basename(file_path),
            "filesize": stat.st_size,
            "mtime": int(stat.st_mtime * 1000),
        })
        upload = resp.json()
        if upload.get("exists"):
            logger.info(f"⏭️ File already on server: {os.path.basename(file_path)}")
            return False

        body = upload["prefix"].encode() + content + upload["suffix"].encode()
        # Storage server, not the API: no session headers
        try:
            resp = requests.post(
                upload["url"], data=body, headers={"Content-Type": upload["contentType"]}, timeout=UPLOAD_TIMEOUT
            )
        except RequestException as e:
            logger.error(f"❌ Upload Exception: {e}")
            raise ZoteroError(None, str(e)) from e
        if resp.status_code not in (201, 204):
            logger.error(f"❌ Upload Failed [Status {resp.status_code}]: {resp.text}")
            raise ZoteroError(resp.status_code, resp.text)

        self._request(
            "POST", f"/items/{key}/file", expected=(204,), headers=form,
            data={"upload": upload["uploadKey"]}
        )
        logger.info(f"✅ Uploaded {os.path.basename(file_path)} to {key}")
        return True

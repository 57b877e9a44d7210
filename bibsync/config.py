import os
import logging
import sys

from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv(os.path.join(os.path.dirname(__file__), '../.env'))


def get_env(key: str, required: bool = False, default: str = None) -> str:
    val = os.getenv(key, default)
    if required and not val:
        raise ConfigError(f"CRITICAL ERROR: Environment variable '{key}' is missing.")
    return val


def get_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def require_env(*keys):
    """Checks run-time settings. Called by the runner, not at import."""
    for key in keys:
        get_env(key, required=True)


def setup_logging():
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = os.getenv("LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)

# --- CONFIGURATION ---

ZOTERO_API_URL = get_env("ZOTERO_API_URL", default="https://api.zotero.org").rstrip('/')
ZOTERO_API_KEY = get_env("ZOTERO_API_KEY")
# "groups/<id>" or "users/<id>"
ZOTERO_LIBRARY = get_env("ZOTERO_LIBRARY")

BOOKENDS_GROUP = get_env("BOOKENDS_GROUP", default="All")
BOOKENDS_SYNCDATA_FIELD = get_env("BOOKENDS_SYNCDATA_FIELD", default="user15")
BOOKENDS_EXTRA_FIELD = get_env("BOOKENDS_EXTRA_FIELD", default="user20")
BOOKENDS_ATTACHMENT_PATH = get_env("BOOKENDS_ATTACHMENT_PATH", default="")

SYNC_BATCH_SIZE = int(get_env("SYNC_BATCH_SIZE", default="50"))
SYNC_RESET = get_bool("SYNC_RESET")

TIMEOUT = 30
UPLOAD_TIMEOUT = 300
# Bookends stamps the modification date when the sync data itself is saved
SYNC_LAG_SECONDS = 100

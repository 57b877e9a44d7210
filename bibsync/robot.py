# Synchronize the Bookends library with the Zotero library from .env:
# python3 -m bibsync.robot            (both directions)
# python3 -m bibsync.robot zotero     (Bookends -> Zotero only)
# python3 -m bibsync.robot bookends   (Zotero -> Bookends only)

import sys
import logging

from .bookends import BookendsClient
from .config import setup_logging, require_env, ZOTERO_LIBRARY, ZOTERO_API_KEY
from .errors import BibSyncError, ConfigError
from .sync import Synchronizer, sync_id_for
from .zotero import ZoteroClient

logger = logging.getLogger("BibSync-Robot")

TARGETS = ("zotero", "bookends")


def main(argv=None):
    setup_logging()
    argv = sys.argv[1:] if argv is None else argv
    target = argv[0] if argv else None
    if target is not None and target not in TARGETS:
        logger.error(f"Invalid target '{target}': must be one of {', '.join(TARGETS)} or nothing")
        return 1

    try:
        require_env("ZOTERO_API_KEY", "ZOTERO_LIBRARY")
        sync_id = sync_id_for(ZOTERO_LIBRARY)
    except ConfigError as e:
        logger.error(f"⛔ {e}")
        return 1

    synchronizer = Synchronizer(
        BookendsClient(),
        ZoteroClient(ZOTERO_LIBRARY, api_key=ZOTERO_API_KEY),
        sync_id,
    )
    logger.info(f"🚀 Starting synchronization with {ZOTERO_LIBRARY} ({target or 'both directions'})")
    try:
        summary = synchronizer.run(target)
    except BibSyncError as e:
        logger.error(f"❌ Synchronization aborted: {e}")
        return 1

    logger.info(f"🏁 Done: {summary}")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())

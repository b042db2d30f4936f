"""Storage, codec, sync and query services for Noto"""

from noto.services.alarm_schedule import (
    AlarmBuckets,
    AlarmEntry,
    collect_alarms,
    compute_next_repeat,
    snooze_until,
)
from noto.services.search import (
    SearchHit,
    extract_text,
    make_snippet,
    normalize_digits,
    search_state,
    strip_html,
)
from noto.services.snapshot_codec import SnapshotCodec
from noto.services.storage import FileStorage, KeyValueStorage, MemoryStorage
from noto.services.sync_client import (
    AuthCredentials,
    RemoteSyncClient,
    map_local_to_remote,
    map_remote_to_local,
)

__all__ = [
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "FileStorage",
    "SnapshotCodec",
    # Sync
    "AuthCredentials",
    "RemoteSyncClient",
    "map_local_to_remote",
    "map_remote_to_local",
    # Alarms
    "AlarmBuckets",
    "AlarmEntry",
    "collect_alarms",
    "compute_next_repeat",
    "snooze_until",
    # Search
    "SearchHit",
    "extract_text",
    "make_snippet",
    "normalize_digits",
    "search_state",
    "strip_html",
]

"""Content-addressed download cache for HTTP files and git commits."""

from .config import CacheSettings, load_settings
from .constants import DEPCACHE_VERSION as __version__
from .errors import (
    CacheError,
    CheckoutError,
    ConfigError,
    DownloadError,
    DownloadFileError,
    HashMismatchError,
    IntegrityError,
    LockTimeoutError,
    TransferError,
)
from .events import (
    CacheHit,
    CachePublished,
    DownloadProgress,
    Event,
    EventTask,
    FetchCompleted,
    FetchStarted,
    GitProgress,
    Materialized,
    ProgressEvent,
    collect,
)
from .models import GitCommit, RemoteFile
from .store import CacheStore
from .tasks import CacheTasks

__all__ = [
    "CacheError",
    "CacheHit",
    "CachePublished",
    "CacheSettings",
    "CacheStore",
    "CacheTasks",
    "CheckoutError",
    "ConfigError",
    "DownloadError",
    "DownloadFileError",
    "DownloadProgress",
    "Event",
    "EventTask",
    "FetchCompleted",
    "FetchStarted",
    "GitCommit",
    "GitProgress",
    "HashMismatchError",
    "IntegrityError",
    "LockTimeoutError",
    "Materialized",
    "ProgressEvent",
    "RemoteFile",
    "TransferError",
    "__version__",
    "collect",
    "load_settings",
]

"""Constants for depcache."""

# Application name used for platform cache/config directories
APP_NAME = "depcache"
APP_AUTHOR = "depcache"

# Cache layout (relative to the cache root)
OBJECTS_DIR = "objects"
DIGEST_ALGORITHM = "sha256"
GIT_DIR = "git"

# Per-key lock files sit beside the entry they guard
LOCK_SUFFIX = ".lock"

# Staging directories are created beside the entry so rename stays on one filesystem
STAGING_PREFIX = ".staging-"

# Streaming
DEFAULT_CHUNK_SIZE = 64 * 1024

# Environment variables
CONFIG_ENV = "DEPCACHE_CONFIG"
CACHE_DIR_ENV = "DEPCACHE_CACHE_DIR"
HTTP_TIMEOUT_ENV = "DEPCACHE_HTTP_TIMEOUT"
LINK_MODE_ENV = "DEPCACHE_LINK_MODE"

CONFIG_FILE = "config.yaml"

# Version
DEPCACHE_VERSION = "0.1.0"

DEFAULT_USER_AGENT = f"depcache/{DEPCACHE_VERSION}"

"""Custom exceptions for depcache.

Failures are split by layer so callers can tell "we could not fetch it"
(``TransferError``) apart from "we fetched something but it is wrong"
(``DownloadFileError`` wrapping a ``HashMismatchError``).
"""

from typing import Optional


class CacheError(RuntimeError):
    """Base class for all cache-related errors."""
    pass


# Transfer Errors
class TransferError(CacheError):
    """Base class for network/transport failures while fetching."""
    pass


class DownloadError(TransferError):
    """HTTP (or local mirror) transfer failed."""

    def __init__(self, uri: str, reason: str, status_code: Optional[int] = None):
        self.uri = uri
        self.reason = reason
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Download of {uri} failed{status}: {reason}")


class CheckoutError(TransferError):
    """Git clone or checkout of the requested commit failed."""

    def __init__(self, url: str, commit: str, stage: str, stderr: str = ""):
        self.url = url
        self.commit = commit
        self.stage = stage
        self.stderr = stderr
        message = f"git {stage} failed for {url}@{commit[:12]}"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)


# Integrity Errors
class IntegrityError(CacheError):
    """Base class for data integrity errors."""
    pass


class HashMismatchError(IntegrityError):
    """Content digest doesn't match the expected value."""

    def __init__(self, source: str, expected: str, actual: str):
        self.source = source
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {source}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The content may be corrupted or tampered with."
        )


class DownloadFileError(CacheError):
    """Content was fetched but could not be accepted into the cache.

    The underlying reason is available as ``__cause__`` (normally a
    ``HashMismatchError``).
    """

    def __init__(self, uri: str, cause: BaseException):
        self.uri = uri
        super().__init__(f"Downloaded file from {uri} was rejected: {cause.__class__.__name__}")


# Locking Errors
class LockTimeoutError(CacheError):
    """Timed out waiting for another writer to release a cache entry."""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for cache lock {lock_path}. "
            f"Another process may be fetching the same artifact."
        )


# Configuration Errors
class ConfigError(CacheError):
    """Invalid or unreadable configuration."""
    pass

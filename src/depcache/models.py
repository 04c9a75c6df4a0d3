"""Artifact descriptors accepted by the cache.

Descriptors arrive already resolved (a URI with the expected content hash, or
a repository URL with a pinned commit); validation here only guards the
values that end up in cache paths.
"""

import re
from typing import Union

from pydantic import BaseModel, ConfigDict, field_validator

from .constants import DIGEST_ALGORITHM

_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_OBJECT_ID = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


def _validate_sha256(value: str) -> str:
    """Normalize a SHA256 value to bare lower-case hex.

    Accepts either ``<hex>`` or ``sha256:<hex>``.

    Raises:
        ValueError: If the value is not 64 hex characters

    Security:
        The hex string becomes part of the cache path, so anything other than
        hex digits (separators, dots) is rejected here.
    """
    hex_part = value.strip().lower()
    if ":" in hex_part:
        scheme, hex_part = hex_part.split(":", 1)
        if scheme != DIGEST_ALGORITHM:
            raise ValueError(f"Invalid digest scheme: {value!r}")
    if not _HEX64.fullmatch(hex_part):
        raise ValueError(f"Invalid sha256 hex (must be 64 hex chars): {hex_part!r}")
    return hex_part


class RemoteFile(BaseModel):
    """A remote file pinned by its expected SHA256.

    Two descriptors with the same URI but different hashes are different
    cache entries.
    """
    model_config = ConfigDict(frozen=True)

    uri: str      # http(s):// or file:// location
    sha256: str   # bare lower-case hex

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("uri must not be empty")
        return v.strip()

    @field_validator("sha256")
    @classmethod
    def validate_sha256(cls, v: str) -> str:
        return _validate_sha256(v)

    @property
    def digest(self) -> str:
        """Expected digest in ``sha256:<hex>`` form."""
        return f"{DIGEST_ALGORITHM}:{self.sha256}"


class GitCommit(BaseModel):
    """A git repository pinned at a full commit id."""
    model_config = ConfigDict(frozen=True)

    url: str
    commit: str   # 40 (sha1) or 64 (sha256) hex chars

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("url must not be empty")
        return v.strip()

    @field_validator("commit")
    @classmethod
    def validate_commit(cls, v: str) -> str:
        commit = v.strip().lower()
        if not _OBJECT_ID.fullmatch(commit):
            raise ValueError(f"commit must be a full 40 or 64 char hex object id, got {v!r}")
        return commit


Artifact = Union[RemoteFile, GitCommit]


__all__ = ["Artifact", "GitCommit", "RemoteFile"]

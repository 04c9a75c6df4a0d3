"""Cache key derivation.

Keys are relative paths under the cache root. They are derived from content
identity only (the expected hash, or repository + commit), never from a URI
path or a server-supplied filename.
"""

from pathlib import PurePosixPath

from .constants import DIGEST_ALGORITHM, GIT_DIR, OBJECTS_DIR
from .hashing import compute_composite_digest
from .models import Artifact, GitCommit, RemoteFile


def resolve(artifact: Artifact) -> PurePosixPath:
    """Map an artifact to its cache-root-relative path.

    Layout:
        objects/sha256/ab/cd/<full_sha256_hex>   (remote files)
        git/ef/<sha256(url, commit)>             (git checkouts)

    Raises:
        TypeError: If ``artifact`` is not a known descriptor type
    """
    if isinstance(artifact, RemoteFile):
        hex_part = artifact.sha256
        # Shard by first 4 hex characters for filesystem performance
        return PurePosixPath(OBJECTS_DIR, DIGEST_ALGORITHM, hex_part[:2], hex_part[2:4], hex_part)
    if isinstance(artifact, GitCommit):
        key = compute_composite_digest("GIT", (artifact.url, artifact.commit))
        return PurePosixPath(GIT_DIR, key[:2], key)
    raise TypeError(f"Unsupported artifact type: {type(artifact).__name__}")


__all__ = ["resolve"]

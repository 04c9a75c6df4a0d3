"""Shared test fixtures and utilities."""

import hashlib
import shutil
import subprocess
from pathlib import Path

import pytest

from depcache.models import GitCommit, RemoteFile
from depcache.store import CacheStore
from depcache.tasks import CacheTasks

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def run_git(argv, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


@pytest.fixture
def cache_root(tmp_path):
    """Cache root sandboxed inside the test's temporary directory."""
    return tmp_path / "cache"


@pytest.fixture
def store(cache_root):
    return CacheStore(root=cache_root, lock_timeout=5)


@pytest.fixture
def tasks(store):
    return CacheTasks(store)


@pytest.fixture
def make_remote(tmp_path):
    """Factory fixture: write a source file and return a file:// RemoteFile for it."""
    def _make(content: bytes = b"cxx_library(name = 'a')\n", name: str = "BUCK", sha256: str = None):
        source_dir = tmp_path / "upstream"
        source_dir.mkdir(exist_ok=True)
        source = source_dir / name
        source.write_bytes(content)
        return RemoteFile(uri=source.as_uri(), sha256=sha256 or sha256_hex(content))
    return _make


@pytest.fixture
def git_repo(tmp_path):
    """A local git repository with two commits; returns (path, first, second)."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    path = tmp_path / "upstream-repo"
    path.mkdir()
    run_git(["init", "--quiet"], cwd=path)
    run_git(["config", "user.email", "depcache@example.com"], cwd=path)
    run_git(["config", "user.name", "Depcache Test"], cwd=path)

    (path / "BUCK").write_text("cxx_library(name = 'd')\n")
    run_git(["add", "BUCK"], cwd=path)
    run_git(["commit", "--quiet", "-m", "initial"], cwd=path)
    first = run_git(["rev-parse", "HEAD"], cwd=path)

    (path / "src").mkdir()
    (path / "src" / "d.cpp").write_text("int d() { return 4; }\n")
    run_git(["add", "src/d.cpp"], cwd=path)
    run_git(["commit", "--quiet", "-m", "add source"], cwd=path)
    second = run_git(["rev-parse", "HEAD"], cwd=path)

    return path, first, second


@pytest.fixture
def git_commit(git_repo):
    path, first, _ = git_repo
    return GitCommit(url=str(path), commit=first)

"""Test CacheStore population, validation and concurrency."""

import os
import stat
import threading
import time
from unittest.mock import Mock

import portalocker
import pytest

from depcache.errors import (
    DownloadError,
    DownloadFileError,
    HashMismatchError,
    LockTimeoutError,
)
from depcache.events import (
    CacheHit,
    CachePublished,
    DownloadProgress,
    FetchStarted,
    collect,
    transfer_events,
)
from depcache.fetchers import FileFetcher, make_fetcher
from depcache.models import GitCommit, RemoteFile
from depcache.store import CacheStore

from conftest import requires_git, sha256_hex


def leftovers(directory):
    """Staging and partial files left beside cache entries."""
    return [p for p in directory.iterdir() if p.name.startswith(".")]


class SlowFileFetcher:
    """File fetcher that pauses before transferring, to force overlap between threads."""

    def __init__(self, delay):
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, artifact):
        with self._lock:
            self.calls += 1
        return self

    def fetch(self, artifact, destination):
        time.sleep(self.delay)
        return (yield from FileFetcher().fetch(artifact, destination))


class TestEnsureFile:
    """Test ensure() for remote files."""

    def test_populates_cache(self, store, make_remote):
        remote = make_remote(b"cxx_library(name = 'a')\n")

        events = collect(store.ensure(remote))

        path = store.path_for(remote)
        assert path.read_bytes() == b"cxx_library(name = 'a')\n"
        assert isinstance(events[0], FetchStarted)
        assert isinstance(events[-1], CachePublished)
        assert events[-1].path == str(path)
        assert any(isinstance(e, DownloadProgress) for e in events)
        assert store.has(remote)

    def test_returns_cache_path(self, store, make_remote):
        remote = make_remote()
        gen = store.ensure(remote)
        result = None
        while True:
            try:
                next(gen)
            except StopIteration as stop:
                result = stop.value
                break

        assert result == store.path_for(remote)

    def test_entry_is_read_only(self, store, make_remote):
        remote = make_remote()
        collect(store.ensure(remote))

        mode = stat.S_IMODE(store.path_for(remote).stat().st_mode)
        assert mode == 0o444

    def test_hit_does_not_fetch(self, cache_root, make_remote):
        remote = make_remote()
        factory = Mock(side_effect=make_fetcher)
        store = CacheStore(root=cache_root, fetcher_factory=factory)

        collect(store.ensure(remote))
        assert factory.call_count == 1

        events = collect(store.ensure(remote))

        assert events == [CacheHit(path=str(store.path_for(remote)))]
        assert transfer_events(events) == []
        assert factory.call_count == 1

    def test_hit_survives_source_removal(self, store, make_remote, tmp_path):
        remote = make_remote()
        collect(store.ensure(remote))

        (tmp_path / "upstream" / "BUCK").unlink()

        events = collect(store.ensure(remote))
        assert isinstance(events[0], CacheHit)

    def test_lazy(self, store, make_remote):
        """Nothing is created until the stream is iterated."""
        remote = make_remote()
        store.ensure(remote)

        assert not store.root.exists()

    def test_unknown_artifact_raises_on_iteration(self, store):
        gen = store.ensure("https://example.com/BUCK")
        with pytest.raises(TypeError):
            next(gen)

    def test_root_is_plain_os_path(self, cache_root, make_remote):
        store = CacheStore(root=str(cache_root))
        remote = make_remote()

        collect(store.ensure(remote))

        assert store.root == cache_root
        assert store.path_for(remote).parent.parent.parent.parent.parent == cache_root
        assert store.path_for(remote).is_file()

    def test_has_never_fetches(self, store, make_remote):
        remote = make_remote()
        assert not store.has(remote)
        assert not store.root.exists()


class TestSelfHealing:
    """Test that invalid entries are replaced, never served."""

    def test_tampered_entry_is_refetched(self, store, make_remote):
        remote = make_remote(b"original\n")
        collect(store.ensure(remote))
        path = store.path_for(remote)

        os.chmod(path, 0o644)
        path.write_bytes(b"tampered\n")
        assert not store.has(remote)

        events = collect(store.ensure(remote))

        assert any(isinstance(e, FetchStarted) for e in events)
        assert path.read_bytes() == b"original\n"
        assert store.has(remote)

    def test_deleted_entry_is_refetched(self, store, make_remote):
        remote = make_remote()
        collect(store.ensure(remote))
        store.path_for(remote).unlink()

        events = collect(store.ensure(remote))

        assert isinstance(events[-1], CachePublished)
        assert store.has(remote)

    def test_truncated_entry_is_refetched(self, store, make_remote):
        remote = make_remote(b"0123456789" * 100)
        path = store.path_for(remote)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"0123456789")

        collect(store.ensure(remote))

        assert path.read_bytes() == b"0123456789" * 100

    def test_directory_at_entry_path_is_replaced(self, store, make_remote):
        remote = make_remote(b"cxx_library(name = 'f')\n")
        path = store.path_for(remote)
        (path / "nested").mkdir(parents=True)
        (path / "nested" / "junk").write_bytes(b"junk")
        assert not store.has(remote)

        events = collect(store.ensure(remote))

        assert isinstance(events[-1], CachePublished)
        assert path.is_file()
        assert path.read_bytes() == b"cxx_library(name = 'f')\n"
        assert leftovers(path.parent) == []


class TestFailures:
    """Test that failed fetches publish nothing."""

    def test_hash_mismatch(self, store, make_remote):
        remote = make_remote(b"actual content", sha256=sha256_hex(b"expected content"))

        with pytest.raises(DownloadFileError) as exc_info:
            collect(store.ensure(remote))

        cause = exc_info.value.__cause__
        assert isinstance(cause, HashMismatchError)
        assert cause.expected == remote.digest
        assert cause.actual == "sha256:" + sha256_hex(b"actual content")
        path = store.path_for(remote)
        assert not path.exists()
        assert leftovers(path.parent) == []

    def test_transfer_error(self, store, tmp_path):
        remote = RemoteFile(uri=(tmp_path / "absent").as_uri(), sha256="0" * 64)

        with pytest.raises(DownloadError):
            collect(store.ensure(remote))

        assert not store.path_for(remote).exists()

    def test_cancelled_fetch_publishes_nothing(self, store, make_remote):
        remote = make_remote(b"x" * 10, name="big")
        store.fetcher_factory = lambda artifact: FileFetcher(chunk_size=2)
        gen = store.ensure(remote)

        for event in gen:
            if isinstance(event, DownloadProgress):
                break
        gen.close()

        path = store.path_for(remote)
        assert not path.exists()
        assert leftovers(path.parent) == []

        # Lock was released; a fresh attempt succeeds
        collect(store.ensure(remote))
        assert store.has(remote)

    def test_lock_timeout(self, cache_root, make_remote):
        remote = make_remote()
        store = CacheStore(root=cache_root, lock_timeout=0.2)
        path = store.path_for(remote)
        path.parent.mkdir(parents=True)

        with portalocker.Lock(str(path) + ".lock", "w", timeout=1):
            with pytest.raises(LockTimeoutError):
                collect(store.ensure(remote))

        assert not path.exists()


class TestConcurrency:
    """Test concurrent ensure() calls for the same key."""

    def test_single_fetch_per_key(self, cache_root, make_remote):
        remote = make_remote(b"shared dependency\n")
        factory = SlowFileFetcher(delay=0.3)
        store = CacheStore(root=cache_root, fetcher_factory=factory, lock_timeout=10)
        results = []
        errors = []

        def worker():
            try:
                results.append(collect(store.ensure(remote)))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert factory.calls == 1
        assert len(results) == 4
        assert sum(isinstance(r[-1], CachePublished) for r in results) == 1
        assert sum(isinstance(r[-1], CacheHit) for r in results) == 3
        assert store.path_for(remote).read_bytes() == b"shared dependency\n"

    def test_distinct_keys_do_not_block(self, store, make_remote):
        a = make_remote(b"a\n", name="a")
        b = make_remote(b"b\n", name="b")

        gen_a = store.ensure(a)
        next(gen_a)  # holds the lock for a

        collect(store.ensure(b))
        collect(gen_a)

        assert store.has(a)
        assert store.has(b)


@requires_git
class TestEnsureCheckout:
    """Test ensure() for git commits."""

    def test_populates_checkout(self, store, git_commit):
        events = collect(store.ensure(git_commit))

        path = store.path_for(git_commit)
        assert (path / "BUCK").exists()
        assert (path / ".git").exists()
        assert isinstance(events[-1], CachePublished)
        assert store.has(git_commit)

    def test_second_ensure_is_hit(self, store, git_commit):
        collect(store.ensure(git_commit))

        events = collect(store.ensure(git_commit))

        assert len(events) == 1
        assert isinstance(events[0], CacheHit)

    def test_tampered_checkout_is_recloned(self, store, git_commit):
        collect(store.ensure(git_commit))
        path = store.path_for(git_commit)
        (path / "BUCK").write_text("tampered\n")
        (path / "stray.txt").write_text("x")
        assert not store.has(git_commit)

        events = collect(store.ensure(git_commit))

        assert isinstance(events[-1], CachePublished)
        assert (path / "BUCK").read_text() == "cxx_library(name = 'd')\n"
        assert not (path / "stray.txt").exists()
        assert store.has(git_commit)
        assert leftovers(path.parent) == []

    def test_different_commits_have_separate_entries(self, store, git_repo, git_commit):
        repo, _, second = git_repo
        later = GitCommit(url=str(repo), commit=second)

        collect(store.ensure(git_commit))
        collect(store.ensure(later))

        assert not (store.path_for(git_commit) / "src").exists()
        assert (store.path_for(later) / "src" / "d.cpp").exists()

"""Git fetcher: clone a repository and check out a pinned commit."""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Generator, List, Optional

from ..errors import CheckoutError
from ..events import Event, FetchCompleted, FetchStarted, GitProgress
from ..models import GitCommit

logger = logging.getLogger(__name__)


def run_git(
    argv: List[str],
    cwd: Optional[Path] = None,
    git: str = "git",
) -> subprocess.CompletedProcess:
    """Run a git command without raising on non-zero exit.

    Terminal prompts are disabled so an unreachable or private remote fails
    immediately instead of waiting for credentials.

    Raises:
        OSError: If the git executable cannot be started
    """
    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    return subprocess.run(
        [git, *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
        env=env,
    )


class GitFetcher:
    """
    Clones ``artifact.url`` and checks out ``artifact.commit``.

    There is no byte-level hash check: checking out the exact commit id is
    itself the integrity guarantee, and ``rev-parse HEAD`` is verified
    against it before the tree is moved into place.
    """

    def __init__(self, git: str = "git"):
        self.git = git

    def fetch(self, artifact: GitCommit, destination: Path) -> Generator[Event, None, str]:
        """
        Clone and check out into ``destination``.

        ``destination`` must not exist (or be an empty directory).

        Raises:
            CheckoutError: If clone, checkout or verification fails
        """
        url, commit = artifact.url, artifact.commit
        yield FetchStarted(source=url, destination=str(destination))

        destination.parent.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix=f".{destination.name}.partial-", dir=destination.parent))
        published = False
        try:
            yield GitProgress(source=url, stage="clone")
            logger.info("Cloning %s", url)
            self._git(artifact, "clone", ["clone", "--quiet", url, str(workdir)])

            yield GitProgress(source=url, stage="checkout")
            logger.debug("Checking out %s in %s", commit, workdir)
            self._git(artifact, "checkout", ["checkout", "--quiet", "--detach", commit], cwd=workdir)

            head = self._git(artifact, "verify", ["rev-parse", "HEAD"], cwd=workdir)
            if head != commit:
                raise CheckoutError(url, commit, "verify", f"HEAD is {head}")

            os.replace(workdir, destination)
            published = True
        finally:
            if not published:
                shutil.rmtree(workdir, ignore_errors=True)

        yield FetchCompleted(source=url, destination=str(destination), digest=commit)
        return commit

    def _git(self, artifact: GitCommit, stage: str, argv: List[str], cwd: Optional[Path] = None) -> str:
        try:
            completed = run_git(argv, cwd=cwd, git=self.git)
        except OSError as e:
            raise CheckoutError(artifact.url, artifact.commit, stage, str(e)) from e
        if completed.returncode != 0:
            raise CheckoutError(artifact.url, artifact.commit, stage, completed.stderr.strip())
        return completed.stdout.strip()

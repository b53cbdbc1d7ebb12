"""Git working copy operations.

A thin object wrapper over the git CLI so callers can say what they want done
to a checkout (clone, fetch, check out, look up refs) without building
command lines. Network failures surface as FetchFailed; a checkout whose HEAD
cannot be read surfaces as CorruptCheckout.
"""

from __future__ import annotations

from pathlib import Path

from .errors import CorruptCheckout, FetchFailed, GitError
from .shell import git, verb

NOT_FOUND_MARKERS = ("couldn't find remote ref", "not our ref", "no such remote ref")


class GitRepo:
    """A git working copy at ``path``.

    Args:
        path: Working copy directory.
        timeout: Seconds allowed for any single network operation.
    """

    def __init__(self, path: Path, timeout: float | None = None) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"GitRepo({str(self.path)!r})"

    def _git(self, *args: str, check: bool = True) -> str:
        return git(*args, cwd=self.path, check=check)

    def _net(self, *args: str) -> str:
        try:
            return git(*args, cwd=self.path, timeout=self.timeout)
        except GitError as err:
            if is_missing_ref(err):
                raise
            raise FetchFailed(str(err)) from err

    @classmethod
    def clone(cls, url: str, path: Path, timeout: float | None = None) -> GitRepo:
        """Clone ``url`` into ``path``.

        Raises:
            FetchFailed: If the clone fails.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        verb("cloning", url, "to", path)
        try:
            git("clone", "--quiet", url, str(path), timeout=timeout)
        except GitError as err:
            raise FetchFailed(str(err)) from err
        return cls(path, timeout)

    def exists(self) -> bool:
        return (self.path / ".git").exists()

    def head(self) -> str:
        """Commit hash HEAD points at.

        Raises:
            CorruptCheckout: If HEAD cannot be read.
        """
        # without this check git would walk up and report an enclosing repository
        if not self.exists():
            raise CorruptCheckout(f"{self.path}: not a git repository")
        try:
            return self._git("rev-parse", "--verify", "HEAD^{commit}")
        except GitError as err:
            raise CorruptCheckout(f"{self.path}: {err.stderr}") from err

    def resolve(self, rev: str) -> str | None:
        """Commit hash for ``rev``, or None if it doesn't name a commit."""
        out = self._git("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", check=False)
        return out or None

    def tags(self) -> list[str]:
        out = self._git("tag", "--list")
        return out.splitlines() if out else []

    def tags_at(self, rev: str) -> list[str]:
        out = self._git("tag", "--points-at", rev)
        return out.splitlines() if out else []

    def is_shallow(self) -> bool:
        return self._git("rev-parse", "--is-shallow-repository") == "true"

    def set_remote(self, url: str) -> None:
        self._git("remote", "set-url", "origin", url)

    def fetch_tags(self) -> None:
        self._net("fetch", "--quiet", "--force", "--tags", "origin")

    def fetch_branch(self, branch: str, depth: int | None = None) -> None:
        """Update refs/remotes/origin/<branch> to the remote tip.

        Raises:
            GitError: With a missing-ref message if the branch doesn't exist.
            FetchFailed: On any other failure.
        """
        args = ["fetch", "--quiet"]
        if depth is not None:
            args.append(f"--depth={depth}")
        args += ["origin", f"+refs/heads/{branch}:refs/remotes/origin/{branch}"]
        self._net(*args)

    def fetch_all(self, remote: str = "origin", unshallow: bool = False) -> None:
        """Fetch every branch and tag from ``remote`` (a name, URL or path)."""
        args = ["fetch", "--quiet", "--tags", remote]
        if unshallow:
            args.insert(2, "--unshallow")
        self._net(*args)

    def fetch_default(self, depth: int | None = None) -> str:
        """Fetch the remote's default branch and return its tip commit."""
        args = ["fetch", "--quiet"]
        if depth is not None:
            args.append(f"--depth={depth}")
        args += ["origin", "HEAD"]
        self._net(*args)
        sha = self.resolve("FETCH_HEAD")
        if sha is None:
            raise FetchFailed(f"{self.path}: remote has no default branch")
        return sha

    def checkout(self, rev: str) -> None:
        """Force the working tree to ``rev``, discarding local changes."""
        self._git("checkout", "--quiet", "--force", "--detach", rev)


def is_missing_ref(err: GitError) -> bool:
    """True when git failed because the requested remote ref doesn't exist."""
    stderr = err.stderr.lower()
    return any(marker in stderr for marker in NOT_FOUND_MARKERS)

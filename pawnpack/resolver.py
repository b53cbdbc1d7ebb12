"""Version ref resolution.

Turns a DependencyReference plus a local checkout into the commit that
should be checked out. Precedence, first match wins:

1. exact tag
2. highest tag satisfying the selector, when it is a semver constraint
3. branch, fetched to its remote tip
4. commit hash, fetching more history until it is present
5. no selector: the default branch tip
"""

from __future__ import annotations

import re

from .errors import GitError, RefNotFound
from .models import DependencyReference, SelectorKind
from .repo import GitRepo, is_missing_ref
from .shell import verb
from .versions import parse_constraint

# history depth fetched into shallow clones when looking for a branch
BRANCH_FETCH_DEPTH = 1000

_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")
# characters git refuses in ref names; "^1.2" style selectors can't be branches
_BRANCH_RE = re.compile(r"^(?!.*\.\.)(?!/)(?!.*/$)[^\s~^:?*\[\\]+$")


def resolve_revision(repo: GitRepo, ref: DependencyReference) -> str:
    """Compute the commit to check out for ``ref``.

    Args:
        repo: Working copy of the dependency; fetched into as needed.
        ref: The dependency reference being synchronized.

    Returns:
        Full commit hash.

    Raises:
        RefNotFound: If the selector names nothing, even after fetching.
        FetchFailed: On network or authentication failures.
    """
    selector = ref.selector

    if ref.kind is SelectorKind.NONE:
        verb(ref, "no version selector, using default branch tip")
        return repo.fetch_default()

    if ref.kind in (SelectorKind.CONSTRAINT, SelectorKind.REF):
        sha = _tag(repo, selector)
        if sha:
            verb(ref, "resolved tag", selector)
            return sha
        if ref.kind is SelectorKind.CONSTRAINT:
            best = parse_constraint(selector).best(repo.tags())
            if best:
                verb(ref, "constraint", selector, "matched tag", best)
                return repo.resolve(f"refs/tags/{best}") or _missing(ref)

    if ref.kind in (SelectorKind.CONSTRAINT, SelectorKind.REF, SelectorKind.BRANCH):
        sha = _branch(repo, selector)
        if sha:
            verb(ref, "resolved branch", selector)
            return sha

    if ref.kind in (SelectorKind.CONSTRAINT, SelectorKind.REF, SelectorKind.COMMIT) and _COMMIT_RE.match(selector):
        sha = _commit(repo, selector)
        if sha:
            verb(ref, "resolved commit", selector)
            return sha

    return _missing(ref)


def _missing(ref: DependencyReference) -> str:
    raise RefNotFound(f"{ref}: no tag, branch or commit named {ref.selector!r}")


def _tag(repo: GitRepo, tag: str) -> str | None:
    sha = repo.resolve(f"refs/tags/{tag}")
    if sha:
        return sha
    repo.fetch_tags()
    return repo.resolve(f"refs/tags/{tag}")


def _branch(repo: GitRepo, branch: str) -> str | None:
    if not _BRANCH_RE.match(branch):
        return None
    depth = BRANCH_FETCH_DEPTH if repo.is_shallow() else None
    try:
        repo.fetch_branch(branch, depth=depth)
    except GitError as err:
        if is_missing_ref(err):
            return None
        raise
    return repo.resolve(f"refs/remotes/origin/{branch}")


def _commit(repo: GitRepo, commit: str) -> str | None:
    sha = repo.resolve(commit)
    if sha:
        return sha
    repo.fetch_all(unshallow=repo.is_shallow())
    return repo.resolve(commit)

"""Shared package cache.

Every dependency is cloned once into ``<cache>/packages/<owner>/<repo>`` and
vendored copies are cloned from there. The cached copy tracks the remote's
default branch, so its manifest is always the latest one published.

There is no locking: two processes ensuring the same dependency at once can
race on the same cache directory.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .config import Context
from .errors import CorruptCheckout
from .manifest import load_package
from .models import DependencyReference, PackageDescriptor
from .repo import GitRepo
from .shell import verb, warn


def cache_path(ctx: Context, ref: DependencyReference) -> Path:
    return ctx.cache_dir / "packages" / ref.owner / ref.repo


def ensure_cached(ctx: Context, ref: DependencyReference, force: bool = False) -> GitRepo:
    """Make sure a usable clone of ``ref`` exists in the cache.

    Args:
        ctx: Runtime settings (cache location, mirrors, timeouts).
        ref: Dependency to cache; only owner/repo/site matter.
        force: Refresh an existing clone from the remote: all tags, plus the
               default branch tip checked out.

    Returns:
        The cached working copy.

    Raises:
        FetchFailed: If cloning or refreshing fails.
    """
    path = cache_path(ctx, ref)
    repo = GitRepo(path, ctx.git_timeout)

    if path.exists():
        try:
            repo.head()
        except CorruptCheckout as err:
            warn(ref, "cached copy is corrupt, re-cloning:", err)
            shutil.rmtree(path)
        else:
            if force:
                verb(ref, "refreshing cached copy")
                repo.set_remote(ctx.clone_url(ref))
                repo.fetch_all()
                repo.checkout(repo.fetch_default())
            return repo

    return GitRepo.clone(ctx.clone_url(ref), path, ctx.git_timeout)


def load_cached_package(ctx: Context, ref: DependencyReference) -> PackageDescriptor | None:
    """Load the manifest of the cached copy, if one has been cloned.

    Raises:
        ManifestError: If the cached manifest exists but cannot be parsed.
    """
    path = cache_path(ctx, ref)
    if not path.is_dir():
        return None
    return load_package(path)

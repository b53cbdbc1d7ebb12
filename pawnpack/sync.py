"""Repository synchronization.

Brings each vendored dependency to the revision its reference asks for:

| Local state                  | Action                                          |
|------------------------------|-------------------------------------------------|
| no checkout                  | clone from the cache (cloning the cache first)  |
| checkout with unreadable HEAD| delete, then as above                           |
| checkout with readable HEAD  | resolve and check out; on failure retry once    |
|                              | forced: refresh the cache, pull full history    |

After the checkout, resource bundles are installed from the *cached*
manifest, since an old pinned revision may predate the manifest fields that
describe them.
"""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable

from pydantic import BaseModel, Field

from .cache import ensure_cached, load_cached_package
from .config import Context
from .errors import (
    CorruptCheckout,
    DeadlineExceeded,
    FetchFailed,
    GitError,
    ManifestError,
    PawnpackError,
    RefNotFound,
)
from .graph import DependencyWalker, vendor_dir
from .manifest import fetch_remote_package, load_package
from .models import DependencyReference, PackageDescriptor, ResolvedDependencySet, SelectorKind
from .repo import GitRepo
from .resolver import resolve_revision
from .resources import install_resource
from .shell import info, verb, warn
from .versions import parse_constraint

RETRY_DELAY = 0.1


class Synchronizer:
    """Ensures dependencies of one root package inside its vendor directory."""

    def __init__(self, ctx: Context, root: PackageDescriptor) -> None:
        self.ctx = ctx
        self.root = root
        self.vendor = vendor_dir(root)

    def ensure(self, ref: DependencyReference, force: bool = False) -> list[str]:
        """Check out ``ref`` at its required revision and install its resources.

        Args:
            ref: Dependency to synchronize.
            force: Skip the plain update and go straight to a forced refresh.

        Returns:
            Include directories contributed by the dependency's resources.

        Raises:
            RefNotFound, FetchFailed: If the revision can't be reached even
                after a forced refresh.
            ExtractionFailed: If a resource can't be installed.
        """
        dep_dir = self.vendor / ref.repo
        repo = GitRepo(dep_dir, self.ctx.git_timeout)

        if dep_dir.exists():
            try:
                repo.head()
            except CorruptCheckout as err:
                warn(ref, "checkout is corrupt, removing it:", err)
                shutil.rmtree(dep_dir)

        if not dep_dir.exists():
            repo = self._clone(ref)

        try:
            sha = self.update_repo_state(repo, ref, force)
        except (RefNotFound, FetchFailed, GitError) as err:
            if force:
                raise
            warn(ref, "update failed, retrying with a forced refresh:", err)
            sha = self.update_repo_state(repo, ref, True)

        return self.ensure_resources(release_reference(repo, ref, sha))

    def _clone(self, ref: DependencyReference) -> GitRepo:
        cached = ensure_cached(self.ctx, ref)
        info(ref, "installing from cache")
        repo = GitRepo.clone(str(cached.path.resolve()), self.vendor / ref.repo, self.ctx.git_timeout)
        repo.set_remote(self.ctx.clone_url(ref))
        return repo

    def update_repo_state(self, repo: GitRepo, ref: DependencyReference, force: bool) -> str:
        """Resolve ``ref`` in ``repo`` and check the result out.

        With ``force`` the cached copy is refreshed from the remote first and
        the working copy pulls its full history from it.
        """
        if force:
            cached = ensure_cached(self.ctx, ref, force=True)
            repo.fetch_all(remote=str(cached.path.resolve()), unshallow=repo.is_shallow())

        sha = resolve_revision(repo, ref)
        repo.checkout(sha)
        verb(ref, "checked out", sha[:12])
        return sha

    def ensure_resources(self, ref: DependencyReference) -> list[str]:
        """Install platform-matching resources that declare includes."""
        pkg = self._resource_package(ref)
        if pkg is None:
            return []

        paths: list[str] = []
        for res in pkg.resources:
            if not res.matches(self.ctx.platform) or not res.includes:
                continue
            dest = self.vendor / res.path(ref.repo)
            install_resource(self.ctx, ref, res, dest)
            paths.append(str(dest))
        return paths

    def _resource_package(self, ref: DependencyReference) -> PackageDescriptor | None:
        try:
            pkg = load_cached_package(self.ctx, ref)
        except ManifestError as err:
            verb(ref, "failed to read cached package definition:", err)
            pkg = None
        if pkg is not None:
            return pkg

        try:
            pkg = load_package(self.vendor / ref.repo)
        except ManifestError as err:
            verb(ref, "failed to read local package definition:", err)
            pkg = None
        if pkg is not None:
            verb(ref, "using local package definition for resources")
            return pkg

        try:
            return fetch_remote_package(self.ctx, ref)
        except (FetchFailed, ManifestError) as err:
            verb(ref, "failed to fetch remote package definition:", err)
            return None


def release_reference(repo: GitRepo, ref: DependencyReference, sha: str) -> DependencyReference:
    """Pin a constraint selector to the tag that was checked out.

    Release lookups and the asset cache are keyed by tag name, and a
    constraint such as "^1.2" is not one.
    """
    if ref.kind is not SelectorKind.CONSTRAINT:
        return ref
    tags = repo.tags_at(sha)
    if ref.selector in tags:
        return ref
    best = parse_constraint(ref.selector).best(tags)
    if best is None:
        return ref
    verb(ref, "releases looked up under tag", best)
    return ref.with_selector(best, SelectorKind.CONSTRAINT)


class EnsureReport(BaseModel):
    """Outcome of ensure_dependencies().

    Attributes:
        resolved: The dependency set the pass worked from, with resource
                  include paths found during synchronization merged in.
        ensured: Dependencies now at their required revision.
        failed: owner/repo → error message, for dependencies that could not be ensured.
    """

    resolved: ResolvedDependencySet
    ensured: list[DependencyReference] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def ensure_dependencies(
    ctx: Context,
    root: PackageDescriptor,
    force: bool = False,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> EnsureReport:
    """Resolve ``root``'s dependency graph and synchronize every dependency.

    Dependencies are synchronized one at a time in discovery order. A failing
    dependency is retried once, then logged and skipped so the rest still
    get synchronized.

    Args:
        ctx: Runtime settings.
        root: The package whose dependencies are ensured.
        force: Refresh every dependency from its remote.
        deadline: ``clock()`` value after which no further dependency is
                  started. Defaults to now + ``ctx.ensure_timeout``.
        clock: Monotonic time source.

    Raises:
        DeadlineExceeded: If the deadline passes before all dependencies are done.
    """
    if deadline is None:
        deadline = clock() + ctx.ensure_timeout

    resolved = DependencyWalker.for_package(ctx, root, fetch_missing=True).resolve(root)
    sync = Synchronizer(ctx, root)
    report = EnsureReport(resolved=resolved)

    for ref in resolved.all_dependencies:
        if clock() > deadline:
            raise DeadlineExceeded(f"gave up after {len(report.ensured)} of {len(resolved.all_dependencies)} dependencies")
        try:
            paths = _ensure_with_retry(sync, ref, force)
        except (PawnpackError, OSError) as err:
            warn(ref, "failed to ensure:", err)
            report.failed[ref.key] = str(err)
            continue
        report.ensured.append(ref)
        for path in paths:
            if path not in resolved.all_include_paths:
                resolved.all_include_paths.append(path)
    return report


def _ensure_with_retry(sync: Synchronizer, ref: DependencyReference, force: bool) -> list[str]:
    try:
        return sync.ensure(ref, force)
    except (PawnpackError, OSError) as err:
        verb(ref, "ensure failed, retrying:", err)
        time.sleep(RETRY_DELAY)
    return sync.ensure(ref, force)

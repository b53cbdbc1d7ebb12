"""Dependency graph walking.

Walks a package's transitive dependencies depth-first and flattens them into
a ResolvedDependencySet. A single visited set, keyed on owner/repo and seeded
with the root package, is shared across the whole walk: that gives
deduplication across diamond dependencies and stops cycles back to the root.

When the same dependency is reached through several packages with different
selectors, the first one discovered is used and later ones are ignored.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from .cache import ensure_cached, load_cached_package
from .config import Context
from .errors import FetchFailed, ManifestError, MalformedReference
from .manifest import VENDOR_DIR, load_package
from .models import DependencyReference, PackageDescriptor, ResolvedDependencySet
from .references import parse_reference, try_parse_reference
from .shell import verb, warn

PackageLoader = Callable[[DependencyReference], PackageDescriptor | None]


def vendor_dir(pkg: PackageDescriptor) -> Path:
    if pkg.vendor is not None:
        return pkg.vendor
    return (pkg.local_path or Path.cwd()) / VENDOR_DIR


def load_dependency_package(
    ctx: Context,
    vendor: Path,
    ref: DependencyReference,
    fetch_missing: bool = False,
) -> PackageDescriptor | None:
    """Find the manifest describing dependency ``ref``.

    Tries the vendored checkout first, then the cached copy. With
    ``fetch_missing``, a dependency that is in neither place is cloned into
    the cache so its manifest can be read.

    Returns:
        The descriptor, or None if the dependency has no readable manifest
        (plain include repositories are common).
    """
    dep_dir = vendor / ref.repo
    if dep_dir.is_dir():
        try:
            pkg = load_package(dep_dir)
        except ManifestError as err:
            verb(ref, "local manifest unreadable, trying cache:", err)
            pkg = None
        if pkg is not None:
            return pkg

    if fetch_missing:
        try:
            ensure_cached(ctx, ref)
        except FetchFailed as err:
            warn(ref, "could not fetch package to read its manifest:", err)
            return None

    try:
        return load_cached_package(ctx, ref)
    except ManifestError as err:
        warn(ref, "cached manifest unreadable:", err)
        return None


class DependencyWalker:
    """Resolves the flattened dependency set of a root package.

    Args:
        ctx: Runtime settings; ``ctx.platform`` selects resource bundles.
        vendor: Directory dependencies are vendored into.
        loader: Returns the descriptor for a dependency, or None.
    """

    def __init__(self, ctx: Context, vendor: Path, loader: PackageLoader) -> None:
        self.ctx = ctx
        self.vendor = vendor
        self.loader = loader

    @classmethod
    def for_package(cls, ctx: Context, root: PackageDescriptor, fetch_missing: bool = False) -> DependencyWalker:
        vendor = vendor_dir(root)
        return cls(ctx, vendor, lambda ref: load_dependency_package(ctx, vendor, ref, fetch_missing))

    def resolve(self, root: PackageDescriptor) -> ResolvedDependencySet:
        """Walk ``root``'s dependencies, then dev dependencies, depth-first."""
        result = ResolvedDependencySet()
        visited = {root.key}
        self._collect_plugins(root, result)
        self._walk(root.dependencies + root.dev_dependencies, visited, result)
        return result

    def _walk(self, deps: list[str], visited: set[str], result: ResolvedDependencySet) -> None:
        for text in deps:
            try:
                ref = parse_reference(text)
            except MalformedReference as err:
                warn(err)
                continue
            if ref.key in visited:
                continue
            visited.add(ref.key)

            if ref.non_semantic:
                warn(ref, "selector is not a semantic version, resolving as a tag or branch name")
            result.all_dependencies.append(ref)

            pkg = self.loader(ref)
            if pkg is None:
                verb(ref, "has no package definition")
                continue

            bundles = [r for r in pkg.resources if r.matches(self.ctx.platform) and r.includes]
            for res in bundles:
                result.all_include_paths.append(str(self.vendor / res.path(ref.repo)))
            if bundles:
                result.resource_backed.add(ref.key)

            self._collect_plugins(pkg, result)
            self._walk(pkg.dependencies, visited, result)

    def _collect_plugins(self, pkg: PackageDescriptor, result: ResolvedDependencySet) -> None:
        for text in pkg.plugins:
            ref = try_parse_reference(text)
            if ref is None:
                verb("plugin", text, "is a local file")
                continue
            if all(p.key != ref.key for p in result.all_plugin_refs):
                result.all_plugin_refs.append(ref)

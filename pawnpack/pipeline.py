"""Ensure and build pipelines: resolve → synchronize → prepare → compile.

This module orchestrates what the command line exposes:
1. ensure: resolve the dependency graph and synchronize every dependency
2. build: prepare a build profile and run the compiler once
3. watch: rebuild on every source change, cancelling superseded builds

Each phase prints a step header; per-dependency problems are reported
inline and never stop the phase.
"""

from __future__ import annotations

import threading
from pathlib import Path

from .build import BuildGeneration, build_args, prepare
from .cancel import CancelToken
from .compiler import compile_config
from .config import Context
from .errors import BuildCancelled, PawnpackError
from .graph import DependencyWalker
from .models import (
    BuildProblem,
    BuildResult,
    BuildSummary,
    PackageDescriptor,
    ProblemSeverity,
    ResolvedDependencySet,
)
from .shell import info, step, warn
from .sync import EnsureReport, ensure_dependencies
from .watch import FileEvent, WatchSession, watch_directory


def ensure_package(ctx: Context, pkg: PackageDescriptor, force: bool = False) -> EnsureReport:
    """Synchronize all of ``pkg``'s dependencies and print a summary."""
    step(f"Ensuring dependencies of {pkg.key if pkg.repo else pkg.local_path}")
    report = ensure_dependencies(ctx, pkg, force=force)

    for ref in report.ensured:
        info("✓", ref)
    for key, message in report.failed.items():
        info("✗", key, "-", message)
    print(f"\n  {len(report.ensured)} ensured, {len(report.failed)} failed")
    return report


def resolve_package(ctx: Context, pkg: PackageDescriptor) -> ResolvedDependencySet:
    """Walk the dependency graph without touching the network."""
    step("Resolving dependency graph")
    resolved = DependencyWalker.for_package(ctx, pkg).resolve(pkg)
    for ref in resolved.all_dependencies:
        marker = " (resources)" if ref.key in resolved.resource_backed else ""
        info(f"{ref}{marker}")
    for ref in resolved.all_plugin_refs:
        info("plugin:", ref)
    for path in resolved.all_include_paths:
        info("include:", path)
    return resolved


def build_once(
    ctx: Context,
    pkg: PackageDescriptor,
    generation: BuildGeneration,
    build_name: str = "",
    do_ensure: bool = True,
    force: bool = False,
    token: CancelToken | None = None,
) -> BuildSummary:
    """Prepare and run one build, counting the attempt.

    Real failures (dependencies, missing input, compiler crash) are recorded
    in the summary rather than raised, so both one-shot and watch callers can
    report them.

    Raises:
        BuildCancelled: If ``token`` fired; the attempt is not counted.
    """
    problems: list[BuildProblem] = []
    result: BuildResult | None = None
    error = ""
    try:
        config = prepare(ctx, pkg, build_name, do_ensure=do_ensure, force=force)
        info("building", config.input, "→", config.output)
        problems, result = compile_config(config, token)
    except BuildCancelled:
        raise
    except PawnpackError as err:
        error = str(err)

    if token is not None and token.cancelled:
        raise BuildCancelled("superseded before completion")
    number = generation.increment()
    return BuildSummary(
        generation=number if number is not None else 0,
        problems=problems,
        result=result,
        error=error,
    )


def print_summary(summary: BuildSummary) -> None:
    for problem in summary.problems:
        print(f"  {problem}")
    if summary.error:
        warn("build failed:", summary.error)
    elif summary.result is not None:
        r = summary.result
        info(f"header {r.header}, code {r.code}, data {r.data}, stack/heap {r.stack_heap}, total {r.total} bytes")
    errors = sum(1 for p in summary.problems if p.severity is not ProblemSeverity.WARNING)
    warnings = len(summary.problems) - errors
    status = "OK" if summary.ok else "FAILED"
    info(f"build #{summary.generation} {status}: {errors} errors, {warnings} warnings")


def build_package(
    ctx: Context,
    pkg: PackageDescriptor,
    generation: BuildGeneration,
    build_name: str = "",
    do_ensure: bool = True,
    force: bool = False,
    dry_run: bool = False,
) -> BuildSummary | None:
    """One-shot build. With ``dry_run``, print the compiler command and stop.

    Returns:
        The build summary, or None for a dry run.
    """
    step(f"Building {build_name or 'default profile'}")
    if dry_run:
        config = prepare(ctx, pkg, build_name, do_ensure=do_ensure, force=force)
        print(" ".join([config.compiler_path, *build_args(config)]))
        return None

    summary = build_once(ctx, pkg, generation, build_name, do_ensure=do_ensure, force=force)
    print_summary(summary)
    return summary


def watch_package(
    ctx: Context,
    pkg: PackageDescriptor,
    generation: BuildGeneration,
    build_name: str = "",
    do_ensure: bool = True,
) -> None:
    """Rebuild ``pkg`` on every source change until interrupted.

    Dependencies are ensured once up front; each rebuild only re-prepares.

    Raises:
        WatcherError: If the filesystem watcher fails.
    """
    if do_ensure:
        ensure_package(ctx, pkg)

    step("Watching for changes (Ctrl+C to stop)")
    session = WatchSession(
        lambda token: build_once(ctx, pkg, generation, build_name, do_ensure=False, token=token)
    )
    printer = threading.Thread(target=_print_results, args=(session,), daemon=True)
    printer.start()

    root = pkg.local_path or Path.cwd()
    entry = str(root / pkg.entry) if pkg.entry else str(root)
    watch_directory(session, root, FileEvent(entry, "modified"))


def _print_results(session: WatchSession) -> None:
    while True:
        print_summary(session.results.get())

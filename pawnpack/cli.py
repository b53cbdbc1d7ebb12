"""CLI entry point for pawnpack."""

from __future__ import annotations

from pathlib import Path

import click
from pydantic import ValidationError

from pawnpack.build import BuildGeneration
from pawnpack.config import Context
from pawnpack.errors import CompilerUnavailable, DeadlineExceeded, DependencyError, ManifestError, WatcherError
from pawnpack.manifest import load_package
from pawnpack.models import PackageDescriptor
from pawnpack.pipeline import build_package, ensure_package, resolve_package, watch_package
from pawnpack.shell import fatal, set_verbose


class State:
    def __init__(self, directory: Path, config: Path | None) -> None:
        self.directory = directory
        self.config = config

    def context(self) -> Context:
        try:
            return Context.load(self.config)
        except ValidationError as err:
            raise click.ClickException(f"Invalid settings file:\n{err}") from err

    def package(self) -> PackageDescriptor:
        try:
            pkg = load_package(self.directory)
        except ManifestError as err:
            raise click.ClickException(str(err)) from err
        if pkg is None:
            raise click.ClickException(
                f"No package definition found in {self.directory}.\n"
                "Create a pawn.json, pawn.yaml or pawn.toml, for example:\n\n"
                '  {"entry": "gamemodes/main.pwn", "output": "gamemodes/main.amx",\n'
                '   "dependencies": ["pawn-lang/samp-stdlib"]}'
            )
        return pkg


@click.group()
@click.version_option(package_name="pawnpack")
@click.option(
    "--dir",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Package directory.",
)
@click.option(
    "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: $PAWNPACK_CONFIG or ~/.config/pawnpack/config.toml).",
)
@click.option("--verbose", is_flag=True, help="Print detailed progress.")
@click.pass_context
def cli(ctx: click.Context, directory: Path, config: Path | None, verbose: bool) -> None:
    """Dependency manager and build runner for Pawn packages."""
    set_verbose(verbose)
    ctx.obj = State(directory.resolve(), config)


@cli.command()
@click.option("--update", is_flag=True, help="Refresh every dependency from its remote.")
@click.pass_obj
def ensure(state: State, update: bool) -> None:
    """Download and check out all dependencies."""
    try:
        report = ensure_package(state.context(), state.package(), force=update)
    except DeadlineExceeded as err:
        fatal(str(err))
        return
    if not report.ok:
        fatal(f"{len(report.failed)} dependencies could not be ensured")


@cli.command()
@click.pass_obj
def deps(state: State) -> None:
    """Show the resolved dependency graph."""
    resolve_package(state.context(), state.package())


@cli.command()
@click.argument("name", required=False, default="")
@click.option("--no-ensure", is_flag=True, help="Don't synchronize dependencies first.")
@click.option("--update", is_flag=True, help="Refresh every dependency from its remote.")
@click.option("--dry-run", is_flag=True, help="Print the compiler command instead of running it.")
@click.option("--watch", is_flag=True, help="Rebuild whenever a source file changes.")
@click.option(
    "--build-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="File holding the build number, incremented after every build.",
)
@click.pass_obj
def build(
    state: State,
    name: str,
    no_ensure: bool,
    update: bool,
    dry_run: bool,
    watch: bool,
    build_file: Path | None,
) -> None:
    """Build the package using build profile NAME (default: first declared)."""
    ctx = state.context()
    pkg = state.package()
    generation = BuildGeneration(build_file)

    if watch:
        try:
            watch_package(ctx, pkg, generation, name, do_ensure=not no_ensure)
        except KeyboardInterrupt:
            click.echo("\nStopped watching.")
        except (WatcherError, DeadlineExceeded) as err:
            fatal(str(err))
        return

    try:
        summary = build_package(
            ctx, pkg, generation, name, do_ensure=not no_ensure, force=update, dry_run=dry_run
        )
    except (DependencyError, DeadlineExceeded, CompilerUnavailable) as err:
        fatal(str(err))
        return
    if summary is not None and not summary.ok:
        fatal("build failed")

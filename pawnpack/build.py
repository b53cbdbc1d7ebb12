"""Build preparation.

Turns a package and a build profile name into a complete BuildConfig: input
and output files, working directory and the ordered include path list
(package, dependencies, resource bundles, caller extras). Also renders the
compiler argument list and keeps the build generation counter file.
"""

from __future__ import annotations

import os
import re
import threading
from collections.abc import Iterable
from pathlib import Path

from .config import Context
from .errors import BuildFileError, DependencyError, NoSuchBuildProfile
from .graph import DependencyWalker, load_dependency_package, vendor_dir
from .models import BuildConfig, CompilerOptions, PackageDescriptor, ResolvedDependencySet
from .shell import verb, warn
from .sync import ensure_dependencies
from .toolchain import DEFAULT_COMPILER_VERSION, resolve_compiler

_NUMERIC_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")


def default_build_config() -> BuildConfig:
    """The profile used when a package declares none (or an unknown one is asked for)."""
    return BuildConfig(
        name="default",
        version=DEFAULT_COMPILER_VERSION,
        options=CompilerOptions(
            debug_level=3,
            require_semicolons=True,
            require_parentheses=True,
            require_escape_sequences=True,
            compatibility_mode=True,
        ),
    )


def select_build_config(pkg: PackageDescriptor, name: str = "") -> BuildConfig:
    """Pick a build profile by name.

    An empty name selects the first declared profile. An unknown name falls
    back to the default profile with a warning; selection never fails.

    Returns:
        A copy of the profile, safe to fill in.
    """
    profiles = pkg.profiles()
    if not name:
        if profiles:
            return profiles[0].model_copy(deep=True)
        return default_build_config()

    for profile in profiles:
        if profile.name == name:
            return profile.model_copy(deep=True)

    warn(NoSuchBuildProfile(f"no build profile named {name!r}, using the default"))
    return default_build_config()


def prepare(
    ctx: Context,
    pkg: PackageDescriptor,
    build_name: str = "",
    do_ensure: bool = True,
    extra_includes: Iterable[str] = (),
    force: bool = False,
) -> BuildConfig:
    """Produce the BuildConfig for one build of ``pkg``.

    Args:
        ctx: Runtime settings.
        pkg: The package being built; ``local_path`` must be set.
        build_name: Profile to use; empty for the package default.
        do_ensure: Synchronize all dependencies first.
        extra_includes: Include directories appended last (lowest precedence).
        force: With ``do_ensure``, refresh every dependency from its remote.

    Raises:
        DependencyError: If ``do_ensure`` is set and any dependency failed.
        CompilerUnavailable: If no compiler can be found for the profile.
    """
    config = select_build_config(pkg, build_name)
    local = pkg.local_path or Path.cwd()

    config.input = _absolute(local, config.input or pkg.entry) if (config.input or pkg.entry) else ""
    config.output = _absolute(local, config.output or pkg.output) if (config.output or pkg.output) else ""
    if config.working_dir:
        config.working_dir = _absolute(local, config.working_dir)
    else:
        config.working_dir = str(Path(config.input).parent) if config.input else str(local)

    if do_ensure:
        report = ensure_dependencies(ctx, pkg, force=force)
        if not report.ok:
            raise DependencyError(report.failed)
        resolved = report.resolved
    else:
        resolved = DependencyWalker.for_package(ctx, pkg).resolve(pkg)

    includes = [_absolute(local, p) for p in config.includes]
    includes.append(str(local))
    includes += dependency_include_paths(ctx, pkg, resolved)
    includes += resolved.all_include_paths
    includes += list(extra_includes)

    config.includes = _dedupe(includes)
    warn_include_collisions(config.includes)
    config.compiler_path = resolve_compiler(ctx, config)
    return config


def dependency_include_paths(ctx: Context, pkg: PackageDescriptor, resolved: ResolvedDependencySet) -> list[str]:
    """One include directory per dependency, in discovery order.

    The directory is the dependency's declared include path, else the
    reference's subpath, else its repository root. Dependencies whose
    includes come from a resource bundle contribute nothing here.
    """
    vendor = vendor_dir(pkg)
    paths: list[str] = []
    for ref in resolved.all_dependencies:
        if ref.key in resolved.resource_backed:
            continue
        dep_dir = vendor / ref.repo
        desc = load_dependency_package(ctx, vendor, ref)
        sub = desc.include_path if desc is not None and desc.include_path else ref.subpath
        paths.append(str(dep_dir / sub) if sub else str(dep_dir))
    return paths


def warn_include_collisions(includes: list[str]) -> dict[str, list[str]]:
    """Warn about .inc files present in more than one include directory.

    The compiler takes the first match, so the earliest directory wins.

    Returns:
        include file name → directories containing it, for every collision.
    """
    seen: dict[str, list[str]] = {}
    for directory in includes:
        path = Path(directory)
        if not path.is_dir():
            continue
        for inc in sorted(path.glob("*.inc")):
            seen.setdefault(inc.name, []).append(directory)

    collisions = {name: dirs for name, dirs in seen.items() if len(dirs) > 1}
    for name, dirs in collisions.items():
        warn(f"include {name} found in {len(dirs)} directories, using {dirs[0]}")
    return collisions


def build_args(config: BuildConfig) -> list[str]:
    """Render the compiler argument list for a prepared config.

    Order: input, working directory, output, options (or raw args), one -i
    per include directory, one NAME=VALUE per constant.
    """
    args = [config.input, f"-D{config.working_dir}", f"-o{config.output}"]
    if config.options is not None:
        args += config.options.to_args()
    else:
        args += config.args
    args += [f"-i{path}" for path in config.includes]
    args += format_constants(config.constants)
    return args


def format_constants(constants: dict[str, str]) -> list[str]:
    """Render constants as compiler definitions.

    Values starting with "$" are read from the environment. Numbers and empty
    values are passed bare, anything else is quoted.
    """
    out: list[str] = []
    for name, value in constants.items():
        if value.startswith("$"):
            resolved = os.environ.get(value[1:], "")
            if not resolved:
                warn(f"build constant {name} refers to unset environment variable {value}")
            value = resolved
        if value == "" or _NUMERIC_RE.match(value):
            out.append(f"{name}={value}")
        else:
            escaped = value.replace('"', '\\"')
            out.append(f'{name}="{escaped}"')
    return out


class BuildGeneration:
    """The persisted count of build attempts.

    The file holds a single non-negative decimal integer. A missing file
    counts as zero and is created. Without a path the count is kept in
    memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._value = 0
        self._lock = threading.Lock()

    def read(self) -> int:
        """Current value.

        Raises:
            BuildFileError: If the file holds anything but a non-negative integer.
        """
        if self.path is None:
            return self._value
        if not self.path.exists():
            self._write(0)
            return 0
        text = self.path.read_text().strip()
        try:
            value = int(text)
        except ValueError as err:
            raise BuildFileError(f"{self.path}: not an integer: {text!r}") from err
        if value < 0:
            raise BuildFileError(f"{self.path}: negative build number {value}")
        return value

    def increment(self) -> int | None:
        """Count one completed build attempt and persist it.

        Failures to read or write the file are logged, not raised, so they
        never invalidate a build that already finished.

        Returns:
            The new value, or None if the file could not be updated.
        """
        with self._lock:
            try:
                value = self.read() + 1
                self._write(value)
            except (OSError, BuildFileError) as err:
                warn("failed to update build number:", err)
                return None
            verb("build number", value)
            return value

    def _write(self, value: int) -> None:
        self._value = value
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(str(value))
        tmp.replace(self.path)


def _absolute(base: Path, path: str) -> str:
    p = Path(path)
    return str(p if p.is_absolute() else base / p)


def _dedupe(paths: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for path in paths:
        if path not in seen:
            seen.add(path)
            out.append(path)
    return out

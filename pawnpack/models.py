"""Data models for pawnpack.

These Pydantic models represent the package manifest, build profiles and the
per-resolution-pass state used throughout the ensure and build pipeline.
"""

from __future__ import annotations

import hashlib
import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .errors import ExtractionFailed

DEFAULT_SITE = "github.com"


class SelectorKind(str, Enum):
    """How the version selector on a reference is interpreted."""

    NONE = "none"
    CONSTRAINT = "constraint"  # ":^1.2.3", ":v1.0.0"
    REF = "ref"  # ":some-tag", tag or branch that is not semver
    BRANCH = "branch"  # "@develop"
    COMMIT = "commit"  # "#a1b2c3d"


_SIGILS = {
    SelectorKind.CONSTRAINT: ":",
    SelectorKind.REF: ":",
    SelectorKind.BRANCH: "@",
    SelectorKind.COMMIT: "#",
}


class DependencyReference(BaseModel):
    """A parsed dependency string.

    Two references are the same graph node when their ``key`` (owner/repo)
    matches, whatever their site, subpath or selector.

    Attributes:
        site: Host serving the repository, "github.com" when omitted.
        owner: Repository owner (user or organisation).
        repo: Repository name without any ".git" suffix.
        subpath: Optional directory inside the repository holding the includes.
        selector: Raw version selector text (tag, constraint, branch or commit).
        kind: How ``selector`` should be resolved.
        ssh_user: Set when the reference was written in scp-style ssh form.
    """

    model_config = ConfigDict(frozen=True)

    site: str = DEFAULT_SITE
    owner: str
    repo: str
    subpath: str = ""
    selector: str = ""
    kind: SelectorKind = SelectorKind.NONE
    ssh_user: str = ""

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def non_semantic(self) -> bool:
        """True when the selector is a tag-or-branch name that is not semver."""
        return self.kind is SelectorKind.REF

    @property
    def tag(self) -> str:
        """The selector when it may name a tag, otherwise an empty string."""
        if self.kind in (SelectorKind.CONSTRAINT, SelectorKind.REF):
            return self.selector
        return ""

    @property
    def url(self) -> str:
        """Clone URL for the repository."""
        if self.ssh_user:
            return f"{self.ssh_user}@{self.site}:{self.owner}/{self.repo}"
        return f"https://{self.site}/{self.owner}/{self.repo}"

    def with_selector(self, selector: str, kind: SelectorKind) -> DependencyReference:
        return self.model_copy(update={"selector": selector, "kind": kind})

    def __str__(self) -> str:
        if self.ssh_user:
            out = f"{self.ssh_user}@{self.site}:{self.owner}/{self.repo}"
        elif self.site == DEFAULT_SITE:
            out = f"{self.owner}/{self.repo}"
        else:
            out = f"{self.site}/{self.owner}/{self.repo}"
        if self.subpath:
            out += f"/{self.subpath}"
        if self.kind is not SelectorKind.NONE:
            out += f"{_SIGILS[self.kind]}{self.selector}"
        return out


class Resource(BaseModel):
    """A platform-scoped bundle of include files and/or plugin binaries.

    Resources are published as release assets. ``name`` is a regular
    expression matched against asset file names; ``includes`` and ``plugins``
    are patterns matched against archive entry names.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    platform: str = ""
    version: str = ""
    archive: bool = False
    includes: list[str] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)
    files: dict[str, str] = Field(default_factory=dict)

    def matches(self, platform: str) -> bool:
        """A resource with no platform applies everywhere."""
        return not self.platform or self.platform == platform

    def path(self, repo: str) -> Path:
        """Vendor-relative directory this resource is extracted into."""
        digest = hashlib.md5(self.name.encode()).hexdigest()[:6]
        return Path(".resources") / f"{repo}-{digest}"

    def asset_pattern(self) -> re.Pattern[str]:
        """Compile ``name``.

        Raises:
            ExtractionFailed: If ``name`` is not a valid regular expression.
        """
        try:
            return re.compile(self.name)
        except re.error as err:
            raise ExtractionFailed(f"invalid resource name pattern {self.name!r}: {err}") from err


class CompilerOptions(BaseModel):
    """Human-readable compiler switches, rendered to flags by ``to_args``."""

    debug_level: int | None = None
    require_semicolons: bool | None = None
    require_parentheses: bool | None = None
    require_escape_sequences: bool | None = None
    compatibility_mode: bool | None = None
    optimization_level: int | None = None
    show_listing: bool | None = None
    show_annotated_assembly: bool | None = None
    show_error_file: str | None = None
    show_warnings: bool | None = None
    compact_encoding: bool | None = None
    tab_size: int | None = None

    def to_args(self) -> list[str]:
        args: list[str] = []
        if self.debug_level is not None:
            args.append(f"-d{self.debug_level}")
        for flag, value in (
            (";", self.require_semicolons),
            ("(", self.require_parentheses),
            ("\\", self.require_escape_sequences),
            ("Z", self.compatibility_mode),
        ):
            if value is not None:
                args.append(f"-{flag}{'+' if value else '-'}")
        if self.optimization_level is not None:
            args.append(f"-O{self.optimization_level}")
        if self.show_listing:
            args.append("-l")
        if self.show_annotated_assembly:
            args.append("-a")
        if self.show_error_file:
            args.append(f"-e{self.show_error_file}")
        if self.show_warnings is not None:
            args.append("-w+" if self.show_warnings else "-w-")
        if self.compact_encoding is not None:
            args.append("-C+" if self.compact_encoding else "-C-")
        if self.tab_size is not None:
            args.append(f"-t{self.tab_size}")
        return args


class BuildConfig(BaseModel):
    """One named build profile.

    ``includes`` starts as whatever the user declared and is extended by the
    build preparer with dependency include directories.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    version: str = ""
    working_dir: str = Field(default="", alias="workingDir")
    compiler_path: str = Field(default="", alias="compilerPath")
    args: list[str] = Field(default_factory=list)
    options: CompilerOptions | None = None
    input: str = ""
    output: str = ""
    includes: list[str] = Field(default_factory=list)
    constants: dict[str, str] = Field(default_factory=dict)
    prebuild: list[list[str]] = Field(default_factory=list)
    postbuild: list[list[str]] = Field(default_factory=list)


class Runtime(BaseModel):
    plugins: list[str] = Field(default_factory=list)


class PackageDescriptor(BaseModel):
    """A package manifest (pawn.json / pawn.yaml / pawn.toml).

    Attributes:
        user: Owner of the package's own repository.
        repo: Name of the package's own repository.
        entry: Source file compiled by default builds.
        output: Compiled artefact written by default builds.
        dependencies: Unparsed dependency reference strings.
        dev_dependencies: Extra references only walked for the root package.
        build: A single build profile (older manifests).
        builds: Named build profiles.
        include_path: Directory inside the repository holding its includes.
        resources: Release-asset bundles the package publishes.
        runtime: Runtime configuration; only ``plugins`` is read here.
        local_path: Directory the manifest was loaded from (not serialized).
        vendor: Directory dependencies are checked out into.
    """

    model_config = ConfigDict(populate_by_name=True)

    user: str = ""
    repo: str = ""
    entry: str = ""
    output: str = ""
    dependencies: list[str] = Field(default_factory=list)
    dev_dependencies: list[str] = Field(default_factory=list)
    build: BuildConfig | None = None
    builds: list[BuildConfig] = Field(default_factory=list)
    include_path: str = ""
    resources: list[Resource] = Field(default_factory=list)
    runtime: Runtime | None = None

    local_path: Path | None = Field(default=None, exclude=True)
    vendor: Path | None = Field(default=None, exclude=True)

    @property
    def key(self) -> str:
        return f"{self.user}/{self.repo}"

    @property
    def plugins(self) -> list[str]:
        return list(self.runtime.plugins) if self.runtime else []

    def profiles(self) -> list[BuildConfig]:
        """All declared build profiles, the single ``build`` entry first."""
        out = [self.build] if self.build else []
        return out + list(self.builds)


class ResolvedDependencySet(BaseModel):
    """Output of one resolution pass.

    Attributes:
        all_dependencies: Every visited dependency, in depth-first discovery order.
        all_plugin_refs: Plugin references declared by visited packages, deduplicated.
        all_include_paths: Include directories contributed by resource bundles.
        resource_backed: Keys of dependencies whose includes come from a
                         resource bundle rather than the repository root.
    """

    all_dependencies: list[DependencyReference] = Field(default_factory=list)
    all_plugin_refs: list[DependencyReference] = Field(default_factory=list)
    all_include_paths: list[str] = Field(default_factory=list)
    resource_backed: set[str] = Field(default_factory=set)


class ProblemSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class BuildProblem(BaseModel):
    """A single compiler diagnostic."""

    file: str
    line: int
    severity: ProblemSeverity
    description: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line} ({self.severity.value}) {self.description}"


class BuildResult(BaseModel):
    """Size statistics reported by the compiler, in bytes."""

    header: int = 0
    code: int = 0
    data: int = 0
    stack_heap: int = 0
    estimate: int = 0
    total: int = 0


class BuildSummary(BaseModel):
    """What one build attempt produced.

    Attributes:
        generation: Build generation number after this attempt was counted.
        problems: Compiler diagnostics; data, not errors.
        result: Size statistics, when the compiler printed them.
        error: Message of the failure when the build could not complete.
    """

    generation: int = 0
    problems: list[BuildProblem] = Field(default_factory=list)
    result: BuildResult | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and not any(p.severity is not ProblemSeverity.WARNING for p in self.problems)

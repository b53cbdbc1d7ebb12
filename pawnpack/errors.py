"""Error taxonomy.

Every failure that a caller may want to treat differently has its own type.
Per-dependency errors (bad reference, missing ref, failed fetch, failed
extraction) are logged and skipped by the ensure loop; build errors are
returned to whoever asked for the build.
"""

from __future__ import annotations


class PawnpackError(Exception):
    """Base class for all pawnpack errors."""


class MalformedReference(PawnpackError, ValueError):
    """A dependency string could not be parsed."""

    def __init__(self, text: str, reason: str) -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"malformed dependency reference {text!r}: {reason}")


class GitError(PawnpackError):
    """A git command exited non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed ({returncode}): {stderr}")


class RefNotFound(PawnpackError):
    """A tag, branch or commit does not exist in the repository, even after fetching."""


class FetchFailed(PawnpackError):
    """A network or authentication failure while talking to a remote."""


class CorruptCheckout(PawnpackError):
    """A local checkout exists but its HEAD cannot be read."""


class ExtractionFailed(PawnpackError):
    """A resource archive could not be downloaded or unpacked."""


class NoSuchBuildProfile(PawnpackError):
    """A build profile name was requested that the package does not declare."""


class CompileFailed(PawnpackError):
    """The compiler or a build hook could not be run to completion."""


class BuildCancelled(PawnpackError):
    """A build was pre-empted by a newer one."""


class BuildFileError(PawnpackError):
    """The build generation file holds something other than a non-negative integer."""


class DependencyError(PawnpackError):
    """One or more dependencies could not be ensured."""

    def __init__(self, failed: dict[str, str]) -> None:
        self.failed = failed
        names = ", ".join(sorted(failed))
        super().__init__(f"failed to ensure {len(failed)} dependencies: {names}")


class DeadlineExceeded(PawnpackError):
    """The overall ensure deadline passed before all dependencies were synchronized."""


class WatcherError(PawnpackError):
    """The filesystem watcher failed; the watch session cannot continue."""


class ManifestError(PawnpackError):
    """A package manifest exists but cannot be parsed."""


class CompilerUnavailable(PawnpackError):
    """No compiler executable could be determined or installed for a build profile."""

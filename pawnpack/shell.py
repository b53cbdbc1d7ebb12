"""Shell and git utilities.

Provides a wrapper around subprocess for running git, plus the output
helpers every module uses to report progress.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from .errors import GitError

_verbose = False


def set_verbose(enabled: bool) -> None:
    """Toggle output of verb() lines."""
    global _verbose
    _verbose = enabled


def git(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "fetch", "--tags").
        cwd: Repository directory to run in. Defaults to the process cwd.
        check: If True (default), raise GitError on non-zero exit. Set to
               False for commands that may legitimately fail (e.g., tag lookup).
        timeout: Seconds to wait before giving up on the command.

    Returns:
        Stripped stdout from the git command.

    Raises:
        GitError: If check is True and git exits non-zero, or the command
            runs past ``timeout``.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as err:
        raise GitError(list(args), -1, f"timed out after {timeout}s") from err
    if check and result.returncode != 0:
        raise GitError(list(args), result.returncode, result.stderr.strip())
    return result.stdout.strip()


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # never block on a credentials prompt
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    return env


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases (ensure, build, watch) in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def info(*parts: object) -> None:
    """Print an indented progress line."""
    print("  " + " ".join(str(p) for p in parts))


def warn(*parts: object) -> None:
    """Print a warning line to stderr."""
    print("  WARNING: " + " ".join(str(p) for p in parts), file=sys.stderr)


def verb(*parts: object) -> None:
    """Print a detail line, only when verbose output is on."""
    if _verbose:
        print("    " + " ".join(str(p) for p in parts))


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Only the command line layer calls this; library code raises instead.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)

"""Compiler invocation.

Runs pre-build hooks, the compiler and post-build hooks for a prepared
BuildConfig, observing a CancelToken throughout, and parses the compiler's
output into diagnostics and size statistics.

Exit status 0 and 1 both mean the compiler ran: 1 just says there were
errors, which are reported as problems. Anything else is CompileFailed.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from .build import build_args
from .cancel import CancelToken
from .errors import BuildCancelled, CompileFailed
from .models import BuildConfig, BuildProblem, BuildResult, ProblemSeverity
from .shell import info, verb

POLL_INTERVAL = 0.1

PROBLEM_RE = re.compile(
    r"^(.*?)\(([0-9]*)[- 0-9]*\) \: (fatal error|error|user warning|warning)\s?[0-9]*\: (.*)$"
)
HEADER_RE = re.compile(r"Header size:\s*([0-9]+) bytes")
CODE_RE = re.compile(r"Code size:\s*([0-9]+) bytes")
DATA_RE = re.compile(r"Data size:\s*([0-9]+) bytes")
STACK_RE = re.compile(r"Stack/heap size:\s*([0-9]*) bytes; estimated max. usage=[0-9]+ cells \(([0-9]+) bytes\)")
TOTAL_RE = re.compile(r"Total requirements:\s*([0-9]+) bytes")

_SIZE_FIELDS = (
    (HEADER_RE, "header"),
    (CODE_RE, "code"),
    (DATA_RE, "data"),
    (TOTAL_RE, "total"),
)

_SEVERITIES = {
    "fatal error": ProblemSeverity.FATAL,
    "error": ProblemSeverity.ERROR,
    "user warning": ProblemSeverity.WARNING,
    "warning": ProblemSeverity.WARNING,
}


def parse_output(text: str) -> tuple[list[BuildProblem], BuildResult | None]:
    """Extract diagnostics and size statistics from compiler output.

    Returns:
        (problems, result); result is None when no size report was printed.
    """
    problems: list[BuildProblem] = []
    result = BuildResult()
    sized = False

    for line in text.splitlines():
        m = PROBLEM_RE.match(line)
        if m:
            problems.append(
                BuildProblem(
                    file=m.group(1),
                    line=int(m.group(2) or 0),
                    severity=_SEVERITIES[m.group(3)],
                    description=m.group(4),
                )
            )
            continue
        stack = STACK_RE.search(line)
        if stack:
            result.stack_heap = int(stack.group(1) or 0)
            result.estimate = int(stack.group(2))
            sized = True
            continue
        for pattern, field in _SIZE_FIELDS:
            m = pattern.search(line)
            if m:
                setattr(result, field, int(m.group(1)))
                sized = True
                break

    return problems, result if sized else None


def compile_config(
    config: BuildConfig,
    token: CancelToken | None = None,
) -> tuple[list[BuildProblem], BuildResult | None]:
    """Run the whole build for ``config``: hooks, compiler, hooks.

    Raises:
        CompileFailed: If the input is missing, the compiler can't be started
            or exits abnormally, or a hook fails.
        BuildCancelled: If ``token`` is cancelled; the partially written
            output file is removed.
    """
    token = token or CancelToken()
    if not config.input or not Path(config.input).is_file():
        raise CompileFailed(f"no such input file {config.input!r}")

    for command in config.prebuild:
        run_hook(command, config.working_dir, token, "pre-build")

    cmd = [config.compiler_path, *build_args(config)]
    verb("executing compiler in", config.working_dir, "as", cmd)
    try:
        code, output = run_cancellable(cmd, config.working_dir, token)
    except BuildCancelled:
        _remove_output(config)
        raise
    except OSError as err:
        raise CompileFailed(f"failed to run compiler {config.compiler_path!r}: {err}") from err

    if code not in (0, 1):
        _remove_output(config)
        raise CompileFailed(f"compiler exited with status {code}:\n{output.strip()}")

    problems, result = parse_output(output)
    if not any(p.severity is not ProblemSeverity.WARNING for p in problems):
        for command in config.postbuild:
            run_hook(command, config.working_dir, token, "post-build")
    return problems, result


def run_hook(command: list[str], cwd: str, token: CancelToken, label: str) -> None:
    """Run one pre/post-build command; a non-zero exit fails the build."""
    if not command:
        return
    info(f"running {label} command:", " ".join(command))
    try:
        code, output = run_cancellable(command, cwd, token)
    except OSError as err:
        raise CompileFailed(f"{label} command {command[0]!r} could not be run: {err}") from err
    if output.strip():
        print(output.rstrip())
    if code != 0:
        raise CompileFailed(f"{label} command {' '.join(command)!r} exited with status {code}")


def run_cancellable(cmd: list[str], cwd: str, token: CancelToken) -> tuple[int, str]:
    """Run ``cmd`` to completion unless ``token`` is cancelled first.

    Returns:
        (exit status, combined stdout and stderr).

    Raises:
        BuildCancelled: If the token fired; the process has been terminated.
    """
    if token.cancelled:
        raise BuildCancelled("cancelled before start")
    proc = subprocess.Popen(
        cmd,
        cwd=cwd or None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    while True:
        try:
            output, _ = proc.communicate(timeout=POLL_INTERVAL)
            return proc.returncode, output or ""
        except subprocess.TimeoutExpired:
            if token.cancelled:
                proc.terminate()
                try:
                    proc.communicate(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.communicate()
                raise BuildCancelled(f"{Path(cmd[0]).name} cancelled") from None


def _remove_output(config: BuildConfig) -> None:
    if config.output:
        Path(config.output).unlink(missing_ok=True)

"""
Subprocess execution for git commands.

Every invocation gets its own copy of the environment with the variables that
redirect git to another repository removed. ``os.environ`` itself is never
modified, so concurrent or nested invocations cannot see each other's
environment.
"""

import logging
import os
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Union

from gitpin.exceptions import ToolExecutionError, ToolMissingError

logger = logging.getLogger(__name__)

# Variables that make git operate on a repository other than the one in cwd
GIT_REDIRECT_VARIABLES = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_COMMON_DIR",
    "GIT_NAMESPACE",
    "GIT_CEILING_DIRECTORIES",
    "GIT_PREFIX",
)

PathLike = Union[str, Path]


@contextmanager
def clean_git_env(
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
) -> Iterator[Dict[str, str]]:
    """
    Yield an environment for one git invocation.

    The environment is a copy of ``base`` (``os.environ`` by default) without
    the repository redirecting variables, with ``overrides`` applied on top.
    Nothing outside the yielded mapping is touched.
    """
    env = dict(os.environ if base is None else base)
    for name in GIT_REDIRECT_VARIABLES:
        env.pop(name, None)
    # Never block on a credential prompt
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    if overrides:
        env.update(overrides)
    try:
        yield env
    finally:
        env.clear()


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of one subprocess invocation."""

    args: List[str]
    stdout: str
    stderr: str
    exit_code: Optional[int]
    cwd: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check_returncode(self, uri: Optional[str] = None) -> "ProcessResult":
        if not self.ok:
            raise ToolExecutionError(
                self.args, self.exit_code, self.stdout, self.stderr, self.cwd, uri
            )
        return self


class ProcessRunner:
    """Run external commands and capture their output."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = False,
        timeout: Optional[float] = None,
        uri: Optional[str] = None,
        shell: bool = False,
    ) -> ProcessResult:
        """
        Run ``args`` and return its captured output.

        A nonzero exit status is returned in the result, not raised, unless
        ``check`` is set.

        Args:
            args: Command and arguments
            cwd: Working directory
            env: Extra environment variables for this invocation
            check: Raise ToolExecutionError on a nonzero exit status
            timeout: Seconds before the command is abandoned
            uri: Repository the command concerns, used in error messages
            shell: Run ``args[0]`` through the shell

        Raises:
            ToolMissingError: If the executable cannot be found
            ToolExecutionError: On timeout, or on a nonzero exit with ``check``
        """
        args = [str(arg) for arg in args]
        cwd_str = str(cwd) if cwd is not None else None
        timeout = timeout if timeout is not None else self.timeout
        logger.debug(f"Running `{' '.join(args)}`" + (f" in {cwd_str}" if cwd_str else ""))

        with clean_git_env(env) as process_env:
            try:
                completed = subprocess.run(
                    args[0] if shell else args,
                    cwd=cwd_str,
                    env=process_env,
                    text=True,
                    capture_output=True,
                    check=False,
                    timeout=timeout,
                    shell=shell,
                )
            except FileNotFoundError as e:
                # A missing cwd also surfaces as FileNotFoundError
                if cwd_str is not None and not Path(cwd_str).is_dir():
                    raise ToolExecutionError(
                        args, None, "", f"working directory {cwd_str} does not exist", cwd_str, uri
                    ) from e
                raise ToolMissingError(args[0], uri) from e
            except subprocess.TimeoutExpired as e:
                raise ToolExecutionError(
                    args,
                    None,
                    _decode(e.stdout),
                    _decode(e.stderr) or f"timed out after {timeout} seconds",
                    cwd_str,
                    uri,
                ) from e

        result = ProcessResult(
            args=args,
            stdout=completed.stdout,
            stderr=completed.stderr,
            exit_code=completed.returncode,
            cwd=cwd_str,
        )
        if not result.ok:
            logger.debug(f"`{' '.join(args)}` exited with {result.exit_code}: {result.stderr.strip()}")
        if check:
            result.check_returncode(uri)
        return result


def _decode(output: Union[str, bytes, None]) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class GitRunner:
    """Thin wrapper running ``git`` subcommands through a ProcessRunner."""

    def __init__(self, runner: Optional[ProcessRunner] = None, executable: str = "git"):
        self.runner = runner or ProcessRunner()
        self.executable = executable

    def run(
        self,
        *args: PathLike,
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
        uri: Optional[str] = None,
    ) -> ProcessResult:
        return self.runner.run(
            [self.executable, *[str(arg) for arg in args]],
            cwd=cwd,
            env=env,
            check=check,
            uri=uri,
        )

    def output(self, *args: PathLike, cwd: Optional[PathLike] = None, uri: Optional[str] = None) -> str:
        """Run a git subcommand and return its stripped stdout."""
        return self.run(*args, cwd=cwd, uri=uri).stdout.strip()

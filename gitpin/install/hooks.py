"""
Install hooks and native extension builds for git packages.

Hooks are plain callables given to :class:`InstallHookRunner` and run in the
order they were registered. A hook fails by returning ``False`` or raising.
Failures never touch the cache, so a retry reuses the checked out worktree.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from gitpin.exceptions import ExtensionBuildFailureError, HookFailureError
from gitpin.git.process import ProcessRunner
from gitpin.model.metadata import PackageMetadata

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    """When a hook runs relative to the package install."""

    PRE = "pre"
    POST = "post"


@dataclass(frozen=True)
class InstallablePackage:
    """A package checked out from a git source, ready to install."""

    metadata: PackageMetadata
    worktree: Path
    uri: str
    revision: str

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def full_name(self) -> str:
        return self.metadata.full_name

    @property
    def directory(self) -> Path:
        return self.worktree / self.metadata.path


Hook = Callable[[InstallablePackage], Optional[bool]]


def _hook_name(hook: Hook) -> str:
    module = getattr(hook, "__module__", None)
    name = getattr(hook, "__qualname__", None) or type(hook).__name__
    return f"{module}.{name}" if module else name


class InstallHookRunner:
    """Runs pre/post install hooks and extension builds for one package at a time."""

    def __init__(
        self,
        pre_install: Iterable[Hook] = (),
        post_install: Iterable[Hook] = (),
        runner: Optional[ProcessRunner] = None,
    ):
        self.pre_install: List[Hook] = list(pre_install)
        self.post_install: List[Hook] = list(post_install)
        self.runner = runner or ProcessRunner()

    def register(self, phase: HookPhase, hook: Hook) -> None:
        self._hooks(phase).append(hook)

    def _hooks(self, phase: HookPhase) -> List[Hook]:
        return self.pre_install if phase is HookPhase.PRE else self.post_install

    def run_hooks(self, phase: HookPhase, package: InstallablePackage) -> None:
        """
        Run the hooks of ``phase`` for ``package``.

        Raises:
            HookFailureError: On the first hook returning False or raising
        """
        for hook in self._hooks(phase):
            name = _hook_name(hook)
            logger.debug(f"Running {phase.value}-install hook {name} for {package.full_name}")
            try:
                result = hook(package)
            except Exception as e:
                raise HookFailureError(phase.value, name, package.full_name, str(e)) from e
            if result is False:
                raise HookFailureError(phase.value, name, package.full_name)

    def build_extensions(self, package: InstallablePackage) -> None:
        """
        Run the extension build commands of ``package`` in its directory.

        Raises:
            ExtensionBuildFailureError: On the first command that fails
        """
        for command in package.metadata.extensions:
            logger.info(f"Building native extensions for {package.full_name}: {command}")
            result = self.runner.run([command], cwd=package.directory, shell=True)
            if not result.ok:
                output = "\n".join(
                    part.rstrip() for part in (result.stdout, result.stderr) if part.strip()
                )
                raise ExtensionBuildFailureError(
                    package.name,
                    package.version,
                    command,
                    output,
                    uri=package.uri,
                    revision=package.revision,
                )

"""Install and update runs: resolve git sources, run hooks, write the lockfile."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from gitpin.exceptions import FrozenLockfileError, GitSourceError
from gitpin.install.hooks import HookPhase, InstallablePackage, InstallHookRunner
from gitpin.model.lockfile import Lockfile
from gitpin.model.manifest import Manifest
from gitpin.source.manager import (
    GitSourceManager,
    ResolutionResult,
    ResolveMode,
    collect_sources,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCKFILE = "gitpin.lock"


@dataclass
class InstallReport:
    """Outcome of an install or update run."""

    result: ResolutionResult
    installed: List[str] = field(default_factory=list)
    executables: Dict[str, Path] = field(default_factory=dict)
    lockfile_written: bool = False


class Installer:
    """
    Drives one install or update run.

    The lockfile is written only when every package installed, so a failed
    run leaves the previous pins in place.
    """

    def __init__(self, manager: GitSourceManager, hooks: Optional[InstallHookRunner] = None):
        self.manager = manager
        self.hooks = hooks or InstallHookRunner()

    def run(
        self,
        manifest: Manifest,
        lockfile_path: Path,
        mode: ResolveMode = ResolveMode.INSTALL,
        update_names: Optional[Iterable[str]] = None,
        frozen: bool = False,
    ) -> InstallReport:
        """
        Resolve ``manifest`` against the lockfile and install its git packages.

        With ``frozen`` the lockfile must exist and resolving the manifest
        must reproduce it exactly. Nothing is installed otherwise, and the
        lockfile is never written.

        Raises:
            FrozenLockfileError: A frozen install would change the lockfile
            GitSourceError: The first per-package failure, after every other
                            package was attempted
        """
        lockfile_path = Path(lockfile_path)
        if frozen:
            if mode is not ResolveMode.INSTALL:
                raise FrozenLockfileError(str(lockfile_path), "updates rewrite the lockfile")
            if not lockfile_path.exists():
                raise FrozenLockfileError(str(lockfile_path), "the lockfile does not exist")
        existing = Lockfile.read(lockfile_path)
        if frozen:
            for source in collect_sources(manifest):
                entry = existing.entry_for(source.uri)
                if entry is None or not entry.matches(source.spec):
                    raise FrozenLockfileError(
                        str(lockfile_path), f"the git source {source.uri} changed"
                    )

        names = list(update_names) if update_names else None
        if names:
            known = {package.name for package in manifest.packages}
            for declaration in manifest.git_declarations():
                known.update(package.name for package in declaration.packages)
            unknown = sorted(set(names) - known)
            if unknown:
                logger.warning(f"Not in the manifest, nothing to update: {', '.join(unknown)}")

        result = self.manager.resolve_manifest(manifest, existing, mode, names)
        if frozen:
            _check_frozen(lockfile_path, existing, result.lockfile)
        report = InstallReport(result=result)

        failures: List[GitSourceError] = []
        for resolved in result.sources:
            for locked in resolved.lock.packages:
                package = InstallablePackage(
                    metadata=resolved.package(locked.name),
                    worktree=resolved.worktree,
                    uri=resolved.lock.remote,
                    revision=resolved.lock.revision,
                )
                try:
                    self.install_package(package)
                except GitSourceError as e:
                    logger.error(str(e))
                    failures.append(e)
                    continue
                report.installed.append(package.full_name)
                report.executables.update(find_executables(package))

        for package in result.lockfile.registry_packages:
            logger.debug(f"Recorded registry package {package}")

        if failures:
            raise failures[0]

        if not frozen:
            report.lockfile_written = result.lockfile.write(lockfile_path)
        return report

    def install_package(self, package: InstallablePackage) -> None:
        logger.info(
            f"Installing {package.name} {package.version} "
            f"from {package.uri} (at {package.revision[:7]})"
        )
        self.hooks.run_hooks(HookPhase.PRE, package)
        self.hooks.build_extensions(package)
        self.hooks.run_hooks(HookPhase.POST, package)


def find_executables(package: InstallablePackage) -> Dict[str, Path]:
    """Map the executables a package declares to their files in its directory."""
    found = {}
    for relative in package.metadata.executables:
        path = package.directory / relative
        if not path.is_file():
            logger.warning(f"Executable {relative} of {package.full_name} does not exist")
            continue
        found[Path(relative).name] = path
    return found


def _check_frozen(path: Path, existing: Lockfile, resolved: Lockfile) -> None:
    if resolved.dumps() == path.read_text(encoding="utf-8"):
        return

    changed = {entry.remote for entry in set(existing.git_sources) ^ set(resolved.git_sources)}
    if changed:
        reason = f"the git sources {', '.join(sorted(changed))} changed"
    else:
        reason = "the manifest changed since the lockfile was written"
    raise FrozenLockfileError(str(path), reason)

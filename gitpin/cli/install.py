"""CLI commands resolving a manifest: install and update"""

import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

import click

from gitpin.cli.error_formatting import format_error
from gitpin.cli.utils.logging import logger
from gitpin.config import load_settings
from gitpin.exceptions import GitSourceError
from gitpin.install.installer import DEFAULT_LOCKFILE, Installer
from gitpin.model.manifest import DEFAULT_MANIFEST, Manifest
from gitpin.source.manager import GitSourceManager, ResolveMode


def parse_local_overrides(values: Sequence[str]) -> Dict[str, Path]:
    """Turn repeated ``URI=PATH`` options into an override mapping."""
    overrides = {}
    for value in values:
        uri, sep, path = value.rpartition("=")
        if not sep or not uri or not path:
            raise click.BadParameter(
                f"'{value}' is not of the form URI=PATH", param_hint="--local"
            )
        overrides[uri] = Path(path).expanduser()
    return overrides


def manifest_options(cmd):
    """Options shared by install and update"""
    cmd = click.option(
        "--disable-local-branch-check",
        is_flag=True,
        help="Allow local overrides on any branch.",
    )(cmd)
    cmd = click.option(
        "--local",
        "local",
        multiple=True,
        metavar="URI=PATH",
        help="Use a local checkout instead of the git source URI. Repeatable.",
    )(cmd)
    cmd = click.option(
        "--lockfile",
        type=click.Path(dir_okay=False),
        default=None,
        help=f"Lockfile path (default: {DEFAULT_LOCKFILE} next to the manifest).",
    )(cmd)
    cmd = click.option(
        "--manifest",
        "-m",
        type=click.Path(exists=True, dir_okay=False),
        default=DEFAULT_MANIFEST,
        show_default=True,
        help="Manifest declaring the git sources.",
    )(cmd)
    return cmd


def _run(
    mode: ResolveMode,
    manifest: str,
    lockfile: Optional[str],
    local: Sequence[str],
    disable_local_branch_check: bool,
    packages: Sequence[str] = (),
    frozen: bool = False,
):
    settings = load_settings().with_overrides(
        parse_local_overrides(local), True if disable_local_branch_check else None
    )
    manifest_path = Path(manifest)
    lockfile_path = Path(lockfile) if lockfile else manifest_path.parent / DEFAULT_LOCKFILE

    try:
        parsed = Manifest.load(manifest_path)
        installer = Installer(GitSourceManager.from_settings(settings))
        report = installer.run(parsed, lockfile_path, mode, packages or None, frozen=frozen)
    except GitSourceError as e:
        logger.error(format_error(e))
        sys.exit(1)

    for full_name in report.installed:
        logger.debug(f"Installed {full_name}")
    for name, path in sorted(report.executables.items()):
        logger.info(f"Executable {name}: {path}")
    if report.lockfile_written:
        logger.info(f"Wrote {lockfile_path}")
    logger.info(f"Install complete: {len(report.installed)} git packages installed.")


@click.command(name="install")
@click.option(
    "--frozen",
    is_flag=True,
    help="Fail instead of changing the lockfile.",
)
@manifest_options
def install(frozen, manifest, lockfile, local, disable_local_branch_check):
    """Install the packages of a manifest, keeping locked revisions.

    Sources already in the lockfile are checked out at their locked revision
    without contacting the remote when the commit is cached. With --frozen the
    lockfile must already pin every git source exactly as the manifest
    declares it.

    Example:

      gitpin install --local https://github.com/org/repo=../repo
    """
    _run(
        ResolveMode.INSTALL,
        manifest,
        lockfile,
        local,
        disable_local_branch_check,
        frozen=frozen,
    )


@click.command(name="update")
@click.argument("packages", nargs=-1)
@manifest_options
def update(packages, manifest, lockfile, local, disable_local_branch_check):
    """Fetch git sources and move them to the newest matching revision.

    With PACKAGES, only the sources providing those packages are updated.

    Example:

      gitpin update foo
    """
    _run(
        ResolveMode.UPDATE, manifest, lockfile, local, disable_local_branch_check, packages
    )

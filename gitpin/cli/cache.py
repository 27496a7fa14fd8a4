"""CLI commands for git cache management"""

import sys
from pathlib import Path

import click

from gitpin.cli.error_formatting import format_error
from gitpin.cli.utils.logging import logger
from gitpin.config import load_settings
from gitpin.exceptions import GitSourceError
from gitpin.model.manifest import Manifest
from gitpin.source.manager import GitSourceManager


@click.group(name="cache")
def cache():
    """Manage the git repository cache."""
    pass


@cache.command("populate")
@click.argument("manifest_path", type=click.Path(exists=True, dir_okay=False))
def populate(manifest_path: str):
    """Clone or fetch every git source of a manifest without installing.

    Example:

      gitpin cache populate gitpin.yaml
    """
    try:
        manifest = Manifest.load(Path(manifest_path))
        manager = GitSourceManager.from_settings(load_settings())
        logger.info(f"Cache directory: {manager.store.cache_dir}")
        paths = manager.populate_cache(manifest)
    except GitSourceError as e:
        logger.error(format_error(e))
        sys.exit(1)

    if not paths:
        logger.info("No git sources to cache")
        return
    logger.info(f"Cached {len(paths)} repositories")


@cache.command("describe")
def describe():
    """List the cached repositories and their worktrees."""
    manager = GitSourceManager.from_settings(load_settings())
    entries = manager.store.describe()

    if not entries:
        logger.info(f"No repositories cached in {manager.store.cache_dir}")
        return

    click.echo(f"Cache directory: {manager.store.cache_dir}")
    click.echo(f"Repositories: {len(entries)}\n")
    for entry in entries:
        click.echo(f"  {entry['repo_path']}")
        click.echo(f"    url: {entry['url']}")
        click.echo(f"    branches: {entry['branches']}")
        for sha in entry["worktrees"]:
            click.echo(f"    worktree: {sha[:12]}")

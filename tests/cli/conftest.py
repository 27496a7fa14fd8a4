import logging

import pytest
import yaml

from click.testing import CliRunner


@pytest.fixture(autouse=True)
def reset_cli_logging():
    """Drop the stdout handler a CLI invocation installs."""
    logger = logging.getLogger("gitpin")
    level, propagate = logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if getattr(handler, "_gitpin_cli", False):
            logger.removeHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def cli_config(isolated_config, tmp_path):
    """A config file keeping the cache and worktrees inside tmp_path."""
    isolated_config.parent.mkdir(parents=True, exist_ok=True)
    isolated_config.write_text(
        f"[dirs]\ngit_cache = {tmp_path / 'cache'}\nworktrees = {tmp_path / 'worktrees'}\n"
    )
    return isolated_config


@pytest.fixture
def project(tmp_path, foo_repo, cli_config):
    """A project directory whose manifest takes foo from a local repository."""
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    manifest = {
        "git": [{"uri": foo_repo.uri, "branch": "main", "packages": [{"name": "foo"}]}],
        "packages": [{"name": "rack"}],
    }
    (project_dir / "gitpin.yaml").write_text(yaml.safe_dump(manifest))
    return project_dir

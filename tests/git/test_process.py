"""Tests for subprocess execution and environment isolation."""

import os
import sys

import pytest

from gitpin.exceptions import ToolExecutionError, ToolMissingError
from gitpin.git.process import GitRunner, ProcessRunner, clean_git_env


@pytest.mark.short
class TestCleanGitEnv:
    def test_redirect_variables_removed_from_copy_only(self, monkeypatch):
        monkeypatch.setenv("GIT_DIR", "/nonexistent/.git")
        monkeypatch.setenv("GIT_WORK_TREE", "/nonexistent")
        with clean_git_env() as env:
            assert "GIT_DIR" not in env
            assert "GIT_WORK_TREE" not in env
            assert env["GIT_TERMINAL_PROMPT"] == "0"
        assert os.environ["GIT_DIR"] == "/nonexistent/.git"

    def test_overrides_and_base(self):
        with clean_git_env({"FOO": "bar"}, base={"GIT_DIR": "x", "PATH": "/bin"}) as env:
            assert env == {"PATH": "/bin", "GIT_TERMINAL_PROMPT": "0", "FOO": "bar"}


class TestProcessRunner:
    def test_nonzero_exit_is_returned(self, foo_repo):
        result = ProcessRunner().run(
            ["git", "rev-parse", "--verify", "no-such-ref"], cwd=foo_repo.path
        )
        assert not result.ok
        assert result.exit_code != 0
        assert result.stderr

    def test_check_raises_with_stderr(self, foo_repo):
        with pytest.raises(ToolExecutionError) as exc_info:
            ProcessRunner().run(
                ["git", "rev-parse", "--verify", "no-such-ref"],
                cwd=foo_repo.path,
                check=True,
                uri="https://x.org/a",
            )
        error = exc_info.value
        assert str(error).startswith(
            "Git error: command `git rev-parse --verify no-such-ref` exited with status"
        )
        assert error.stderr.strip() in str(error)
        assert error.uri == "https://x.org/a"

    def test_missing_executable(self):
        with pytest.raises(ToolMissingError) as exc_info:
            ProcessRunner().run(["gitpin-no-such-tool"])
        assert "install git" in str(exc_info.value)

    def test_missing_cwd(self, tmp_path):
        with pytest.raises(ToolExecutionError, match="does not exist"):
            ProcessRunner().run(["git", "--version"], cwd=tmp_path / "missing")

    def test_timeout(self):
        runner = ProcessRunner(timeout=0.5)
        with pytest.raises(ToolExecutionError) as exc_info:
            runner.run([sys.executable, "-c", "import time; time.sleep(10)"])
        assert exc_info.value.exit_code is None
        assert "timed out" in str(exc_info.value)

    def test_env_overrides_reach_the_process(self):
        result = ProcessRunner().run(
            ["echo $GITPIN_TEST_VALUE"], env={"GITPIN_TEST_VALUE": "hello"}, shell=True
        )
        assert result.stdout.strip() == "hello"

    def test_ambient_git_dir_is_ignored(self, foo_repo, monkeypatch):
        """A GIT_DIR left by a calling git hook must not redirect our commands."""
        monkeypatch.setenv("GIT_DIR", "/nonexistent/.git")
        head = GitRunner().output("rev-parse", "HEAD", cwd=foo_repo.path)
        assert head == foo_repo.head


class TestGitRunner:
    def test_runs_git_with_check(self, foo_repo):
        with pytest.raises(ToolExecutionError):
            GitRunner().run("rev-parse", "--verify", "no-such-ref", cwd=foo_repo.path)

    def test_unchecked_run(self, foo_repo):
        result = GitRunner().run("rev-parse", "--verify", "no-such-ref", cwd=foo_repo.path, check=False)
        assert not result.ok

    def test_missing_git(self):
        with pytest.raises(ToolMissingError):
            GitRunner(executable="gitpin-missing-git").run("--version")

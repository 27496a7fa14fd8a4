import os
import subprocess

from pathlib import Path
from typing import Dict, Iterable, Optional

import yaml

import logging

logger = logging.getLogger(__name__)

GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "gitpin tests",
    "GIT_AUTHOR_EMAIL": "tests@gitpin.invalid",
    "GIT_COMMITTER_NAME": "gitpin tests",
    "GIT_COMMITTER_EMAIL": "tests@gitpin.invalid",
}

# Local submodule URLs are refused by default since git 2.38.1
ALLOW_FILE_PROTOCOL = {
    "GIT_CONFIG_COUNT": "1",
    "GIT_CONFIG_KEY_0": "protocol.file.allow",
    "GIT_CONFIG_VALUE_0": "always",
}


class GitRepo:
    """A throwaway upstream repository driven through the git CLI."""

    def __init__(self, path: Path, branch: str = "main"):
        self.path = Path(path).resolve()
        self.path.mkdir(parents=True, exist_ok=True)
        self.git("init", "--quiet")
        self.git("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def git(self, *args: str, env: Optional[Dict[str, str]] = None) -> str:
        process_env = dict(os.environ)
        for name in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
            process_env.pop(name, None)
        process_env.update(GIT_IDENTITY)
        process_env.update(env or {})
        result = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", "-c", "tag.gpgsign=false", *args],
            cwd=self.path,
            env=process_env,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip()

    @property
    def uri(self) -> str:
        return str(self.path)

    @property
    def head(self) -> str:
        return self.git("rev-parse", "HEAD")

    def rev(self, name: str) -> str:
        return self.git("rev-parse", f"{name}^{{commit}}")

    def write(self, relative: str, content: str) -> Path:
        target = self.path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def write_package(
        self,
        name: str,
        version: str,
        subdir: str = ".",
        extensions: Iterable[str] = (),
        **fields,
    ) -> Path:
        data = {"name": name, "version": version, **fields}
        if extensions:
            data["extensions"] = list(extensions)
        return self.write(f"{subdir}/{name}.pkg.yaml", yaml.safe_dump(data))

    def commit(self, message: str = "update", files: Optional[Dict[str, str]] = None) -> str:
        for relative, content in (files or {}).items():
            self.write(relative, content)
        self.git("add", "--all")
        self.git("commit", "--quiet", "--allow-empty", "-m", message)
        return self.head

    def branch(self, name: str, start: str = "HEAD") -> None:
        self.git("branch", name, start)

    def checkout(self, name: str) -> None:
        self.git("checkout", "--quiet", name)

    def tag(self, name: str, annotated: bool = False) -> str:
        if annotated:
            self.git("tag", "-a", name, "-m", f"release {name}")
        else:
            self.git("tag", name)
        return self.rev(name)

    def force_reset(self, sha: str) -> None:
        """Move the current branch to ``sha``, as a force push would."""
        self.git("reset", "--hard", "--quiet", sha)

    def add_submodule(self, other: "GitRepo", relative: str) -> str:
        self.git(
            "submodule", "--quiet", "add", other.uri, relative, env=ALLOW_FILE_PROTOCOL
        )
        return self.commit(f"add submodule {relative}")

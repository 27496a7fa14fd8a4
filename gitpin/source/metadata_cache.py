"""Cache of parsed package metadata, keyed by repository and revision."""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from gitpin.model.metadata import PackageMetadata
from gitpin.model.source import cache_key

logger = logging.getLogger(__name__)


class MetadataCache:
    """
    Parsed metadata stored as YAML under ``<git_cache>/metadata``.

    A revision's tree never changes, so an entry stays valid until the
    worktree for that revision is checked out again, at which point the
    caller invalidates it. Reading with and without submodules gives
    different packages, so the two are stored apart.
    """

    def __init__(self, cache_dir: Path):
        self.root = Path(cache_dir) / "metadata"

    def path(self, uri: str, sha: str, submodules: bool = False) -> Path:
        suffix = "-submodules" if submodules else ""
        return self.root / f"{Path(cache_key(uri)).name}-{sha}{suffix}.yaml"

    def get(self, uri: str, sha: str, submodules: bool = False) -> Optional[List[PackageMetadata]]:
        path = self.path(uri, sha, submodules)
        if not path.exists():
            return None
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if data.get("revision") != sha:
                return None
            packages = [PackageMetadata(**item) for item in data.get("packages", [])]
        except (OSError, AttributeError, TypeError, yaml.YAMLError, ValidationError) as e:
            logger.debug(f"Ignoring unreadable metadata cache {path}: {e}")
            return None
        logger.debug(f"Using cached metadata for {uri}@{sha[:7]}")
        return packages

    def put(
        self, uri: str, sha: str, packages: List[PackageMetadata], submodules: bool = False
    ) -> None:
        path = self.path(uri, sha, submodules)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "uri": uri,
            "revision": sha,
            "submodules": submodules,
            "packages": [package.model_dump() for package in packages],
        }
        scratch = path.with_name(f".{path.name}.{os.getpid()}")
        scratch.write_text(yaml.safe_dump(data, sort_keys=True), encoding="utf-8")
        os.replace(scratch, path)

    def invalidate(self, uri: str, sha: str, submodules: Optional[bool] = None) -> None:
        """Drop the entry for ``submodules``, or both entries when it is None."""
        variants = (False, True) if submodules is None else (submodules,)
        for variant in variants:
            path = self.path(uri, sha, variant)
            if path.exists():
                logger.debug(f"Invalidating metadata cache for {uri}@{sha[:7]}")
                path.unlink()

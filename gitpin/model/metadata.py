"""
Package metadata found in git sources.

A package is described by a ``<name>.pkg.yaml`` file anywhere in the
repository. Metadata files are data, never code: the only thing evaluated is
``version_file``, read relative to the directory of the metadata file.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import yaml
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from gitpin.exceptions import MetadataError

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".pkg.yaml"
DEFAULT_VERSION = "0"

_NAME_VERSION_RE = re.compile(r"^(?P<name>.+?)-(?P<version>\d[\w.+]*)$")


class PackageMetadata(BaseModel):
    """Metadata of one package provided by a git source."""

    name: str = Field(..., description="Package name")
    version: str = Field(DEFAULT_VERSION, description="Package version")
    version_file: Optional[str] = Field(
        None, description="File holding the version, relative to the metadata file"
    )
    summary: Optional[str] = None
    executables: List[str] = Field(
        default_factory=list, description="Executables, relative to the package directory"
    )
    extensions: List[str] = Field(
        default_factory=list, description="Build commands run in the package directory"
    )
    path: str = Field(".", description="Package directory, relative to the worktree")
    fabricated: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v) -> str:
        if v is None:
            return DEFAULT_VERSION
        return str(v).strip() or DEFAULT_VERSION

    @model_validator(mode="after")
    def check_version_source(self) -> "PackageMetadata":
        if self.version_file and self.version != DEFAULT_VERSION:
            raise ValueError("declare either 'version' or 'version_file', not both")
        return self

    @property
    def full_name(self) -> str:
        return f"{self.name}-{self.version}"

    def satisfies(self, requirement: Optional[str]) -> bool:
        """Check this package's version against a requirement like '1.0' or '>= 1.0'."""
        if not requirement:
            return True
        requirement = requirement.strip()
        if requirement[0].isdigit():
            requirement = f"=={requirement}"
        try:
            return Version(self.version) in SpecifierSet(requirement.replace(" ", ""))
        except (InvalidSpecifier, InvalidVersion):
            return requirement.lstrip("=") == self.version

    @classmethod
    def from_yaml(cls, yaml_str: str):
        """Alternative constructor that loads from YAML string"""
        data = yaml.safe_load(yaml_str)
        return cls(**data)


def find_metadata_files(worktree: Path, include_submodules: bool = True) -> List[Path]:
    """
    All metadata files in ``worktree``, sorted, ignoring ``.git`` directories.

    Without ``include_submodules``, files inside nested repositories (any
    directory below the worktree holding a ``.git`` entry) are skipped.
    """
    found = []
    for path in worktree.rglob(f"*{METADATA_SUFFIX}"):
        relative = path.relative_to(worktree)
        if ".git" in relative.parts or not path.is_file():
            continue
        if not include_submodules and _in_nested_repository(worktree, relative):
            continue
        found.append(path)
    return sorted(found)


def _in_nested_repository(worktree: Path, relative: Path) -> bool:
    directory = worktree
    for part in relative.parts[:-1]:
        directory = directory / part
        if (directory / ".git").exists():
            return True
    return False


def load_metadata_file(path: Path, worktree: Path, uri: Optional[str] = None) -> PackageMetadata:
    """
    Parse one metadata file.

    ``version_file`` is read relative to the metadata file's own directory and
    may not point outside the worktree.

    Raises:
        MetadataError: If the file is not valid metadata
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise MetadataError(str(path), str(e), uri) from e

    if not isinstance(data, dict):
        raise MetadataError(str(path), "expected a mapping at the top level", uri)

    package_dir = path.parent
    version_file = data.get("version_file")
    if version_file:
        if data.get("version") is not None:
            raise MetadataError(
                str(path), "declare either 'version' or 'version_file', not both", uri
            )
        version_path = (package_dir / str(version_file)).resolve()
        if worktree.resolve() not in version_path.parents:
            raise MetadataError(
                str(path), f"version_file {version_file} is outside the repository", uri
            )
        try:
            data["version"] = version_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise MetadataError(str(path), f"cannot read version_file: {e}", uri) from e
        data.pop("version_file")

    relative_dir = package_dir.relative_to(worktree)
    data["path"] = relative_dir.as_posix() if relative_dir.parts else "."

    try:
        return PackageMetadata(**data)
    except ValidationError as e:
        raise MetadataError(str(path), str(e), uri) from e


def split_name_version(directory_name: str) -> Tuple[str, Optional[str]]:
    """Split ``foo-1.0`` into ``("foo", "1.0")``."""
    match = _NAME_VERSION_RE.match(directory_name)
    if match:
        return match.group("name"), match.group("version")
    return directory_name, None


def fabricate_metadata(
    directory_name: str,
    name: Optional[str] = None,
    requirement: Optional[str] = None,
) -> PackageMetadata:
    """
    Make up metadata for a repository that ships none.

    The name is the requested package name, else the directory name. The
    version is the requested exact version, else the ``-<version>`` suffix of
    the directory name, else "0".
    """
    dir_name, dir_version = split_name_version(directory_name)
    version = None
    if requirement:
        exact = requirement.strip().lstrip("=").strip()
        try:
            Version(exact)
            version = exact
        except InvalidVersion:
            pass
    version = version or dir_version or DEFAULT_VERSION
    logger.debug(
        f"No package metadata in {directory_name}, using {name or dir_name} {version}"
    )
    return PackageMetadata(name=name or dir_name, version=version, fabricated=True)


def load_worktree_metadata(
    worktree: Path,
    uri: Optional[str] = None,
    requested: Iterable[Tuple[str, Optional[str]]] = (),
    directory_name: Optional[str] = None,
    include_submodules: bool = True,
) -> List[PackageMetadata]:
    """
    Load every package a worktree provides.

    Args:
        worktree: Checked out repository
        uri: Repository URI for error messages
        requested: (name, requirement) pairs declared for this source, used to
                   fabricate metadata when the repository has none
        directory_name: Name to fabricate from, defaults to the worktree name
        include_submodules: Also read metadata inside initialized submodules

    Returns:
        Packages sorted by name
    """
    packages = [
        load_metadata_file(path, worktree, uri)
        for path in find_metadata_files(worktree, include_submodules)
    ]

    if not packages:
        requested = list(requested)
        dir_name = directory_name or worktree.name
        if requested:
            packages = [fabricate_metadata(dir_name, name, req) for name, req in requested]
        else:
            packages = [fabricate_metadata(dir_name)]

    return sorted(packages, key=lambda p: (p.name, p.path))

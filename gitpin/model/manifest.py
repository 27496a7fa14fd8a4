"""Pydantic models for the ``gitpin.yaml`` manifest."""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from gitpin.exceptions import ManifestError
from gitpin.model.source import RepositorySpec, is_local_path, normalize_ref, normalize_uri

DEFAULT_MANIFEST = "gitpin.yaml"


def validate_non_empty_string(v: str) -> str:
    """Validate that a string is not empty."""
    if not v or not str(v).strip():
        raise ValueError("must be a non-empty string")
    return str(v).strip()


class GitOptions(BaseModel):
    """Ref and submodule options shared by block and inline git declarations."""

    branch: Optional[str] = None
    tag: Optional[str] = None
    ref: Optional[str] = None
    submodules: bool = False

    @field_validator("branch", "tag", "ref", mode="before")
    @classmethod
    def validate_ref(cls, v) -> Optional[str]:
        # YAML turns all-digit revisions into ints
        return normalize_ref(v)


class PackageDeclaration(GitOptions):
    """A package requested by the manifest."""

    name: str = Field(..., description="Package name")
    version: Optional[str] = Field(None, description="Version or requirement")
    git: Optional[str] = Field(None, description="Inline git source URI")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_non_empty_string(v)

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v) -> Optional[str]:
        if v is None:
            return None
        return validate_non_empty_string(str(v))

    @model_validator(mode="after")
    def check_git_options(self) -> "PackageDeclaration":
        if not self.git and (self.branch or self.tag or self.ref or self.submodules):
            raise ValueError(
                f"package '{self.name}' sets git options without a 'git' source"
            )
        return self


class GitSourceDeclaration(GitOptions):
    """A git source block and the packages taken from it."""

    uri: str = Field(..., description="Repository URI or local path")
    packages: List[PackageDeclaration] = Field(default_factory=list)

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        return validate_non_empty_string(v)

    @model_validator(mode="after")
    def check_packages(self) -> "GitSourceDeclaration":
        for package in self.packages:
            if package.git:
                raise ValueError(
                    f"package '{package.name}' inside a git block cannot declare its own source"
                )
        return self

    def to_spec(self, base_dir: Optional[Path] = None) -> RepositorySpec:
        uri = self.uri
        if is_local_path(uri):
            uri = normalize_uri(uri, base_dir)
        return RepositorySpec(
            uri=uri,
            branch=self.branch,
            tag=self.tag,
            ref=self.ref,
            submodules=self.submodules,
        )


class Manifest(BaseModel):
    """Git sources and registry packages requested by a project."""

    git: List[GitSourceDeclaration] = Field(default_factory=list)
    packages: List[PackageDeclaration] = Field(default_factory=list)
    base_dir: Optional[Path] = Field(None, exclude=True)

    def git_declarations(self) -> List[GitSourceDeclaration]:
        """Block declarations followed by one declaration per inline git package."""
        declarations = list(self.git)
        for package in self.packages:
            if package.git:
                declarations.append(
                    GitSourceDeclaration(
                        uri=package.git,
                        branch=package.branch,
                        tag=package.tag,
                        ref=package.ref,
                        submodules=package.submodules,
                        packages=[
                            PackageDeclaration(name=package.name, version=package.version)
                        ],
                    )
                )
        return declarations

    def registry_packages(self) -> List[PackageDeclaration]:
        return [package for package in self.packages if not package.git]

    @classmethod
    def from_yaml(cls, yaml_str: str, base_dir: Optional[Path] = None) -> "Manifest":
        try:
            data = yaml.safe_load(yaml_str) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Manifest is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError("Manifest must be a mapping with 'git' and 'packages'")
        try:
            manifest = cls(**data)
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest: {e}") from e
        manifest.base_dir = base_dir
        return manifest

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        """Load a manifest file; relative local sources are relative to its directory."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Cannot read manifest {path}: {e}") from e
        return cls.from_yaml(text, base_dir=path.resolve().parent)

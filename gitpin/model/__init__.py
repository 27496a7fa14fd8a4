"""Data model: git sources, package metadata, manifest and lockfile."""

from .lockfile import LockedPackage, LockEntry, Lockfile
from .manifest import GitSourceDeclaration, Manifest, PackageDeclaration
from .metadata import PackageMetadata
from .source import RepositorySpec, ResolvedRevision, normalize_ref, normalize_uri

__all__ = [
    "GitSourceDeclaration",
    "LockEntry",
    "LockedPackage",
    "Lockfile",
    "Manifest",
    "PackageDeclaration",
    "PackageMetadata",
    "RepositorySpec",
    "ResolvedRevision",
    "normalize_ref",
    "normalize_uri",
]

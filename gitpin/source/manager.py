"""
Resolution of git sources into pinned worktrees and lock entries.

Resolution Process:
1. Collapse manifest declarations naming the same repository into one source
2. Use the local override if one is configured (no cache, no fetch)
3. Otherwise clone the repository into the cache, or reuse the cached clone
4. Plain installs reuse the locked revision; updates fetch and re-resolve
5. Check out the revision into its worktree and read the package metadata

The manager is the bridge between the declarations of a manifest and the
lockfile the installer writes.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from gitpin.config import Settings
from gitpin.exceptions import ManifestError, PackageNotFoundInSourceError
from gitpin.git.cache import CacheStore, CloneHandle
from gitpin.git.override import LocalOverrideValidator
from gitpin.git.process import GitRunner, ProcessRunner
from gitpin.git.revision import RevisionResolver
from gitpin.model.lockfile import LockedPackage, LockEntry, Lockfile
from gitpin.model.manifest import Manifest, PackageDeclaration
from gitpin.model.metadata import PackageMetadata, load_worktree_metadata
from gitpin.model.source import (
    RepositorySpec,
    ResolvedRevision,
    normalize_uri,
    parse_repo_url,
)
from gitpin.source.metadata_cache import MetadataCache

logger = logging.getLogger(__name__)

REGISTRY_ANY_VERSION = ">= 0"


class ResolveMode(str, Enum):
    """Whether locked revisions are kept (install) or re-resolved (update)."""

    INSTALL = "install"
    UPDATE = "update"


@dataclass
class GitSource:
    """One repository of the manifest and every package requested from it."""

    spec: RepositorySpec
    requested: List[PackageDeclaration] = field(default_factory=list)

    @property
    def uri(self) -> str:
        return self.spec.normalized_uri

    @property
    def package_names(self) -> Set[str]:
        return {package.name for package in self.requested}


@dataclass
class ResolvedSource:
    """A git source after resolution."""

    source: GitSource
    worktree: Path
    lock: LockEntry
    packages: List[PackageMetadata]
    override: bool = False

    def package(self, name: str) -> PackageMetadata:
        for package in self.packages:
            if package.name == name:
                return package
        raise KeyError(name)


@dataclass
class ResolutionResult:
    """Everything one install or update run resolved."""

    sources: List[ResolvedSource]
    lockfile: Lockfile

    def source_for(self, uri: str) -> Optional[ResolvedSource]:
        normalized = normalize_uri(uri)
        for resolved in self.sources:
            if resolved.source.uri == normalized:
                return resolved
        return None


def collect_sources(manifest: Manifest) -> List[GitSource]:
    """
    Group git declarations by normalized repository URI.

    Raises:
        ManifestError: If one repository is declared with different refs
    """
    sources: Dict[str, GitSource] = {}
    for declaration in manifest.git_declarations():
        spec = declaration.to_spec(manifest.base_dir)
        existing = sources.get(spec.normalized_uri)
        if existing is None:
            sources[spec.normalized_uri] = GitSource(spec, list(declaration.packages))
            continue

        if existing.spec.shape != spec.shape or existing.spec.submodules != spec.submodules:
            raise ManifestError(
                f"The git source {spec.normalized_uri} is declared more than once "
                f"with different options ({existing.spec} and {spec})",
                uri=spec.normalized_uri,
            )
        existing.requested.extend(declaration.packages)
    return list(sources.values())


class GitSourceManager:
    """
    Resolves git sources to worktrees and lock entries.

    Usage:
        manager = GitSourceManager.from_settings(load_settings())
        worktree, entry = manager.resolve_source(spec, existing_lock, ResolveMode.INSTALL)
    """

    def __init__(
        self,
        store: CacheStore,
        resolver: Optional[RevisionResolver] = None,
        validator: Optional[LocalOverrideValidator] = None,
        metadata_cache: Optional[MetadataCache] = None,
        overrides: Optional[Mapping[str, Path]] = None,
        max_workers: int = 4,
    ):
        """
        Initialize the manager.

        Args:
            store: Cache of bare clones and worktrees
            resolver: Revision resolver (defaults to one over ``store``)
            validator: Local override validator (branch check enabled by default)
            metadata_cache: Parsed metadata cache (defaults to one in the git cache)
            overrides: Local override bindings, repository URI -> directory
            max_workers: Repositories resolved in parallel
        """
        self.store = store
        self.resolver = resolver or RevisionResolver(store)
        self.validator = validator or LocalOverrideValidator()
        self.metadata_cache = metadata_cache or MetadataCache(store.cache_dir)
        self.overrides = {
            normalize_uri(uri): Path(path).expanduser()
            for uri, path in (overrides or {}).items()
        }
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_settings(
        cls, settings: Settings, runner: Optional[ProcessRunner] = None
    ) -> "GitSourceManager":
        runner = runner or ProcessRunner(timeout=settings.timeout)
        store = CacheStore(
            settings.git_cache_dir, settings.worktree_dir, git=GitRunner(runner)
        )
        return cls(
            store,
            validator=LocalOverrideValidator(settings.disable_local_branch_check),
            overrides=settings.overrides,
            max_workers=settings.max_workers,
        )

    def override_for(self, spec: RepositorySpec) -> Optional[Path]:
        if spec.local_override is not None:
            return spec.local_override
        return self.overrides.get(spec.normalized_uri)

    def resolve_source(
        self,
        spec: RepositorySpec,
        existing_lock: Optional[LockEntry] = None,
        mode: ResolveMode = ResolveMode.INSTALL,
    ) -> Tuple[Path, LockEntry]:
        """
        Produce the worktree and lock entry for one git source.

        A plain install of a source whose declaration still matches its lock
        entry checks out exactly the locked revision, without contacting the
        remote when the commit is cached. Updates, new sources and sources
        whose declaration changed are resolved against the remote.

        Returns:
            Tuple of (worktree_path, lock_entry); the entry lists no packages yet
        """
        uri = spec.normalized_uri
        override = self.override_for(spec)
        if override is not None:
            locked = None
            if mode is ResolveMode.INSTALL and existing_lock is not None:
                if existing_lock.matches(spec):
                    locked = existing_lock.revision
            revision = self.validator.validate(spec, override, locked)
            return override, LockEntry.from_spec(spec, revision.sha)

        with self.store.lock(uri):
            handle = self.store.ensure_clone(uri, spec.fetch_uri)

            if mode is ResolveMode.INSTALL and existing_lock is not None:
                if existing_lock.matches(spec):
                    revision = self.resolver.resolve_locked(handle, existing_lock.revision)
                    return self._materialize(handle, revision, spec)
                logger.info(f"The git source {uri} changed, resolving it again")

            revision = self.resolver.resolve(handle, spec.ref_specifier)
            return self._materialize(handle, revision, spec)

    def _materialize(
        self, handle: CloneHandle, revision: ResolvedRevision, spec: RepositorySpec
    ) -> Tuple[Path, LockEntry]:
        if not self.store.is_materialized(handle.uri, revision.sha):
            # A fresh checkout replaces whatever metadata was read before
            self.metadata_cache.invalidate(handle.uri, revision.sha)
        elif spec.submodules and not self.store.has_submodules(handle.uri, revision.sha):
            self.metadata_cache.invalidate(handle.uri, revision.sha, submodules=True)
        worktree = self.store.materialize(handle, revision, spec.submodules)
        return worktree, LockEntry.from_spec(spec, revision.sha)

    def load_packages(
        self, source: GitSource, worktree: Path, revision: str, override: bool = False
    ) -> List[PackageMetadata]:
        """
        Read the packages a resolved worktree provides.

        Metadata parsed from a cached worktree is reused for the same revision;
        a local override is always read live.
        """
        uri = source.uri
        submodules = source.spec.submodules
        if not override:
            cached = self.metadata_cache.get(uri, revision, submodules)
            if cached:
                return cached

        requested = [(package.name, package.version) for package in source.requested]
        packages = load_worktree_metadata(
            worktree,
            uri,
            requested=requested,
            directory_name=Path(parse_repo_url(uri)).name,
            include_submodules=submodules or override,
        )
        if not override and not any(package.fabricated for package in packages):
            self.metadata_cache.put(uri, revision, packages, submodules)
        return packages

    @staticmethod
    def find_package(
        uri: str,
        packages: Iterable[PackageMetadata],
        name: str,
        requirement: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> PackageMetadata:
        """
        Pick the package ``name`` matching ``requirement``.

        Raises:
            PackageNotFoundInSourceError: Listing what the source does contain
        """
        packages = list(packages)
        for package in packages:
            if package.name == name and package.satisfies(requirement):
                return package
        raise PackageNotFoundInSourceError(
            uri,
            name,
            requirement,
            available=[f"'{package.name}' at: {package.version}" for package in packages],
            revision=revision,
        )

    def resolve_git_source(
        self,
        source: GitSource,
        existing_lock: Optional[LockEntry],
        mode: ResolveMode,
    ) -> ResolvedSource:
        """Resolve one collapsed source and check its requested packages."""
        override = self.override_for(source.spec) is not None
        worktree, entry = self.resolve_source(source.spec, existing_lock, mode)

        with self.store.lock(source.uri):
            packages = self.load_packages(source, worktree, entry.revision, override)

        locked: Dict[str, LockedPackage] = {}
        for declaration in source.requested:
            package = self.find_package(
                source.uri, packages, declaration.name, declaration.version, entry.revision
            )
            locked[package.name] = LockedPackage(package.name, package.version)

        return ResolvedSource(
            source=source,
            worktree=worktree,
            lock=entry.with_packages(locked.values()),
            packages=packages,
            override=override,
        )

    def resolve_manifest(
        self,
        manifest: Manifest,
        lockfile: Optional[Lockfile] = None,
        mode: ResolveMode = ResolveMode.INSTALL,
        update_names: Optional[Iterable[str]] = None,
    ) -> ResolutionResult:
        """
        Resolve every git source of ``manifest`` and build the new lockfile.

        Distinct repositories are resolved in parallel. With ``update_names``
        an update only re-resolves the sources providing those packages; the
        others keep their locked revisions.
        """
        lockfile = lockfile or Lockfile()
        sources = collect_sources(manifest)
        names = set(update_names) if update_names else None

        def source_mode(source: GitSource) -> ResolveMode:
            if mode is ResolveMode.UPDATE and names is not None:
                if not (source.package_names & names):
                    return ResolveMode.INSTALL
            return mode

        resolved: Dict[str, ResolvedSource] = {}
        if sources:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {
                    pool.submit(
                        self.resolve_git_source,
                        source,
                        lockfile.entry_for(source.uri),
                        source_mode(source),
                    ): source
                    for source in sources
                }
                try:
                    for future in as_completed(futures):
                        resolved[futures[future].uri] = future.result()
                except BaseException:
                    # Sources not started yet are dropped, running ones finish
                    for future in futures:
                        future.cancel()
                    raise

        ordered = [resolved[source.uri] for source in sources]
        registry = [
            LockedPackage(package.name, package.version or REGISTRY_ANY_VERSION)
            for package in manifest.registry_packages()
        ]
        new_lockfile = Lockfile(
            git_sources=[item.lock for item in ordered], registry_packages=registry
        )
        return ResolutionResult(sources=ordered, lockfile=new_lockfile)

    def populate_cache(self, manifest: Manifest) -> List[Path]:
        """
        Clone or fetch every git source of ``manifest`` without checking out.

        Returns:
            Paths of the cached clones
        """
        paths = []
        for source in collect_sources(manifest):
            if self.override_for(source.spec) is not None:
                logger.info(f"Skipping {source.uri}, it uses a local override")
                continue
            with self.store.lock(source.uri):
                cloned = self.store.is_cloned(source.uri)
                handle = self.store.ensure_clone(source.uri, source.spec.fetch_uri)
                if cloned:
                    self.store.fetch(handle)
            paths.append(handle.path)
        return paths

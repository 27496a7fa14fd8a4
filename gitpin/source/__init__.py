from .manager import (
    GitSource,
    GitSourceManager,
    ResolutionResult,
    ResolvedSource,
    ResolveMode,
    collect_sources,
)
from .metadata_cache import MetadataCache

__all__ = [
    "GitSource",
    "GitSourceManager",
    "MetadataCache",
    "ResolutionResult",
    "ResolvedSource",
    "ResolveMode",
    "collect_sources",
]

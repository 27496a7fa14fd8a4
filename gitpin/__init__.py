"""Git-backed package sources: pinned, cached and reproducible checkouts."""

__version__ = "0.1.0"

"""repo-radar: Trending repository discovery and momentum tracking."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("repo-radar")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]

"""ragtiers: tiered query resolution for real-estate retrieval-augmented generation."""

from ragtiers.version import __version__

__all__ = ["__version__"]

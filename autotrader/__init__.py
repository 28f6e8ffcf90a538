"""Auto Trader command-line package."""

from packages.papertrade import __version__

__all__ = ["__version__"]

"""Safe transfer of data onto removable drives: mount, copy with verification, unmount, format."""

from .__version__ import __version__

__all__ = ["__version__"]

"""
Version information for the biomes client package (PEP 440).
"""

from __future__ import annotations

VERSION_MAJOR = 0
VERSION_MINOR = 3
VERSION_PATCH = 0
VERSION_SUFFIX = ""  # e.g., "a1", "rc1", or "" for final

VERSION_INFO = (VERSION_MAJOR, VERSION_MINOR, VERSION_PATCH)
__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"
if VERSION_SUFFIX:
    __version__ += VERSION_SUFFIX

PACKAGE_NAME = "biomes-client"


def get_version() -> str:
    """Return the current version string."""
    return __version__


__all__ = [
    "__version__",
    "VERSION_INFO",
    "PACKAGE_NAME",
    "get_version",
]

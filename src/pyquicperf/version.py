"""Version information and package metadata."""

from __future__ import annotations

__all__: list[str] = [
    "MAJOR",
    "MINOR",
    "PATCH",
    "__description__",
    "__license__",
    "__version__",
    "__version_info__",
    "get_version",
    "get_version_info",
    "is_stable",
]

__version__ = "0.3.0"
__version_info__: tuple[int, int, int] = (0, 3, 0)

__license__ = "MIT"
__description__ = "A QUIC bulk-transfer throughput benchmark built on aioquic."

MAJOR, MINOR, PATCH = __version_info__


def get_version() -> str:
    """Get the package version string."""
    return __version__


def get_version_info() -> tuple[int, int, int]:
    """Get the package version as a tuple."""
    return __version_info__


def is_stable() -> bool:
    """Check if this is a stable release."""
    return MAJOR >= 1

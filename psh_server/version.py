"""Version information for the psh relay."""

from importlib.metadata import PackageNotFoundError, version

_VERSION: str | None = None


def get_version() -> str:
    """
    Get the installed distribution version.

    Returns:
        Version string (e.g., "0.3.0"), or "unknown" when not installed
    """
    global _VERSION

    if _VERSION is None:
        try:
            _VERSION = version("psh-server")
        except PackageNotFoundError:
            _VERSION = "unknown"
    return _VERSION

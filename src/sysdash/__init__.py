__all__ = ["__version__"]

# Derive version from installed package metadata to avoid drift with pyproject.toml
from importlib.metadata import PackageNotFoundError, version as _pkg_version


def _detect_version() -> str:
    try:
        return _pkg_version("sysdash")
    except PackageNotFoundError:
        # Fallback for uninstalled source checkouts
        return "0.0.0+dev"


__version__ = _detect_version()

"Music library importer: release reconciliation and library queries."

from importlib import metadata

__all__ = ["__version__"]

DIST_NAME = "audio-catalog"


def __getattr__(name: str) -> str:
    if name != "__version__":
        raise AttributeError(name)
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:  # pragma: no cover - running from a source checkout
        return "0.0.0"

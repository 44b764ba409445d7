try:
    from ._version import version as __version__  # written by setuptools-scm at build time
except ImportError:
    from importlib.metadata import version, PackageNotFoundError
    try:
        __version__ = version("atlantis-viz")
    except PackageNotFoundError:
        __version__ = "0+unknown"

from .errors import SchemaError, SelectionError, JoinGapWarning
from .plots.spatial_ts import plot_spatial_ts, SpeciesArtifact, StanzaPanel, LayoutHints

__all__ = [
    "__version__",
    "SchemaError",
    "SelectionError",
    "JoinGapWarning",
    "plot_spatial_ts",
    "SpeciesArtifact",
    "StanzaPanel",
    "LayoutHints",
]

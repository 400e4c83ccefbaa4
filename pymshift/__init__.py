from importlib import metadata as _metadata

from .balls import Balls
from .clustering import MeanShift
from .data import DataMatrix
from .kernels import get_kernel
from .rng import PhiloxRNG
from .spatial import Spatial

try:  # Prefer installed package metadata
    __version__ = _metadata.version("pymshift")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local dev
    __version__ = "0.0.0"

__all__ = [
    "Balls",
    "DataMatrix",
    "MeanShift",
    "PhiloxRNG",
    "Spatial",
    "get_kernel",
    "__version__",
]

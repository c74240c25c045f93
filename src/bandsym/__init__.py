"""Bandsym – symmetry vectors of photonic bands from MPB symmetry-eigenvalue output."""
from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - executed only when installed as a package
    __version__ = version("bandsym")
except PackageNotFoundError:  # pragma: no cover - local editable installs
    __version__ = "0.0.0"

from .calcname import parse_dim, parse_sgnum  # noqa: E402
from .decompose import find_representation, symdata2representation  # noqa: E402
from .mpbio import load_symdata  # noqa: E402

__all__ = [
    "__version__",
    "find_representation",
    "load_symdata",
    "parse_dim",
    "parse_sgnum",
    "symdata2representation",
]

"""Readers for MPB dispersion and symmetry-eigenvalue output files."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .calcname import resolve_metadata
from .groups import bravais_type, centering, reference_operations
from .symops import SymOperation, centering_matrix

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Leading columns of a dispersion row: k index, k1, k2, k3, |k|/2π.
DISPERSION_META_COLUMNS = 5

# Named points per dimension and Bravais type, in conventional reciprocal
# coordinates. Oblique, monoclinic and triclinic lattices only get Γ.
SPECIAL_POINTS: Dict[int, Dict[str, Dict[str, Tuple[float, ...]]]] = {
    1: {"p": {"X": (0.5,)}},
    2: {
        "tp": {"X": (0.5, 0.0), "M": (0.5, 0.5)},
        "op": {"X": (0.5, 0.0), "Y": (0.0, 0.5), "S": (0.5, 0.5)},
        "oc": {"Y": (1.0, 0.0), "S": (0.5, 0.5)},
        "hp": {"M": (0.5, 0.0), "K": (1 / 3, 1 / 3)},
    },
    3: {
        "cP": {"X": (0.0, 0.5, 0.0), "M": (0.5, 0.5, 0.0), "R": (0.5, 0.5, 0.5)},
        "cF": {"X": (0.0, 1.0, 0.0), "L": (0.5, 0.5, 0.5), "W": (0.5, 1.0, 0.0)},
        "cI": {"H": (0.0, 1.0, 0.0), "N": (0.5, 0.5, 0.0), "P": (0.5, 0.5, 0.5)},
        "hP": {
            "M": (0.5, 0.0, 0.0),
            "K": (1 / 3, 1 / 3, 0.0),
            "A": (0.0, 0.0, 0.5),
            "L": (0.5, 0.0, 0.5),
            "H": (1 / 3, 1 / 3, 0.5),
        },
        "hR": {"T": (0.0, 0.0, 1.5), "L": (0.5, 0.0, 0.5), "F": (0.0, 0.5, 1.0)},
        "tP": {
            "X": (0.0, 0.5, 0.0),
            "M": (0.5, 0.5, 0.0),
            "Z": (0.0, 0.0, 0.5),
            "R": (0.0, 0.5, 0.5),
            "A": (0.5, 0.5, 0.5),
        },
        "tI": {"M": (0.0, 0.0, 1.0), "X": (0.5, 0.5, 0.0), "N": (0.0, 0.5, 0.5), "P": (0.5, 0.5, 0.5)},
        "oP": {
            "X": (0.5, 0.0, 0.0),
            "Y": (0.0, 0.5, 0.0),
            "Z": (0.0, 0.0, 0.5),
            "U": (0.5, 0.0, 0.5),
            "T": (0.0, 0.5, 0.5),
            "S": (0.5, 0.5, 0.0),
            "R": (0.5, 0.5, 0.5),
        },
        "oC": {
            "Y": (1.0, 0.0, 0.0),
            "Z": (0.0, 0.0, 0.5),
            "T": (1.0, 0.0, 0.5),
            "S": (0.5, 0.5, 0.0),
            "R": (0.5, 0.5, 0.5),
        },
        "oA": {
            "Y": (0.0, 1.0, 0.0),
            "Z": (0.5, 0.0, 0.0),
            "T": (0.5, 1.0, 0.0),
            "S": (0.0, 0.5, 0.5),
            "R": (0.5, 0.5, 0.5),
        },
        "oI": {
            "X": (0.0, 1.0, 0.0),
            "S": (0.0, 0.5, 0.5),
            "R": (0.5, 0.0, 0.5),
            "T": (0.5, 0.5, 0.0),
            "W": (0.5, 0.5, 0.5),
        },
        "oF": {"Z": (0.0, 0.0, 1.0), "Y": (0.0, 1.0, 0.0), "T": (1.0, 0.0, 0.0), "L": (0.5, 0.5, 0.5)},
    },
}


class SymmetryDataError(ValueError):
    """Raised when MPB output files are malformed or inconsistent with each other."""


@dataclass(frozen=True, eq=False)
class LittleGroupData:
    """Operations and frequency-sorted symmetry eigenvalues at one k-point."""

    kidx: int
    kvec: NDArray[np.float64]
    klabel: str
    operations: Tuple[SymOperation, ...]
    freqs: NDArray[np.float64]
    symeigs: NDArray[np.complex128]

    @property
    def dim(self) -> int:
        return int(self.kvec.shape[0])

    @property
    def order(self) -> int:
        return len(self.operations)

    @property
    def num_bands(self) -> int:
        return int(self.freqs.shape[0])


def parse_complex(token: str) -> complex:
    """Parse ``1.0-0.5i``, ``1.0 - 0.5im``, ``(1-0.5j)`` and plain reals."""

    text = str(token).strip().strip('"').strip("'").strip("()").replace(" ", "")
    if text.endswith("im"):
        text = text[:-2] + "j"
    elif text.endswith("i"):
        text = text[:-1] + "j"
    try:
        return complex(text)
    except ValueError as exc:
        raise ValueError(f"Cannot parse complex number from {token!r}") from exc


def _read_table(path: Path, **kwargs) -> pd.DataFrame:
    try:
        return pd.read_csv(path, header=None, dtype=str, keep_default_na=False, **kwargs)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise SymmetryDataError(f"Cannot read {path}: {exc}") from exc


def dispersion_path(calcname: str, parentdir: PathLike = ".") -> Path:
    return Path(parentdir) / f"{calcname}-dispersion.out"


def symeigs_path(
    calcname: str,
    sgnum: int,
    dim: int,
    parentdir: PathLike = ".",
    symeigs_dir: str = ".",
) -> Path:
    subdir = symeigs_dir.format(sgnum=sgnum, dim=dim)
    return Path(parentdir) / subdir / f"{calcname}-symeigs.out"


def read_dispersion(
    path: PathLike, dim: int
) -> Tuple[NDArray[np.int64], NDArray[np.float64], NDArray[np.float64]]:
    """Return (k indices, k-vectors ``(Nk, dim)``, frequencies ``(Nk, Nbands)``)."""

    path = Path(path)
    if not path.exists():
        raise SymmetryDataError(f"Dispersion file {path} does not exist")
    frame = _read_table(path, skipinitialspace=True)
    frame = frame.apply(lambda col: col.str.strip())
    frame = frame.loc[:, (frame != "").any(axis=0)]
    if frame.shape[1] and frame.iloc[:, 0].str.endswith(":").all():
        frame = frame.iloc[:, 1:]  # MPB's "freqs:" line prefix

    numeric = frame.apply(pd.to_numeric, errors="coerce")
    numeric = numeric[numeric.iloc[:, 0].notna()]
    if numeric.empty:
        raise SymmetryDataError(f"No numeric rows in dispersion file {path}")
    if numeric.shape[1] <= DISPERSION_META_COLUMNS:
        raise SymmetryDataError(
            f"Dispersion file {path} has {numeric.shape[1]} columns; expected k index, "
            "three k coordinates, |k| and at least one band"
        )
    if numeric.isna().any().any():
        raise SymmetryDataError(f"Non-numeric entries in dispersion file {path}")

    data = numeric.to_numpy(dtype=np.float64)
    kidxs = np.rint(data[:, 0]).astype(np.int64)
    kvecs = data[:, 1 : 1 + dim]
    freqs = data[:, DISPERSION_META_COLUMNS:]
    log.debug("Read %d k-points and %d bands from %s", len(kidxs), freqs.shape[1], path)
    return kidxs, kvecs, freqs


def read_symeigs(
    path: PathLike, dim: int
) -> List[Tuple[int, SymOperation, NDArray[np.complex128]]]:
    """Return ``(k index, operation, eigenvalues per MPB band)`` for every row."""

    path = Path(path)
    if not path.exists():
        raise SymmetryDataError(f"Symmetry-eigenvalue file {path} does not exist")
    frame = _read_table(path, quotechar='"', skipinitialspace=True)
    if frame.shape[1] < 3:
        raise SymmetryDataError(f"{path} must hold a k index, an operation and eigenvalues")

    rows: List[Tuple[int, SymOperation, NDArray[np.complex128]]] = []
    for line_no, record in enumerate(frame.itertuples(index=False), start=1):
        try:
            kidx = int(str(record[0]).strip())
            op = SymOperation.from_xyzt(str(record[1]), dim)
            values = np.array(
                [parse_complex(tok) for tok in record[2:] if str(tok).strip()],
                dtype=np.complex128,
            )
        except ValueError as exc:
            raise SymmetryDataError(f"{path}, row {line_no}: {exc}") from exc
        rows.append((kidx, op, values))
    log.debug("Read %d symmetry-eigenvalue rows from %s", len(rows), path)
    return rows


def _same_kpoint(k: NDArray[np.float64], ref: NDArray[np.float64], atol: float) -> bool:
    delta = k - ref
    return bool(np.allclose(delta, np.rint(delta), atol=atol))


def label_kpoint(
    kvec: Sequence[float],
    sgnum: int,
    dim: int,
    kidx: int,
    klabels: Optional[Mapping[str, Sequence[float]]] = None,
    atol: float = 1e-6,
    isprimitive: bool = True,
) -> str:
    """Name a k-point.

    Explicit ``klabels`` come first, then Γ, then the named points of the
    Bravais lattice together with their images under the point group.
    ``kvec`` and ``klabels`` are in the primitive reciprocal basis, or in the
    conventional one when ``isprimitive`` is false. Unnamed points become
    ``k{kidx}``.
    """

    k = np.asarray(kvec, dtype=np.float64)
    # reciprocal lattice vectors are integral in the primitive basis
    basis = centering_matrix(centering(sgnum, dim), dim)
    setting = np.eye(dim) if isprimitive else basis
    kprim = k @ setting
    candidates: List[Tuple[str, Sequence[float]]] = list((klabels or {}).items())
    candidates.append(("Γ", (0.0,) * dim))
    for label, coords in candidates:
        ref = np.asarray(coords, dtype=np.float64)
        if ref.shape != k.shape:
            raise ValueError(f"k-label {label!r} has {ref.size} coordinates, expected {dim}")
        if _same_kpoint(kprim, ref @ setting, atol):
            return label

    special = SPECIAL_POINTS.get(dim, {}).get(bravais_type(sgnum, dim), {})
    rotations = [op.rotation for op in reference_operations(sgnum, dim)] if special else []
    for label, coords in special.items():
        ref = np.asarray(coords, dtype=np.float64) @ basis
        if any(_same_kpoint(kprim, ref @ rotation, atol) for rotation in rotations):
            return label
    return f"k{kidx}"


def load_symdata(
    calcname: str,
    sgnum: Optional[int] = None,
    dim: Optional[int] = None,
    *,
    parentdir: PathLike = ".",
    symeigs_dir: str = ".",
    flip_ksign: bool = False,
    klabels: Optional[Mapping[str, Sequence[float]]] = None,
    isprimitive: bool = True,
) -> List[LittleGroupData]:
    """Load the symmetry data of ``calcname`` as one entry per k-point.

    Bands are sorted by frequency at each k-point and every operation's
    eigenvalues are permuted the same way. ``flip_ksign`` negates the k-vectors
    read from the dispersion file before labelling. ``isprimitive`` names the
    reciprocal basis of the k-vectors for the special-point labels.
    """

    sgnum, dim = resolve_metadata(calcname, sgnum, dim)
    kidxs, kvecs, freqs = read_dispersion(dispersion_path(calcname, parentdir), dim)
    rows = read_symeigs(symeigs_path(calcname, sgnum, dim, parentdir, symeigs_dir), dim)

    known = set(int(k) for k in kidxs)
    grouped: Dict[int, List[Tuple[SymOperation, NDArray[np.complex128]]]] = {}
    for kidx, op, values in rows:
        if kidx not in known:
            raise SymmetryDataError(f"k index {kidx} in symeigs file is absent from the dispersion file")
        if values.shape[0] != freqs.shape[1]:
            raise SymmetryDataError(
                f"k index {kidx}, operation {op.xyzt()}: {values.shape[0]} eigenvalues "
                f"but {freqs.shape[1]} bands in the dispersion file"
            )
        grouped.setdefault(kidx, []).append((op, values))

    lgs: List[LittleGroupData] = []
    for row, kidx in enumerate(kidxs):
        entries = grouped.get(int(kidx))
        if not entries:
            log.warning("k index %d has no symmetry eigenvalues; skipping", kidx)
            continue
        perm = np.argsort(freqs[row], kind="stable")
        kvec = -kvecs[row] if flip_ksign else kvecs[row].copy()
        kvec = kvec + 0.0  # normalise -0.0
        label = label_kpoint(kvec, sgnum, dim, int(kidx), klabels, isprimitive=isprimitive)
        lgs.append(
            LittleGroupData(
                kidx=int(kidx),
                kvec=kvec,
                klabel=label,
                operations=tuple(op for op, _ in entries),
                freqs=freqs[row][perm],
                symeigs=np.array([values[perm] for _, values in entries]),
            )
        )
    log.info("Loaded %d little groups for %s (sg %d, %dD)", len(lgs), calcname, sgnum, dim)
    return lgs


__all__ = [
    "LittleGroupData",
    "SPECIAL_POINTS",
    "SymmetryDataError",
    "dispersion_path",
    "label_kpoint",
    "load_symdata",
    "parse_complex",
    "read_dispersion",
    "read_symeigs",
    "symeigs_path",
]

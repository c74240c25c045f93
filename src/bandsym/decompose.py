"""Project band-summed symmetry eigenvalues onto little-group irreps."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .calcname import resolve_metadata
from .irreps import (
    LittleGroupIrreps,
    check_reference_group,
    little_group_irreps,
    primitive_little_group,
)
from .mpbio import LittleGroupData, PathLike, SymmetryDataError, load_symdata

log = logging.getLogger(__name__)

DEFAULT_ATOL = 1e-3
DEFAULT_DEGENERACY_ATOL = 1e-4
DEFAULT_DEGENERACY_RTOL = 1e-3
ZERO_FREQUENCY_TOL = 1e-4


@dataclass(frozen=True, eq=False)
class KPointRepresentation:
    kidx: int
    klabel: str
    kvec: NDArray[np.float64]
    bands: Tuple[int, ...]
    irrep_labels: Tuple[str, ...]
    irrep_dims: Tuple[int, ...]
    overlaps: NDArray[np.complex128]
    multiplicities: Optional[NDArray[np.int64]]
    widened: bool = False
    singular: bool = False

    @property
    def resolved(self) -> bool:
        return self.multiplicities is not None


@dataclass(frozen=True, eq=False)
class SymmetryVector:
    calcname: str
    sgnum: int
    dim: int
    bands: Tuple[int, ...]
    timereversal: bool
    kpoints: List[KPointRepresentation] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return all(kp.resolved for kp in self.kpoints)

    def labels(self) -> List[str]:
        return [label for kp in self.kpoints for label in kp.irrep_labels]

    def as_array(self) -> NDArray[np.int64]:
        """Concatenated multiplicities over all k-points."""

        if not self.resolved:
            unresolved = [kp.klabel for kp in self.kpoints if not kp.resolved]
            raise ValueError(f"Multiplicities are not integral at {unresolved}")
        return np.concatenate([kp.multiplicities for kp in self.kpoints]).astype(np.int64)


def band_symvals(
    symeigs: NDArray[np.complex128], bands: Sequence[int]
) -> NDArray[np.complex128]:
    """Sum the symmetry eigenvalues of ``bands`` for each operation."""

    bands = list(bands)
    if not bands:
        raise ValueError("Band window is empty")
    if min(bands) < 0 or max(bands) >= symeigs.shape[1]:
        raise SymmetryDataError(
            f"Band window {min(bands) + 1}-{max(bands) + 1} lies outside the {symeigs.shape[1]} computed bands"
        )
    return symeigs[:, bands].sum(axis=1)


def find_representation(
    symvals: NDArray[np.complex128],
    characters: NDArray[np.complex128],
    atol: float = DEFAULT_ATOL,
) -> Tuple[Optional[NDArray[np.int64]], NDArray[np.complex128]]:
    """Return (integer multiplicities or ``None``, raw overlaps).

    The overlap with irrep ``i`` is ``Σ_g χ_i(g)* s(g) / Σ_g |χ_i(g)|²``; the
    normalisation keeps real irreps built from complex-conjugate pairs at unit
    weight.
    """

    norms = np.sum(np.abs(characters) ** 2, axis=1)
    overlaps = (characters.conj() @ symvals) / norms
    rounded = np.rint(overlaps.real)
    if np.any(np.abs(overlaps.imag) > atol) or np.any(np.abs(overlaps.real - rounded) > atol):
        return None, overlaps
    return rounded.astype(np.int64), overlaps


def find_degeneracies(
    freqs: Sequence[float],
    atol: float = DEFAULT_DEGENERACY_ATOL,
    rtol: float = DEFAULT_DEGENERACY_RTOL,
) -> List[List[int]]:
    """Group consecutive sorted bands whose frequencies agree within tolerance."""

    freqs = np.asarray(freqs, dtype=np.float64)
    if freqs.size == 0:
        return []
    groups = [[0]]
    for n in range(1, freqs.size):
        prev = freqs[groups[-1][-1]]
        if abs(freqs[n] - prev) <= atol + rtol * abs(prev):
            groups[-1].append(n)
        else:
            groups.append([n])
    return groups


def widen_band_window(
    freqs: Sequence[float],
    bands: Sequence[int],
    atol: float = DEFAULT_DEGENERACY_ATOL,
    rtol: float = DEFAULT_DEGENERACY_RTOL,
) -> Tuple[int, ...]:
    """Add every band degenerate with a band of the window."""

    selected = set(bands)
    widened = set(selected)
    for group in find_degeneracies(freqs, atol, rtol):
        if selected.intersection(group):
            widened.update(group)
    return tuple(sorted(widened))


def decompose_kpoint(
    lg: LittleGroupData,
    lgirreps: LittleGroupIrreps,
    bands: Sequence[int],
    atol: float = DEFAULT_ATOL,
    widen: bool = True,
    degeneracy_atol: float = DEFAULT_DEGENERACY_ATOL,
    degeneracy_rtol: float = DEFAULT_DEGENERACY_RTOL,
) -> KPointRepresentation:
    bands = tuple(bands)
    multiplicities, overlaps = find_representation(
        band_symvals(lg.symeigs, bands), lgirreps.characters, atol
    )
    widened = False
    if multiplicities is None and widen:
        wider = widen_band_window(lg.freqs, bands, degeneracy_atol, degeneracy_rtol)
        if wider != bands:
            log.info(
                "%s: fractional multiplicities for bands %s; widening to degenerate bands %s",
                lg.klabel, _one_based(bands), _one_based(wider),
            )
            bands, widened = wider, True
            multiplicities, overlaps = find_representation(
                band_symvals(lg.symeigs, bands), lgirreps.characters, atol
            )
    if multiplicities is None:
        log.warning(
            "%s (k index %d): non-integral multiplicities %s for bands %s",
            lg.klabel, lg.kidx, np.round(overlaps.real, 3).tolist(), _one_based(bands),
        )

    singular = bool(np.allclose(lg.kvec, 0.0) and np.any(lg.freqs[list(bands)] < ZERO_FREQUENCY_TOL))
    if singular:
        log.warning(
            "%s: bands %s include ω≈0; irreps at Γ are ill-defined there",
            lg.klabel, _one_based(bands),
        )
    return KPointRepresentation(
        kidx=lg.kidx,
        klabel=lg.klabel,
        kvec=lg.kvec,
        bands=bands,
        irrep_labels=lgirreps.labels,
        irrep_dims=lgirreps.dims,
        overlaps=overlaps,
        multiplicities=multiplicities,
        widened=widened,
        singular=singular,
    )


def symdata2representation(
    calcname: str,
    bands: Sequence[int] = range(2),
    sgnum: Optional[int] = None,
    dim: Optional[int] = None,
    *,
    parentdir: PathLike = ".",
    symeigs_dir: str = ".",
    timereversal: bool = True,
    isprimitive: bool = True,
    atol: float = DEFAULT_ATOL,
    kidxs: Optional[Sequence[int]] = None,
    flip_ksign: bool = False,
    klabels: Optional[Mapping[str, Sequence[float]]] = None,
    widen: bool = True,
    degeneracy_atol: float = DEFAULT_DEGENERACY_ATOL,
    degeneracy_rtol: float = DEFAULT_DEGENERACY_RTOL,
    check_reference: bool = True,
) -> SymmetryVector:
    """Symmetry vector of the bands ``bands`` (0-based) of calculation ``calcname``.

    Space-group number and dimension are parsed from ``calcname`` unless given.

    Args:
        timereversal: use physically irreducible (real) irreps at k-points
            equivalent to their negative.
        isprimitive: the calculation uses a primitive setting; the tabulated
            operations are primitivised before the operator-list comparison.
            Conventional-setting data of centred lattices is transformed to
            the primitive setting before the irreps are built.
        atol: tolerance on the distance of each overlap from an integer.
        kidxs: restrict to these MPB k indices (1-based, as in the files).
        flip_ksign: negate the k-vectors read from the dispersion file.
        klabels: explicit ``label -> coordinates`` names for k-points.
        widen: on fractional multiplicities retry with all bands degenerate
            with the window.
        check_reference: compare each operator list with the tabulated
            little group of the space group.

    Returns:
        SymmetryVector: one entry per k-point, in file order.
    """

    sgnum, dim = resolve_metadata(calcname, sgnum, dim)
    lgs = load_symdata(
        calcname,
        sgnum,
        dim,
        parentdir=parentdir,
        symeigs_dir=symeigs_dir,
        flip_ksign=flip_ksign,
        klabels=klabels,
        isprimitive=isprimitive,
    )
    if kidxs is not None:
        wanted = set(int(k) for k in kidxs)
        missing = wanted - {lg.kidx for lg in lgs}
        if missing:
            raise ValueError(f"k indices {sorted(missing)} have no symmetry data")
        lgs = [lg for lg in lgs if lg.kidx in wanted]

    band_tuple = tuple(int(b) for b in bands)
    vector = SymmetryVector(
        calcname=calcname,
        sgnum=sgnum,
        dim=dim,
        bands=band_tuple,
        timereversal=timereversal,
    )
    for lg in lgs:
        if check_reference:
            check_reference_group(lg, sgnum, dim, isprimitive)
        setting = lg if isprimitive else primitive_little_group(lg, sgnum, dim)
        lgirreps = little_group_irreps(setting, timereversal)
        vector.kpoints.append(
            decompose_kpoint(
                lg,
                lgirreps,
                band_tuple,
                atol=atol,
                widen=widen,
                degeneracy_atol=degeneracy_atol,
                degeneracy_rtol=degeneracy_rtol,
            )
        )
    log.info(
        "%s: %d/%d k-points resolved for bands %s",
        calcname, sum(kp.resolved for kp in vector.kpoints), len(vector.kpoints), _one_based(band_tuple),
    )
    return vector


def _one_based(bands: Sequence[int]) -> List[int]:
    return [b + 1 for b in bands]


__all__ = [
    "DEFAULT_ATOL",
    "KPointRepresentation",
    "SymmetryVector",
    "band_symvals",
    "decompose_kpoint",
    "find_degeneracies",
    "find_representation",
    "symdata2representation",
    "widen_band_window",
]

"""Synthetic MPB output files with a prescribed irrep content.

Useful for development environments that lack MPB and for smoke tests: the
symmetry eigenvalues of each band are the characters of the chosen irreps,
split evenly over their degenerate partners.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .calcname import mpb_calcname
from .groups import reference_little_group
from .irreps import LittleGroupIrreps, little_group_irreps
from .mpbio import LittleGroupData, dispersion_path, symeigs_path
from .symops import SymOperation, centering_matrix


@dataclass(frozen=True, eq=False)
class SyntheticKPoint:
    kvec: Tuple[float, ...]
    operations: Tuple[SymOperation, ...]
    freqs: NDArray[np.float64]
    symeigs: NDArray[np.complex128]
    irreps: LittleGroupIrreps
    sequence: Tuple[int, ...]


def bands_from_irreps(
    characters: NDArray[np.complex128],
    dims: Sequence[int],
    sequence: Sequence[int],
    base_freq: float = 0.2,
    spacing: float = 0.05,
) -> Tuple[NDArray[np.float64], NDArray[np.complex128]]:
    """Frequencies ``(n_bands,)`` and eigenvalues ``(n_ops, n_bands)`` for ``sequence``.

    ``sequence`` lists irrep indices in ascending frequency; every irrep of
    dimension d becomes d degenerate bands.
    """

    freqs = []
    columns = []
    for level, irrep in enumerate(sequence):
        dim = int(dims[irrep])
        for _ in range(dim):
            freqs.append(base_freq + spacing * level)
            columns.append(characters[irrep] / dim)
    return np.array(freqs, dtype=np.float64), np.array(columns, dtype=np.complex128).T


def synthesize_kpoint(
    kidx: int,
    kvec: Sequence[float],
    operations: Sequence[SymOperation],
    sequence: Sequence[int],
    klabel: str = "k",
    timereversal: bool = True,
    base_freq: float = 0.2,
    spacing: float = 0.05,
) -> SyntheticKPoint:
    kvec = tuple(float(k) for k in kvec)
    ops = tuple(operations)
    blank = LittleGroupData(
        kidx=kidx,
        kvec=np.array(kvec),
        klabel=klabel,
        operations=ops,
        freqs=np.zeros(1),
        symeigs=np.zeros((len(ops), 1), dtype=np.complex128),
    )
    irreps = little_group_irreps(blank, timereversal)
    bad = [i for i in sequence if not 0 <= i < irreps.num_irreps]
    if bad:
        raise ValueError(f"Irrep indices {bad} out of range; {klabel} has {irreps.num_irreps} irreps")
    freqs, symeigs = bands_from_irreps(irreps.characters, irreps.dims, sequence, base_freq, spacing)
    return SyntheticKPoint(kvec, ops, freqs, symeigs, irreps, tuple(sequence))


def conventional_kpoint(kp: SyntheticKPoint, centering: str) -> SyntheticKPoint:
    """Re-express a primitive-setting k-point in the conventional setting of ``centering``."""

    inverse = np.linalg.inv(centering_matrix(centering, len(kp.kvec)))
    return replace(
        kp,
        kvec=tuple(float(k) for k in np.asarray(kp.kvec) @ inverse),
        operations=tuple(op.transform(inverse).reduced() for op in kp.operations),
    )


def _format_complex(value: complex) -> str:
    return f"{value.real:.8f}{value.imag:+.8f}i"


def write_mpb_outputs(
    parentdir: Path | str,
    calcname: str,
    kpoints: Sequence[SyntheticKPoint],
    sgnum: int,
    dim: int,
    symeigs_dir: str = ".",
    rng: Optional[np.random.Generator] = None,
) -> Tuple[Path, Path]:
    """Write ``-dispersion.out`` and ``-symeigs.out`` files in MPB's layout.

    With ``rng`` the band order of every k-point is shuffled, imitating MPB
    output that is not sorted by frequency.
    """

    num_bands = {kp.freqs.shape[0] for kp in kpoints}
    if len(num_bands) != 1:
        raise ValueError("All synthetic k-points must carry the same number of bands")

    disp_file = dispersion_path(calcname, parentdir)
    sym_file = symeigs_path(calcname, sgnum, dim, parentdir, symeigs_dir)
    disp_file.parent.mkdir(parents=True, exist_ok=True)
    sym_file.parent.mkdir(parents=True, exist_ok=True)

    disp_lines = []
    sym_lines = []
    for kidx, kp in enumerate(kpoints, start=1):
        perm = rng.permutation(kp.freqs.shape[0]) if rng is not None else np.arange(kp.freqs.shape[0])
        k3 = np.zeros(3)
        k3[:dim] = kp.kvec
        fields = [str(kidx)] + [f"{k:.8f}" for k in k3] + [f"{np.linalg.norm(k3):.8f}"]
        fields += [f"{f:.8f}" for f in kp.freqs[perm]]
        disp_lines.append("freqs:, " + ", ".join(fields))
        for op, values in zip(kp.operations, kp.symeigs):
            eigs = ", ".join(_format_complex(v) for v in values[perm])
            sym_lines.append(f'{kidx}, "{op.xyzt()}", {eigs}')

    disp_file.write_text("\n".join(disp_lines) + "\n")
    sym_file.write_text("\n".join(sym_lines) + "\n")
    return disp_file, sym_file


def fill_sequence(dims: Sequence[int], num_bands: int) -> Tuple[int, ...]:
    """Cycle through the irreps, taking each one that still fits, until ``num_bands`` bands are used."""

    sequence: list[int] = []
    remaining = num_bands
    while remaining > 0:
        fitted = False
        for irrep, dim in enumerate(dims):
            if 0 < dim <= remaining:
                sequence.append(irrep)
                remaining -= dim
                fitted = True
        if not fitted:
            raise ValueError(f"Cannot fill {num_bands} bands with irreps of dimensions {tuple(dims)}")
    return tuple(sequence)


def demo_calculation(
    parentdir: Path | str,
    sgnum: int = 11,
    dim: int = 2,
    kvecs: Sequence[Sequence[float]] = ((0.0, 0.0), (0.5, 0.0), (0.5, 0.5)),
    num_bands: int = 4,
    rng: Optional[np.random.Generator] = None,
) -> str:
    """Write a small synthetic calculation and return its calcname.

    Every k-point carries ``num_bands`` bands built by :func:`fill_sequence`.
    """

    calcname = mpb_calcname(dim, sgnum, tag="synthetic", res=0)
    kpoints = []
    for kidx, kvec in enumerate(kvecs, start=1):
        ops = reference_little_group(sgnum, dim, kvec)
        blank = synthesize_kpoint(kidx, kvec, ops, sequence=())
        sequence = fill_sequence(blank.irreps.dims, num_bands)
        kpoints.append(synthesize_kpoint(kidx, kvec, ops, sequence=sequence))
    write_mpb_outputs(parentdir, calcname, kpoints, sgnum, dim, rng=rng)
    return calcname


__all__ = [
    "SyntheticKPoint",
    "bands_from_irreps",
    "conventional_kpoint",
    "demo_calculation",
    "fill_sequence",
    "synthesize_kpoint",
    "write_mpb_outputs",
]

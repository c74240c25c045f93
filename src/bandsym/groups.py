"""Tabulated space-group operations used to cross-check MPB operator lists."""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, Sequence, Tuple

import numpy as np
import spglib

from .symops import SymOperation, centering_matrix, generate_group, primitivize, strip_centering

# ITA plane groups: (symbol, generators besides the identity).
PLANE_GROUPS: Dict[int, Tuple[str, Tuple[str, ...]]] = {
    1: ("p1", ()),
    2: ("p2", ("-x,-y",)),
    3: ("pm", ("-x,y",)),
    4: ("pg", ("-x,y+1/2",)),
    5: ("cm", ("-x,y",)),
    6: ("p2mm", ("-x,-y", "-x,y")),
    7: ("p2mg", ("-x,-y", "-x+1/2,y")),
    8: ("p2gg", ("-x,-y", "-x+1/2,y+1/2")),
    9: ("c2mm", ("-x,-y", "-x,y")),
    10: ("p4", ("-y,x",)),
    11: ("p4mm", ("-y,x", "-x,y")),
    12: ("p4gm", ("-y,x", "-x+1/2,y+1/2")),
    13: ("p3", ("-y,x-y",)),
    14: ("p3m1", ("-y,x-y", "-y,-x")),
    15: ("p31m", ("-y,x-y", "y,x")),
    16: ("p6", ("x-y,x",)),
    17: ("p6mm", ("x-y,x", "-y,-x")),
}

LINE_GROUPS: Dict[int, Tuple[str, Tuple[str, ...]]] = {
    1: ("p1", ()),
    2: ("p-1", ("-x",)),
}

MAX_SGNUM = {1: 2, 2: 17, 3: 230}


def lattice_system_2d(sgnum: int) -> str:
    """Lattice system of a plane group: oblique, rectangular, square or hexagonal."""

    _check_sgnum(sgnum, 2)
    if sgnum <= 2:
        return "oblique"
    if sgnum <= 9:
        return "rectangular"
    if sgnum <= 12:
        return "square"
    return "hexagonal"


def centering(sgnum: int, dim: int) -> str:
    _check_sgnum(sgnum, dim)
    if dim == 1:
        return "p"
    if dim == 2:
        return PLANE_GROUPS[sgnum][0][0]
    return _spacegroup_symbol(sgnum)[0]


_LATTICE_SYSTEMS_3D = (
    (2, "triclinic"),
    (15, "monoclinic"),
    (74, "orthorhombic"),
    (142, "tetragonal"),
    (167, "trigonal"),
    (194, "hexagonal"),
    (230, "cubic"),
)


def lattice_system_3d(sgnum: int) -> str:
    _check_sgnum(sgnum, 3)
    return next(system for last, system in _LATTICE_SYSTEMS_3D if sgnum <= last)


_PEARSON_LETTERS = {
    "oblique": "m",
    "rectangular": "o",
    "square": "t",
    "triclinic": "a",
    "monoclinic": "m",
    "orthorhombic": "o",
    "tetragonal": "t",
    "trigonal": "h",
    "hexagonal": "h",
    "cubic": "c",
}


def bravais_type(sgnum: int, dim: int) -> str:
    """Pearson-style Bravais symbol: ``tp`` for p4mm, ``oC`` for Ccce, ``hR`` for R-3m.

    1D lattices are ``p``.
    """

    if dim == 1:
        _check_sgnum(sgnum, dim)
        return "p"
    system = lattice_system_2d(sgnum) if dim == 2 else lattice_system_3d(sgnum)
    return _PEARSON_LETTERS[system] + centering(sgnum, dim)


def reference_operations(sgnum: int, dim: int, primitive: bool = True) -> list[SymOperation]:
    """Coset representatives of space group ``sgnum`` in dimension ``dim``.

    3D groups come from spglib's database in the standard setting; plane and
    line groups are generated from the ITA generators above.
    """

    return list(_reference_operations(sgnum, dim, primitive))


def reference_little_group(
    sgnum: int,
    dim: int,
    kvec: Sequence[float],
    primitive: bool = True,
    atol: float = 1e-6,
) -> list[SymOperation]:
    """Operations of ``sgnum`` that leave ``kvec`` invariant.

    ``kvec`` is given in the reciprocal basis of the chosen setting. In a
    centred conventional setting invariance is tested modulo the reciprocal
    lattice of the primitive cell.
    """

    operations = _reference_operations(sgnum, dim, primitive)
    if primitive:
        return [op for op in operations if op.stabilizes(kvec, atol)]
    basis = centering_matrix(centering(sgnum, dim), dim)
    kprim = np.asarray(kvec, dtype=np.float64) @ basis
    return [op for op in operations if op.transform(basis).stabilizes(kprim, atol)]


@lru_cache(maxsize=None)
def _reference_operations(sgnum: int, dim: int, primitive: bool) -> Tuple[SymOperation, ...]:
    _check_sgnum(sgnum, dim)
    if dim == 3:
        hall_number = _hall_number(sgnum)
        symmetry = spglib.get_symmetry_from_database(hall_number)
        if symmetry is None:  # pragma: no cover - spglib covers all 230 groups
            raise ValueError(f"spglib has no symmetry data for space group {sgnum}")
        operations = [
            SymOperation(rot, trans).reduced()
            for rot, trans in zip(symmetry["rotations"], symmetry["translations"])
        ]
    else:
        table = PLANE_GROUPS if dim == 2 else LINE_GROUPS
        generators = [SymOperation.from_xyzt(s, dim) for s in table[sgnum][1]]
        operations = generate_group(generators, dim)

    if primitive:
        operations = primitivize(operations, centering(sgnum, dim))
    else:
        operations = strip_centering(operations, centering(sgnum, dim))
    return tuple(operations)


@lru_cache(maxsize=None)
def _hall_number(sgnum: int) -> int:
    """Hall number of the Bilbao setting of ``sgnum``.

    spglib lists the standard axes first for every ITA number; among those the
    origin choice 2 (inversion centre at the origin) is preferred where the
    group has two origins. Rhombohedral groups keep the hexagonal axes.
    """

    settings = [
        hall_number
        for hall_number in range(1, 531)
        if spglib.get_spacegroup_type(hall_number).number == sgnum
    ]
    if not settings:  # pragma: no cover
        raise ValueError(f"No Hall setting found for space group {sgnum}")
    for hall_number in settings:
        if spglib.get_spacegroup_type(hall_number).choice == "2":
            return hall_number
    return settings[0]


def _spacegroup_symbol(sgnum: int) -> str:
    return spglib.get_spacegroup_type(_hall_number(sgnum)).international_short


def _check_sgnum(sgnum: int, dim: int) -> None:
    if dim not in MAX_SGNUM:
        raise ValueError(f"Unsupported dimension {dim}")
    if not 1 <= sgnum <= MAX_SGNUM[dim]:
        raise ValueError(f"Space group {sgnum} does not exist in {dim}D (1-{MAX_SGNUM[dim]})")


__all__ = [
    "LINE_GROUPS",
    "PLANE_GROUPS",
    "bravais_type",
    "centering",
    "lattice_system_2d",
    "lattice_system_3d",
    "reference_little_group",
    "reference_operations",
]

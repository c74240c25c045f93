"""Little-group irreps from spgrep, aligned with MPB operator lists."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from spgrep import get_spacegroup_irreps_from_primitive_symmetry
from spgrep.rep.representation import get_character

from .groups import centering, reference_little_group
from .mpbio import LittleGroupData
from .symops import centering_matrix

log = logging.getLogger(__name__)


class OperatorMismatchError(RuntimeError):
    """Raised when MPB's operator list disagrees with the group-theory tables."""


@dataclass(frozen=True, eq=False)
class LittleGroupIrreps:
    klabel: str
    kvec: NDArray[np.float64]
    labels: Tuple[str, ...]
    dims: Tuple[int, ...]
    characters: NDArray[np.complex128]
    real: bool

    @property
    def num_irreps(self) -> int:
        return len(self.labels)


def is_time_reversal_invariant(kvec: Sequence[float], atol: float = 1e-6) -> bool:
    """True when ``-k`` is equivalent to ``k``."""

    twice = 2.0 * np.asarray(kvec, dtype=np.float64)
    return bool(np.allclose(twice, np.rint(twice), atol=atol))


def little_group_irreps(
    lg: LittleGroupData, timereversal: bool = True, atol: float = 1e-6
) -> LittleGroupIrreps:
    """Irreps of the little group listed in ``lg``.

    Characters are returned in the operator order of ``lg``. With
    ``timereversal``, k-points equivalent to their negative get the physically
    irreducible (real) irreps; other k-points keep complex irreps.
    """

    embedded = [op.embed3d() for op in lg.operations]
    rotations = np.array([rot for rot, _ in embedded], dtype=np.int64)
    translations = np.array([trans for _, trans in embedded], dtype=np.float64)
    kpoint = np.zeros(3, dtype=np.float64)
    kpoint[: lg.dim] = lg.kvec

    check_operator_consistency(lg, None, atol)
    real = timereversal and is_time_reversal_invariant(lg.kvec, atol)
    if timereversal and not real:
        log.debug("k=%s is not time-reversal invariant; using complex irreps", lg.kvec)
    try:
        irreps, mapping = get_spacegroup_irreps_from_primitive_symmetry(
            rotations, translations, kpoint, real=real
        )
    except ValueError as exc:
        raise OperatorMismatchError(
            f"spgrep rejected the operations at {lg.klabel} (k index {lg.kidx}): {exc}"
        ) from exc
    mapping = np.asarray(mapping, dtype=np.int64)
    check_operator_consistency(lg, mapping, atol)

    characters = np.zeros((len(irreps), lg.order), dtype=np.complex128)
    for i, irrep in enumerate(irreps):
        characters[i, mapping] = get_character(irrep)
    dims = tuple(int(irrep.shape[1]) for irrep in irreps)
    labels = tuple(f"{lg.klabel}{n}" for n in range(1, len(irreps) + 1))
    log.debug("%s: %d irreps of dimensions %s (real=%s)", lg.klabel, len(irreps), dims, real)
    return LittleGroupIrreps(
        klabel=lg.klabel,
        kvec=lg.kvec,
        labels=labels,
        dims=dims,
        characters=characters,
        real=real,
    )


def check_operator_consistency(
    lg: LittleGroupData, mapping: Optional[NDArray[np.int64]], atol: float = 1e-6
) -> None:
    """Every listed operation must fix k and appear exactly once in the little group.

    ``mapping`` holds the indices spgrep reports as little-group members; pass
    ``None`` to only test the stabiliser condition.
    """

    outside = [op.xyzt() for op in lg.operations if not op.stabilizes(lg.kvec, atol)]
    if outside:
        raise OperatorMismatchError(
            f"Operations {outside} at {lg.klabel} (k index {lg.kidx}) do not leave k={lg.kvec} invariant"
        )
    if mapping is not None and sorted(int(i) for i in mapping) != list(range(lg.order)):
        raise OperatorMismatchError(
            f"Little group at {lg.klabel} (k index {lg.kidx}) does not match the "
            f"{lg.order} listed operations (library mapping {list(mapping)})"
        )


def check_reference_group(
    lg: LittleGroupData,
    sgnum: int,
    dim: int,
    isprimitive: bool = True,
    atol: float = 1e-6,
) -> None:
    """Compare the listed operations with the tabulated little group of k.

    In a centred conventional setting operations are compared modulo the
    centring translations.
    """

    reference = reference_little_group(sgnum, dim, lg.kvec, primitive=isprimitive, atol=atol)
    listed = list(lg.operations)
    if isprimitive:
        ref_images, listed_images = reference, listed
    else:
        basis = centering_matrix(centering(sgnum, dim), dim)
        ref_images = [op.transform(basis) for op in reference]
        listed_images = [op.transform(basis) for op in listed]
    missing = [
        ref.xyzt()
        for ref, image in zip(reference, ref_images)
        if not any(image.equivalent(other, atol) for other in listed_images)
    ]
    unexpected = [
        op.xyzt()
        for op, image in zip(listed, listed_images)
        if not any(image.equivalent(other, atol) for other in ref_images)
    ]
    if missing or unexpected or len(reference) != lg.order:
        setting = "primitive" if isprimitive else "conventional"
        raise OperatorMismatchError(
            f"Operations at {lg.klabel} (k index {lg.kidx}) differ from the {setting} little group "
            f"of space group {sgnum}: missing {missing}, unexpected {unexpected}"
        )


def primitive_little_group(lg: LittleGroupData, sgnum: int, dim: int) -> LittleGroupData:
    """Re-express conventional-setting data in the primitive setting of ``sgnum``.

    Operations keep their order, so characters computed from the result line
    up with the symmetry eigenvalues of ``lg``.
    """

    basis = centering_matrix(centering(sgnum, dim), dim)
    return replace(
        lg,
        kvec=lg.kvec @ basis,
        operations=tuple(op.transform(basis).reduced() for op in lg.operations),
    )


__all__ = [
    "LittleGroupIrreps",
    "OperatorMismatchError",
    "check_operator_consistency",
    "check_reference_group",
    "is_time_reversal_invariant",
    "little_group_irreps",
    "primitive_little_group",
]

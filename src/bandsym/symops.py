"""Space-group operations in fractional coordinates and their xyzt notation."""
from __future__ import annotations

import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

_AXES = "xyz"
_TERM_RE = re.compile(r"[+-]?[^+-]+")

# Columns are the primitive basis vectors expressed in the conventional basis.
CENTERING_MATRICES: Dict[int, Dict[str, NDArray[np.float64]]] = {
    1: {"p": np.eye(1)},
    2: {
        "p": np.eye(2),
        "c": np.array([[0.5, 0.5], [-0.5, 0.5]]),
    },
    3: {
        "P": np.eye(3),
        "A": np.array([[1.0, 0.0, 0.0], [0.0, 0.5, -0.5], [0.0, 0.5, 0.5]]),
        "C": np.array([[0.5, 0.5, 0.0], [-0.5, 0.5, 0.0], [0.0, 0.0, 1.0]]),
        "I": np.array([[-0.5, 0.5, 0.5], [0.5, -0.5, 0.5], [0.5, 0.5, -0.5]]),
        "F": np.array([[0.0, 0.5, 0.5], [0.5, 0.0, 0.5], [0.5, 0.5, 0.0]]),
        "R": np.array(
            [[2 / 3, -1 / 3, -1 / 3], [1 / 3, 1 / 3, -2 / 3], [1 / 3, 1 / 3, 1 / 3]]
        ),
    },
}


@dataclass(frozen=True, eq=False)
class SymOperation:
    """Operation ``{W|w}`` acting as ``r -> W r + w`` on fractional coordinates."""

    rotation: NDArray[np.int64]
    translation: NDArray[np.float64]

    def __post_init__(self) -> None:
        rotation = np.asarray(self.rotation)
        translation = np.asarray(self.translation, dtype=np.float64)
        if rotation.ndim != 2 or rotation.shape[0] != rotation.shape[1]:
            raise ValueError(f"Rotation must be a square matrix, got shape {rotation.shape}")
        if translation.shape != (rotation.shape[0],):
            raise ValueError("Translation length must match the rotation dimension")
        rounded = np.rint(rotation)
        if not np.allclose(rotation, rounded, atol=1e-8):
            raise ValueError("Rotation part must be an integer matrix in a lattice basis")
        object.__setattr__(self, "rotation", rounded.astype(np.int64))
        object.__setattr__(self, "translation", translation)

    @property
    def dim(self) -> int:
        return int(self.rotation.shape[0])

    @classmethod
    def identity(cls, dim: int) -> "SymOperation":
        return cls(np.eye(dim, dtype=np.int64), np.zeros(dim))

    @classmethod
    def from_xyzt(cls, text: str, dim: Optional[int] = None) -> "SymOperation":
        """Parse strings such as ``"-y,x-y,z+1/3"`` (quotes and spaces are ignored)."""

        cleaned = text.strip().strip('"').strip("'").replace(" ", "").lower()
        components = cleaned.split(",")
        if dim is None:
            dim = len(components)
        if len(components) != dim:
            raise ValueError(
                f"Operation {text!r} has {len(components)} components, expected {dim}"
            )
        rotation = np.zeros((dim, dim), dtype=np.int64)
        translation = np.zeros(dim, dtype=np.float64)
        for row, component in enumerate(components):
            if not component:
                raise ValueError(f"Empty component in operation {text!r}")
            for term in _TERM_RE.findall(component):
                sign = -1 if term.startswith("-") else 1
                body = term.lstrip("+-")
                if body and body[-1] in _AXES:
                    col = _AXES.index(body[-1])
                    if col >= dim:
                        raise ValueError(f"Axis {body[-1]!r} not allowed in a {dim}D operation")
                    coefficient = body[:-1].rstrip("*")
                    value = Fraction(coefficient) if coefficient else Fraction(1)
                    if value.denominator != 1:
                        raise ValueError(f"Non-integer rotation coefficient in {text!r}")
                    rotation[row, col] += sign * int(value)
                else:
                    try:
                        translation[row] += sign * float(Fraction(body))
                    except (ValueError, ZeroDivisionError) as exc:
                        raise ValueError(f"Cannot parse term {term!r} in {text!r}") from exc
        return cls(rotation, translation)

    def xyzt(self) -> str:
        parts = []
        for row in range(self.dim):
            text = ""
            for col in range(self.dim):
                coef = int(self.rotation[row, col])
                if coef == 0:
                    continue
                sign = "-" if coef < 0 else "+"
                magnitude = "" if abs(coef) == 1 else str(abs(coef))
                text += f"{sign}{magnitude}{_AXES[col]}"
            shift = Fraction(float(self.translation[row])).limit_denominator(24)
            if shift != 0:
                text += f"{'-' if shift < 0 else '+'}{abs(shift)}"
            text = text.lstrip("+")
            parts.append(text or "0")
        return ",".join(parts)

    def __repr__(self) -> str:
        return f"SymOperation({self.xyzt()!r})"

    def compose(self, other: "SymOperation") -> "SymOperation":
        """Return ``self ∘ other``."""

        return SymOperation(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def inverse(self) -> "SymOperation":
        inv = np.rint(np.linalg.inv(self.rotation)).astype(np.int64)
        return SymOperation(inv, -inv @ self.translation)

    def reduced(self, atol: float = 1e-8) -> "SymOperation":
        """Return the same operation with its translation wrapped into ``[0, 1)``."""

        shift = np.mod(self.translation, 1.0)
        shift[np.isclose(shift, 1.0, atol=atol)] = 0.0
        shift[np.isclose(shift, 0.0, atol=atol)] = 0.0
        return SymOperation(self.rotation, shift)

    def equivalent(self, other: "SymOperation", atol: float = 1e-6) -> bool:
        """Equality modulo lattice translations."""

        if self.dim != other.dim or not np.array_equal(self.rotation, other.rotation):
            return False
        delta = self.translation - other.translation
        return bool(np.allclose(delta, np.rint(delta), atol=atol))

    def stabilizes(self, kvec: Sequence[float], atol: float = 1e-6) -> bool:
        """True if ``k·W`` equals ``k`` up to a reciprocal lattice vector."""

        k = np.asarray(kvec, dtype=np.float64)
        delta = k @ self.rotation - k
        return bool(np.allclose(delta, np.rint(delta), atol=atol))

    def embed3d(self) -> Tuple[NDArray[np.int64], NDArray[np.float64]]:
        rotation = np.eye(3, dtype=np.int64)
        translation = np.zeros(3, dtype=np.float64)
        rotation[: self.dim, : self.dim] = self.rotation
        translation[: self.dim] = self.translation
        return rotation, translation

    def transform(self, basis: NDArray[np.float64]) -> "SymOperation":
        """Express the operation in the basis whose vectors are the columns of ``basis``."""

        inv = np.linalg.inv(basis)
        rotation = inv @ self.rotation @ basis
        return SymOperation(rotation, inv @ self.translation)


def centering_matrix(centering: str, dim: int) -> NDArray[np.float64]:
    table = CENTERING_MATRICES.get(dim, {})
    for key, matrix in table.items():
        if key.lower() == centering.lower():
            return matrix
    raise ValueError(f"Unknown centering {centering!r} for dimension {dim}")


def strip_centering(
    operations: Sequence[SymOperation], centering: str, atol: float = 1e-6
) -> list[SymOperation]:
    """Keep one conventional-setting operation per coset of the centering translations."""

    if not operations:
        return []
    basis = centering_matrix(centering, operations[0].dim)
    kept: list[SymOperation] = []
    images: list[SymOperation] = []
    for op in operations:
        image = op.transform(basis)
        if not any(image.equivalent(existing, atol) for existing in images):
            kept.append(op)
            images.append(image)
    return kept


def primitivize(
    operations: Sequence[SymOperation], centering: str, atol: float = 1e-6
) -> list[SymOperation]:
    """Transform conventional-setting operations to the primitive setting.

    Operations differing only by a centering translation collapse onto one
    coset representative.
    """

    if not operations:
        return []
    basis = centering_matrix(centering, operations[0].dim)
    return [op.transform(basis).reduced() for op in strip_centering(operations, centering, atol)]


def generate_group(
    generators: Sequence[SymOperation], dim: int, max_order: int = 192
) -> list[SymOperation]:
    """Close ``generators`` under composition modulo lattice translations."""

    group = [SymOperation.identity(dim)]
    frontier = [g.reduced() for g in generators]
    while frontier:
        op = frontier.pop()
        if any(op.equivalent(existing) for existing in group):
            continue
        group.append(op)
        if len(group) > max_order:
            raise ValueError("Generators do not close into a finite space group")
        for other in list(group):
            frontier.append(op.compose(other).reduced())
            frontier.append(other.compose(op).reduced())
    return group


def same_operations(
    first: Sequence[SymOperation], second: Sequence[SymOperation], atol: float = 1e-6
) -> bool:
    """Set equality modulo lattice translations."""

    if len(first) != len(second):
        return False
    return all(any(a.equivalent(b, atol) for b in second) for a in first) and all(
        any(b.equivalent(a, atol) for a in first) for b in second
    )


__all__ = [
    "CENTERING_MATRICES",
    "SymOperation",
    "centering_matrix",
    "generate_group",
    "primitivize",
    "same_operations",
    "strip_centering",
]

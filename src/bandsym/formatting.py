"""Human-readable irrep labels and symmetry vectors."""
from __future__ import annotations

from typing import Sequence

from .decompose import KPointRepresentation, SymmetryVector

_SUBSCRIPTS = str.maketrans("0123456789", "₀₁₂₃₄₅₆₇₈₉")
_SUPERSCRIPTS = {"+": "⁺", "-": "⁻"}


def format_irrep_label(label: str) -> str:
    """``Γ2+`` -> ``Γ₂⁺``."""

    parity = ""
    if label and label[-1] in _SUPERSCRIPTS:
        label, parity = label[:-1], _SUPERSCRIPTS[label[-1]]
    return label.translate(_SUBSCRIPTS) + parity


def format_irrep_sum(multiplicities: Sequence[int], labels: Sequence[str]) -> str:
    text = ""
    for m, label in zip(multiplicities, labels):
        m = int(m)
        if m == 0:
            continue
        count = "" if abs(m) == 1 else str(abs(m))
        sign = "-" if m < 0 else ("+" if text else "")
        text += f"{sign}{count}{format_irrep_label(label)}"
    return text or "0"


def format_kpoint(kp: KPointRepresentation) -> str:
    if kp.multiplicities is None:
        return f"{kp.klabel}?"
    return format_irrep_sum(kp.multiplicities, kp.irrep_labels)


def format_symmetry_vector(vector: SymmetryVector) -> str:
    """``[Γ₁+Γ₃, X₂, M₁]``; k-points without integral content show as ``K?``."""

    return "[" + ", ".join(format_kpoint(kp) for kp in vector.kpoints) + "]"


def format_kvec(kvec: Sequence[float]) -> str:
    return "(" + ", ".join(f"{float(k):.4g}" for k in kvec) + ")"


__all__ = [
    "format_irrep_label",
    "format_irrep_sum",
    "format_kpoint",
    "format_kvec",
    "format_symmetry_vector",
]

"""Naming conventions for MPB calculations (``dim3-sg68-symeigs_15-res32``)."""
from __future__ import annotations

import re
from typing import Optional, Tuple

_SGNUM_RE = re.compile(r"sg(\d+)")
_DIM_RE = re.compile(r"dim(\d)")


class CalcnameError(ValueError):
    """Raised when metadata cannot be recovered from a calculation name."""


def try_parse_sgnum(calcname: str) -> Optional[int]:
    match = _SGNUM_RE.search(calcname)
    if match is None:
        return None
    return int(match.group(1))


def try_parse_dim(calcname: str) -> Optional[int]:
    match = _DIM_RE.search(calcname)
    if match is None:
        return None
    return int(match.group(1))


def parse_sgnum(calcname: str) -> int:
    """Return the space-group number written after the first ``sg`` in ``calcname``."""

    sgnum = try_parse_sgnum(calcname)
    if sgnum is None:
        raise CalcnameError(f"No space-group number ('sg<N>') in calculation name {calcname!r}")
    return sgnum


def parse_dim(calcname: str) -> int:
    """Return the single-digit dimension written after the first ``dim`` in ``calcname``."""

    dim = try_parse_dim(calcname)
    if dim is None:
        raise CalcnameError(f"No dimension ('dim<D>') in calculation name {calcname!r}")
    return dim


def mpb_calcname(dim: int, sgnum: int, tag: str = "symeigs", res: int = 32) -> str:
    return f"dim{dim}-sg{sgnum}-{tag}-res{res}"


def resolve_metadata(
    calcname: str,
    sgnum: Optional[int] = None,
    dim: Optional[int] = None,
) -> Tuple[int, int]:
    if sgnum is None:
        sgnum = parse_sgnum(calcname)
    if dim is None:
        dim = parse_dim(calcname)
    if dim not in (1, 2, 3):
        raise CalcnameError(f"Unsupported dimension {dim}; expected 1, 2 or 3")
    return sgnum, dim


__all__ = [
    "CalcnameError",
    "mpb_calcname",
    "parse_dim",
    "parse_sgnum",
    "resolve_metadata",
    "try_parse_dim",
    "try_parse_sgnum",
]

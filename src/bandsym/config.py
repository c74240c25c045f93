from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple
import hashlib

import yaml

from .decompose import DEFAULT_ATOL, DEFAULT_DEGENERACY_ATOL, DEFAULT_DEGENERACY_RTOL


@dataclass(frozen=True)
class BandWindow:
    """Closed, 1-based band window as numbered by MPB."""

    first: int
    last: int

    def validate(self) -> None:
        if self.first < 1:
            raise ValueError("Band numbering starts at 1")
        if self.last < self.first:
            raise ValueError("Band window last must be >= first")

    def indices(self) -> range:
        return range(self.first - 1, self.last)

    @classmethod
    def parse(cls, text: str) -> "BandWindow":
        """Accept ``"3"``, ``"1:2"`` or ``"1-2"``."""

        for sep in (":", "-"):
            if sep in text:
                first, last = text.split(sep, 1)
                return cls(int(first), int(last))
        return cls(int(text), int(text))


@dataclass(frozen=True)
class DegeneracyOptions:
    widen: bool = True
    atol: float = DEFAULT_DEGENERACY_ATOL
    rtol: float = DEFAULT_DEGENERACY_RTOL

    def validate(self) -> None:
        if self.atol < 0 or self.rtol < 0:
            raise ValueError("Degeneracy tolerances must be non-negative")


@dataclass(frozen=True)
class AnalysisConfig:
    calcname: str
    bands: BandWindow
    sgnum: Optional[int] = None
    dim: Optional[int] = None
    parentdir: Path = Path(".")
    symeigs_dir: str = "."
    timereversal: bool = True
    isprimitive: bool = True
    atol: float = DEFAULT_ATOL
    flip_ksign: bool = False
    kidxs: Optional[Tuple[int, ...]] = None
    klabels: Dict[str, Tuple[float, ...]] = field(default_factory=dict)
    degeneracy: DegeneracyOptions = field(default_factory=DegeneracyOptions)
    check_reference: bool = True

    def validate(self) -> None:
        if not self.calcname:
            raise ValueError("calcname must be non-empty")
        self.bands.validate()
        if self.dim is not None and self.dim not in (1, 2, 3):
            raise ValueError("dim must be 1, 2 or 3")
        if self.sgnum is not None and self.sgnum < 1:
            raise ValueError("sgnum must be positive")
        if self.atol <= 0:
            raise ValueError("atol must be positive")
        if self.kidxs is not None and not self.kidxs:
            raise ValueError("kidxs, when given, must list at least one k index")
        for label, coords in self.klabels.items():
            if not label:
                raise ValueError("Empty k-point labels are not allowed")
            if self.dim is not None and len(coords) != self.dim:
                raise ValueError(f"k-label {label!r} needs {self.dim} coordinates")
        try:
            self.symeigs_dir.format(sgnum=0, dim=0)
        except (KeyError, IndexError) as exc:
            raise ValueError(f"symeigs_dir may only use {{sgnum}} and {{dim}}: {exc}") from exc
        self.degeneracy.validate()

    def analysis_kwargs(self) -> dict:
        """Keyword arguments for :func:`bandsym.decompose.symdata2representation`."""

        return dict(
            bands=self.bands.indices(),
            sgnum=self.sgnum,
            dim=self.dim,
            parentdir=self.parentdir,
            symeigs_dir=self.symeigs_dir,
            timereversal=self.timereversal,
            isprimitive=self.isprimitive,
            atol=self.atol,
            kidxs=self.kidxs,
            flip_ksign=self.flip_ksign,
            klabels=self.klabels or None,
            widen=self.degeneracy.widen,
            degeneracy_atol=self.degeneracy.atol,
            degeneracy_rtol=self.degeneracy.rtol,
            check_reference=self.check_reference,
        )


def _parse_bands(raw) -> BandWindow:
    # YAML reads an unquoted 1:2 as a base-60 integer; ranges must be quoted or given as lists
    if isinstance(raw, dict):
        return BandWindow(first=int(raw["first"]), last=int(raw["last"]))
    if isinstance(raw, (list, tuple)):
        if len(raw) != 2:
            raise ValueError("bands must be [first, last]")
        return BandWindow(int(raw[0]), int(raw[1]))
    return BandWindow.parse(str(raw))


def load_analysis_config(path: Path | str) -> Tuple[AnalysisConfig, str, str]:
    """Load a YAML config file.

    Relative ``parentdir`` entries are resolved against the config file's folder.
    Returns (config, raw_yaml, config_hash).
    """

    path = Path(path)
    raw_yaml = path.read_text()
    data = yaml.safe_load(raw_yaml)
    if not isinstance(data, dict):
        raise ValueError("Analysis config must be a mapping")
    if "calcname" not in data or "bands" not in data:
        raise ValueError("Analysis config needs 'calcname' and 'bands'")

    parentdir = Path(data.get("parentdir", "."))
    if not parentdir.is_absolute():
        parentdir = path.parent / parentdir

    degeneracy_raw = data.get("degeneracy") or {}
    degeneracy = DegeneracyOptions(
        widen=bool(degeneracy_raw.get("widen", True)),
        atol=float(degeneracy_raw.get("atol", DEFAULT_DEGENERACY_ATOL)),
        rtol=float(degeneracy_raw.get("rtol", DEFAULT_DEGENERACY_RTOL)),
    )
    klabels = {
        str(label): tuple(float(x) for x in coords)
        for label, coords in (data.get("klabels") or {}).items()
    }
    kidxs = data.get("kidxs")

    config = AnalysisConfig(
        calcname=str(data["calcname"]),
        bands=_parse_bands(data["bands"]),
        sgnum=int(data["sgnum"]) if data.get("sgnum") is not None else None,
        dim=int(data["dim"]) if data.get("dim") is not None else None,
        parentdir=parentdir,
        symeigs_dir=str(data.get("symeigs_dir", ".")),
        timereversal=bool(data.get("timereversal", True)),
        isprimitive=bool(data.get("isprimitive", True)),
        atol=float(data.get("atol", DEFAULT_ATOL)),
        flip_ksign=bool(data.get("flip_ksign", False)),
        kidxs=tuple(int(k) for k in kidxs) if kidxs is not None else None,
        klabels=klabels,
        degeneracy=degeneracy,
        check_reference=bool(data.get("check_reference", True)),
    )
    config.validate()
    config_hash = hashlib.sha1(raw_yaml.encode("utf-8")).hexdigest()
    return config, raw_yaml, config_hash

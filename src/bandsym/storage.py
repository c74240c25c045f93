from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, cast

import h5py
import numpy as np

from .decompose import KPointRepresentation, SymmetryVector

UNRESOLVED = -(2**31)


def _require_group(parent: h5py.Group | h5py.File, name: str) -> h5py.Group:
    node = parent[name]
    if not isinstance(node, h5py.Group):  # pragma: no cover - defensive
        raise TypeError(f"Expected '{name}' to be an HDF5 group")
    return node


def _require_dataset(parent: h5py.Group, name: str) -> h5py.Dataset:
    node = parent[name]
    if not isinstance(node, h5py.Dataset):  # pragma: no cover - defensive
        raise TypeError(f"Expected '{name}' to be an HDF5 dataset")
    return cast(h5py.Dataset, node)


def _ensure_meta(h5: h5py.File) -> None:
    meta = h5.require_group("meta")
    meta.attrs.setdefault("version", "1.0")
    meta.attrs.setdefault("created", datetime.now(timezone.utc).isoformat())
    meta.attrs.setdefault("description", "Symmetry vectors of photonic bands")


def write_symmetry_vector(
    file_path: Path | str,
    vector: SymmetryVector,
    raw_yaml: Optional[str] = None,
    config_hash: Optional[str] = None,
) -> Path:
    """Store ``vector`` under ``/results/<calcname>``, replacing an earlier entry."""

    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    str_dtype = h5py.string_dtype(encoding="utf-8")

    with h5py.File(file_path, "a") as h5:
        _ensure_meta(h5)
        results = h5.require_group("results")
        if vector.calcname in results:
            del results[vector.calcname]
        grp = results.create_group(vector.calcname)
        grp.attrs["sgnum"] = vector.sgnum
        grp.attrs["dim"] = vector.dim
        grp.attrs["bands"] = np.array(vector.bands, dtype=np.int64)
        grp.attrs["timereversal"] = vector.timereversal
        grp.attrs["written"] = datetime.now(timezone.utc).isoformat()
        if raw_yaml is not None:
            cfg_grp = grp.create_group("config")
            cfg_grp.create_dataset("raw_yaml", data=np.array(raw_yaml, dtype=str_dtype))
            if config_hash is not None:
                cfg_grp.attrs["config_hash"] = config_hash

        kpts = grp.create_group("kpoints")
        for position, kp in enumerate(vector.kpoints):
            kgrp = kpts.create_group(f"{position:04d}")
            kgrp.attrs["kidx"] = kp.kidx
            kgrp.attrs["klabel"] = kp.klabel
            kgrp.attrs["widened"] = kp.widened
            kgrp.attrs["singular"] = kp.singular
            kgrp.create_dataset("kvec", data=kp.kvec)
            kgrp.create_dataset("bands", data=np.array(kp.bands, dtype=np.int64))
            kgrp.create_dataset("irrep_labels", data=np.array(kp.irrep_labels, dtype=str_dtype))
            kgrp.create_dataset("irrep_dims", data=np.array(kp.irrep_dims, dtype=np.int64))
            kgrp.create_dataset("overlaps", data=kp.overlaps)
            if kp.multiplicities is None:
                mults = np.full(len(kp.irrep_labels), UNRESOLVED, dtype=np.int64)
            else:
                mults = kp.multiplicities.astype(np.int64)
            kgrp.create_dataset("multiplicities", data=mults)
    return file_path


def list_results(file_path: Path | str) -> List[str]:
    with h5py.File(file_path, "r") as h5:
        results = h5.get("results")
        if results is None:
            return []
        return sorted(results.keys())


def read_symmetry_vector(file_path: Path | str, calcname: str) -> SymmetryVector:
    with h5py.File(file_path, "r") as h5:
        results = _require_group(h5, "results")
        if calcname not in results:
            raise KeyError(f"No stored result for {calcname!r} in {file_path}")
        grp = _require_group(results, calcname)
        vector = SymmetryVector(
            calcname=calcname,
            sgnum=int(grp.attrs["sgnum"]),
            dim=int(grp.attrs["dim"]),
            bands=tuple(int(b) for b in grp.attrs["bands"]),
            timereversal=bool(grp.attrs["timereversal"]),
        )
        kpts = _require_group(grp, "kpoints")
        for name in sorted(kpts.keys()):
            kgrp = _require_group(kpts, name)
            mults = _require_dataset(kgrp, "multiplicities")[...]
            vector.kpoints.append(
                KPointRepresentation(
                    kidx=int(kgrp.attrs["kidx"]),
                    klabel=str(kgrp.attrs["klabel"]),
                    kvec=_require_dataset(kgrp, "kvec")[...],
                    bands=tuple(int(b) for b in _require_dataset(kgrp, "bands")[...]),
                    irrep_labels=tuple(_require_dataset(kgrp, "irrep_labels").asstr()[...]),
                    irrep_dims=tuple(int(d) for d in _require_dataset(kgrp, "irrep_dims")[...]),
                    overlaps=_require_dataset(kgrp, "overlaps")[...],
                    multiplicities=None if np.any(mults == UNRESOLVED) else mults,
                    widened=bool(kgrp.attrs["widened"]),
                    singular=bool(kgrp.attrs["singular"]),
                )
            )
    return vector


__all__ = ["list_results", "read_symmetry_vector", "write_symmetry_vector"]

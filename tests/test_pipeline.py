from __future__ import annotations

import numpy as np
import pytest

from bandsym import symdata2representation
from bandsym.calcname import mpb_calcname
from bandsym.decompose import KPointRepresentation, SymmetryVector
from bandsym.groups import reference_little_group
from bandsym.storage import list_results, read_symmetry_vector, write_symmetry_vector
from bandsym.synthetic import (
    conventional_kpoint,
    demo_calculation,
    fill_sequence,
    synthesize_kpoint,
    write_mpb_outputs,
)

KVECS = ((0.0, 0.0), (0.5, 0.0), (0.5, 0.5))


def _synthetic_kpoints(sgnum: int, dim: int, kvecs, num_bands: int = 4):
    kpoints = []
    for kidx, kvec in enumerate(kvecs, start=1):
        ops = reference_little_group(sgnum, dim, kvec)
        blank = synthesize_kpoint(kidx, kvec, ops, sequence=())
        sequence = fill_sequence(blank.irreps.dims, num_bands)
        kpoints.append(synthesize_kpoint(kidx, kvec, ops, sequence=sequence))
    return kpoints


def _p4mm_kpoints(num_bands: int = 4):
    return _synthetic_kpoints(11, 2, KVECS, num_bands)


def _expected(kp) -> list:
    return np.bincount(kp.sequence, minlength=kp.irreps.num_irreps).tolist()


def test_recovers_synthetic_irrep_content(tmp_path) -> None:
    calcname = mpb_calcname(2, 11, tag="roundtrip", res=16)
    kpoints = _p4mm_kpoints()
    write_mpb_outputs(
        tmp_path, calcname, kpoints, 11, 2,
        symeigs_dir="symeigs/sg{sgnum}", rng=np.random.default_rng(3),
    )

    vector = symdata2representation(
        calcname, bands=range(4), parentdir=tmp_path, symeigs_dir="symeigs/sg{sgnum}"
    )
    assert vector.sgnum == 11 and vector.dim == 2
    assert vector.resolved
    assert [kp.klabel for kp in vector.kpoints] == ["Γ", "X", "M"]
    for kp, synthetic in zip(vector.kpoints, kpoints):
        assert kp.multiplicities.tolist() == _expected(synthetic)
        assert not kp.widened
    assert int(vector.as_array().sum()) == sum(len(kp.sequence) for kp in kpoints)


def test_kidx_subset(tmp_path) -> None:
    calcname = mpb_calcname(2, 11, tag="subset", res=16)
    write_mpb_outputs(tmp_path, calcname, _p4mm_kpoints(), 11, 2)
    vector = symdata2representation(calcname, bands=range(4), parentdir=tmp_path, kidxs=[2])
    assert [kp.klabel for kp in vector.kpoints] == ["X"]
    with pytest.raises(ValueError, match="no symmetry data"):
        symdata2representation(calcname, bands=range(4), parentdir=tmp_path, kidxs=[9])


def test_split_degenerate_pair_is_widened(tmp_path) -> None:
    calcname = mpb_calcname(2, 11, tag="widen", res=16)
    ops = reference_little_group(11, 2, (0.0, 0.0))
    blank = synthesize_kpoint(1, (0.0, 0.0), ops, sequence=())
    doublet = blank.irreps.dims.index(2)
    singlet = blank.irreps.dims.index(1)
    kp = synthesize_kpoint(1, (0.0, 0.0), ops, sequence=(doublet, singlet))
    write_mpb_outputs(tmp_path, calcname, [kp], 11, 2)

    gamma = symdata2representation(calcname, bands=[0], parentdir=tmp_path).kpoints[0]
    assert gamma.widened
    assert gamma.bands == (0, 1)
    expected = np.zeros(blank.irreps.num_irreps, dtype=int)
    expected[doublet] = 1
    assert gamma.multiplicities.tolist() == expected.tolist()

    strict = symdata2representation(calcname, bands=[0], parentdir=tmp_path, widen=False)
    assert not strict.resolved
    with pytest.raises(ValueError):
        strict.as_array()


def test_inconsistent_band_counts_are_rejected(tmp_path) -> None:
    kpoints = _p4mm_kpoints()
    short = synthesize_kpoint(4, (0.0, 0.0), kpoints[0].operations, sequence=kpoints[0].sequence[:1])
    with pytest.raises(ValueError):
        write_mpb_outputs(tmp_path, "dim2-sg11-bad", kpoints + [short], 11, 2)


def test_demo_calculation_is_resolved(tmp_path) -> None:
    calcname = demo_calculation(tmp_path, rng=np.random.default_rng(0))
    vector = symdata2representation(calcname, bands=range(4), parentdir=tmp_path)
    assert vector.resolved
    assert len(vector.kpoints) == 3


def test_storage_round_trip(tmp_path) -> None:
    calcname = demo_calculation(tmp_path / "data")
    vector = symdata2representation(calcname, bands=range(4), parentdir=tmp_path / "data")
    h5_path = tmp_path / "results.h5"
    write_symmetry_vector(h5_path, vector, raw_yaml="calcname: demo\n", config_hash="abc")
    # rewriting replaces the stored entry
    write_symmetry_vector(h5_path, vector)

    assert list_results(h5_path) == [calcname]
    stored = read_symmetry_vector(h5_path, calcname)
    assert stored.bands == vector.bands
    assert stored.labels() == vector.labels()
    assert stored.as_array().tolist() == vector.as_array().tolist()
    assert np.allclose(stored.kpoints[1].kvec, [0.5, 0.0])
    with pytest.raises(KeyError):
        read_symmetry_vector(h5_path, "dim2-sg1-missing")


def test_storage_keeps_unresolved_kpoints(tmp_path) -> None:
    kp = KPointRepresentation(
        kidx=3,
        klabel="X",
        kvec=np.array([0.5, 0.0]),
        bands=(0,),
        irrep_labels=("X1", "X2"),
        irrep_dims=(1, 1),
        overlaps=np.array([0.5, 0.5], dtype=np.complex128),
        multiplicities=None,
        widened=True,
    )
    vector = SymmetryVector("dim2-sg2-unresolved", 2, 2, (0,), True, [kp])
    h5_path = write_symmetry_vector(tmp_path / "results.h5", vector)
    stored = read_symmetry_vector(h5_path, "dim2-sg2-unresolved").kpoints[0]
    assert stored.multiplicities is None
    assert stored.widened
    assert stored.irrep_labels == ("X1", "X2")
    assert np.allclose(stored.overlaps, [0.5, 0.5])


CCCE_KVECS = {
    "Γ": (0.0, 0.0, 0.0),
    "Y": (0.5, 0.5, 0.0),
    "Z": (0.0, 0.0, 0.5),
    "T": (0.5, 0.5, 0.5),
    "R": (0.0, 0.5, 0.5),
    "S": (0.0, 0.5, 0.0),
}


def test_three_dimensional_nonsymmorphic_centred_group(tmp_path) -> None:
    calcname = mpb_calcname(3, 68, tag="symeigs", res=32)
    kpoints = _synthetic_kpoints(68, 3, CCCE_KVECS.values(), num_bands=8)
    write_mpb_outputs(tmp_path, calcname, kpoints, 68, 3, rng=np.random.default_rng(5))

    vector = symdata2representation(calcname, bands=range(8), parentdir=tmp_path)
    assert vector.sgnum == 68 and vector.dim == 3
    assert vector.resolved
    assert [kp.klabel for kp in vector.kpoints] == list(CCCE_KVECS)
    for kp, synthetic in zip(vector.kpoints, kpoints):
        assert kp.multiplicities.tolist() == _expected(synthetic)


@pytest.mark.parametrize(
    "sgnum, kvecs, labels",
    [
        (9, ((0.0, 0.0), (0.5, 0.5), (0.5, 0.0)), ["Γ", "Y", "S"]),  # c2mm
        (12, KVECS, ["Γ", "X", "M"]),  # p4gm
    ],
)
def test_centred_and_nonsymmorphic_plane_groups(tmp_path, sgnum, kvecs, labels) -> None:
    calcname = mpb_calcname(2, sgnum, tag="roundtrip", res=16)
    kpoints = _synthetic_kpoints(sgnum, 2, kvecs)
    write_mpb_outputs(tmp_path, calcname, kpoints, sgnum, 2, rng=np.random.default_rng(1))

    vector = symdata2representation(calcname, bands=range(4), parentdir=tmp_path)
    assert vector.resolved
    assert [kp.klabel for kp in vector.kpoints] == labels
    for kp, synthetic in zip(vector.kpoints, kpoints):
        assert kp.multiplicities.tolist() == _expected(synthetic)


@pytest.mark.parametrize(
    "sgnum, dim, centring, kvecs, labels",
    [
        (9, 2, "c", ((0.0, 0.0), (0.5, 0.5), (0.5, 0.0)), ["Γ", "Y", "S"]),
        (68, 3, "C", ((0.0, 0.0, 0.0), (0.5, 0.5, 0.0), (0.0, 0.0, 0.5)), ["Γ", "Y", "Z"]),
    ],
)
def test_conventional_setting_with_reference_check(tmp_path, sgnum, dim, centring, kvecs, labels) -> None:
    calcname = mpb_calcname(dim, sgnum, tag="conventional", res=16)
    num_bands = 4 if dim == 2 else 8
    primitive = _synthetic_kpoints(sgnum, dim, kvecs, num_bands)
    kpoints = [conventional_kpoint(kp, centring) for kp in primitive]
    write_mpb_outputs(tmp_path, calcname, kpoints, sgnum, dim)

    vector = symdata2representation(
        calcname, bands=range(num_bands), parentdir=tmp_path, isprimitive=False, check_reference=True
    )
    assert vector.resolved
    assert [kp.klabel for kp in vector.kpoints] == labels
    # Y is stored in the conventional basis of the files
    assert np.allclose(vector.kpoints[1].kvec[:2], [1.0, 0.0])
    for kp, synthetic in zip(vector.kpoints, primitive):
        assert kp.multiplicities.tolist() == _expected(synthetic)

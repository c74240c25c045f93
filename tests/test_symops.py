from __future__ import annotations

import numpy as np
import pytest

from bandsym.symops import (
    SymOperation,
    generate_group,
    primitivize,
    same_operations,
    strip_centering,
)


def test_parse_xyzt() -> None:
    op = SymOperation.from_xyzt("-y,x-y,z+1/3")
    assert np.array_equal(op.rotation, [[0, -1, 0], [1, -1, 0], [0, 0, 1]])
    assert np.allclose(op.translation, [0.0, 0.0, 1 / 3])


def test_parse_tolerates_quotes_spaces_and_decimals() -> None:
    op = SymOperation.from_xyzt('"-x, y+0.5"', 2)
    assert np.array_equal(op.rotation, [[-1, 0], [0, 1]])
    assert np.allclose(op.translation, [0.0, 0.5])
    assert op.xyzt() == "-x,y+1/2"


def test_parse_rejects_wrong_dimension() -> None:
    with pytest.raises(ValueError):
        SymOperation.from_xyzt("x,y", 3)
    with pytest.raises(ValueError):
        SymOperation.from_xyzt("x,z", 2)


def test_format_round_trip() -> None:
    for text in ("x+1/2,-y", "-x+y,-x,z-1/6", "x"):
        assert SymOperation.from_xyzt(text).xyzt() == text


def test_compose_and_inverse() -> None:
    c4 = SymOperation.from_xyzt("-y,x")
    assert c4.compose(c4).xyzt() == "-x,-y"
    screw = SymOperation.from_xyzt("-y,x+1/2")
    assert screw.compose(screw.inverse()).equivalent(SymOperation.identity(2))


def test_equivalence_modulo_lattice() -> None:
    a = SymOperation.from_xyzt("-x+1/2,y")
    b = SymOperation.from_xyzt("-x-1/2,y+1")
    assert a.equivalent(b)
    assert a.reduced().xyzt() == "-x+1/2,y"
    assert not a.equivalent(SymOperation.from_xyzt("-x,y"))


def test_stabilizes() -> None:
    assert SymOperation.from_xyzt("-x,-y").stabilizes([0.5, 0.0])
    assert not SymOperation.from_xyzt("-y,x").stabilizes([0.5, 0.0])
    assert SymOperation.from_xyzt("-y,x").stabilizes([0.5, 0.5])


def test_embed3d() -> None:
    rotation, translation = SymOperation.from_xyzt("-y,x+1/2").embed3d()
    assert np.array_equal(rotation, [[0, -1, 0], [1, 0, 0], [0, 0, 1]])
    assert np.allclose(translation, [0.0, 0.5, 0.0])


@pytest.mark.parametrize(
    "generators, order",
    [
        (("-y,x", "-x,y"), 8),
        (("x-y,x", "-y,-x"), 12),
        (("-y,x-y",), 3),
        (("-x,-y", "-x+1/2,y+1/2"), 4),
    ],
)
def test_generate_group_orders(generators, order) -> None:
    ops = generate_group([SymOperation.from_xyzt(g, 2) for g in generators], 2)
    assert len(ops) == order


def test_primitivize_collapses_centering() -> None:
    ops = [SymOperation.from_xyzt(s, 2) for s in ("x,y", "-x,y", "x+1/2,y+1/2", "-x+1/2,y+1/2")]
    assert len(strip_centering(ops, "c")) == 2
    prim = primitivize(ops, "c")
    assert len(prim) == 2
    mirror = [op for op in prim if not np.array_equal(op.rotation, np.eye(2))][0]
    assert np.array_equal(mirror.rotation, [[0, -1], [-1, 0]])


def test_same_operations() -> None:
    first = [SymOperation.from_xyzt(s) for s in ("x,y", "-x,-y")]
    second = [SymOperation.from_xyzt(s) for s in ("-x+1,-y", "x,y")]
    assert same_operations(first, second)
    assert not same_operations(first, second[:1])

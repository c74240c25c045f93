from __future__ import annotations

import pytest

from bandsym.config import BandWindow, load_analysis_config


def test_band_window_parsing() -> None:
    assert BandWindow.parse("1:2") == BandWindow(1, 2)
    assert BandWindow.parse("3-5").indices() == range(2, 5)
    assert BandWindow.parse("4").indices() == range(3, 4)
    with pytest.raises(ValueError):
        BandWindow(0, 2).validate()
    with pytest.raises(ValueError):
        BandWindow(3, 2).validate()


def test_load_analysis_config(tmp_path) -> None:
    config_path = tmp_path / "configs" / "analysis.yml"
    config_path.parent.mkdir()
    config_path.write_text(
        "\n".join(
            [
                "calcname: dim2-sg11-synthetic-res0",
                "bands: {first: 1, last: 4}",
                "parentdir: ../runs",
                "symeigs_dir: output/sg{sgnum}",
                "kidxs: [1, 3]",
                "klabels:",
                "  Δ: [0.25, 0.0]",
                "degeneracy:",
                "  widen: false",
                "  atol: 1.0e-5",
            ]
        )
    )
    config, raw_yaml, config_hash = load_analysis_config(config_path)
    assert config.parentdir == config_path.parent / "../runs"
    assert config.bands.indices() == range(0, 4)
    assert config.kidxs == (1, 3)
    assert config.klabels == {"Δ": (0.25, 0.0)}
    assert config.degeneracy.widen is False
    assert config.degeneracy.atol == pytest.approx(1e-5)
    assert len(config_hash) == 40
    assert "calcname" in raw_yaml

    kwargs = config.analysis_kwargs()
    assert kwargs["bands"] == range(0, 4)
    assert kwargs["widen"] is False
    assert kwargs["symeigs_dir"] == "output/sg{sgnum}"


@pytest.mark.parametrize(
    "body",
    [
        "bands: [1, 2]\n",
        "calcname: x\nbands: [2, 1]\n",
        "calcname: x\nbands: [1, 2]\ndim: 4\n",
        "calcname: x\nbands: [1, 2]\nsymeigs_dir: out/{nope}\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_configs(tmp_path, body) -> None:
    config_path = tmp_path / "bad.yml"
    config_path.write_text(body)
    with pytest.raises(ValueError):
        load_analysis_config(config_path)

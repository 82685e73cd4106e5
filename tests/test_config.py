from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from cytocomp.config import DEFAULT_FIT_CONFIG, FitConfig, sum_of_absolute, sum_of_squares
from cytocomp.utils import load_config, validate_config


def test_defaults_enumerate_every_option() -> None:
    config = FitConfig()
    assert config.min_func is sum_of_squares
    assert config.initial_intercept == 10.0
    assert config.initial_coefficient == 0.0
    assert config.plots_on is False
    assert config.plot_lin is False
    assert config.do_mef is False
    assert config.logicle_params == {}
    assert set(DEFAULT_FIT_CONFIG) == {
        "min_func",
        "initial_intercept",
        "initial_coefficient",
        "seed",
        "max_iter",
        "method",
        "plots_on",
        "plot_lin",
        "do_mef",
        "logicle_params",
    }


def test_from_dict_resolves_named_min_func() -> None:
    config = FitConfig.from_dict({"min_func": "sum_of_absolute", "seed": 3})
    assert config.min_func is sum_of_absolute
    assert config.seed == 3
    assert config.min_func(np.array([-1.0, 2.0])) == pytest.approx(3.0)


def test_from_dict_accepts_callables() -> None:
    config = FitConfig.from_dict({"min_func": lambda r: float(np.max(np.abs(r)))})
    assert config.min_func(np.array([-4.0, 2.0])) == pytest.approx(4.0)


@pytest.mark.parametrize(
    "options",
    [{"tolerance": 1e-3}, {"min_func": "median"}, {"max_iter": 0}],
)
def test_from_dict_rejects_bad_options(options) -> None:
    with pytest.raises(ValueError):
        FitConfig.from_dict(options)


def test_with_options_returns_copy() -> None:
    base = FitConfig()
    changed = base.with_options(plots_on=True)
    assert changed.plots_on is True
    assert base.plots_on is False


def test_load_config_reads_fit_section(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("channels: [FITC, PE]\nfit:\n  min_func: sum_of_squares\n  seed: 7\n", encoding="utf-8")
    config = load_config(path)
    assert config["channels"] == ["FITC", "PE"]
    assert FitConfig.from_dict(config["fit"]).seed == 7


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
    bad = tmp_path / "bad.yaml"
    bad.write_text("fit: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)


def test_empty_config_is_allowed(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == {}


@pytest.mark.parametrize(
    "config",
    [{"channels": "FITC"}, {"fit": [1, 2]}, {"gating": {}}, ["fit"]],
)
def test_validate_config_rejects_bad_structure(config) -> None:
    with pytest.raises(ValueError):
        validate_config(config)

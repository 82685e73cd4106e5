from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from cytocomp.config import FitConfig
from cytocomp.controls import ControlSet
from cytocomp.fit import compute_coefficients
from cytocomp.lut import PiecewiseLUT
from cytocomp.optimize import OptimizeOutcome
from cytocomp.viz import plot_coefficient_fits, plot_lut_fit


def _fixed_optimizer(objective, x0):
    return OptimizeOutcome(x=x0, fun=objective(x0), converged=True)


def test_default_renderer_draws_channel_grid(synthetic_control_set: ControlSet, tmp_path: Path) -> None:
    result = compute_coefficients(
        synthetic_control_set,
        config=FitConfig(plots_on=True),
        optimizer=_fixed_optimizer,
    )
    fig = result.figure
    assert fig is not None
    assert len(fig.axes) == 4
    assert fig.axes[1].get_title() == "Slope: 0.0000 | Intercept: 10.00"
    assert fig.axes[0].get_xscale() == "symlog"
    plt.close(fig)


def test_linear_plot_with_display_transform_skipped(synthetic_control_set: ControlSet, tmp_path: Path) -> None:
    result = compute_coefficients(synthetic_control_set, optimizer=_fixed_optimizer)
    calls = []

    def transform(values, do_mef, params):
        calls.append(do_mef)
        return np.asarray(values)

    output = tmp_path / "figures" / "fits.png"
    fig = plot_coefficient_fits(
        synthetic_control_set,
        result.mapping,
        FitConfig(plot_lin=True),
        output_path=str(output),
        display_transform=transform,
    )
    assert output.exists()
    assert calls == []
    assert fig.axes[0].get_xscale() == "linear"
    plt.close(fig)


def test_display_transform_used_for_compressed_axes(synthetic_control_set: ControlSet) -> None:
    result = compute_coefficients(synthetic_control_set, optimizer=_fixed_optimizer)
    calls = []

    def transform(values, do_mef, params):
        calls.append((do_mef, params))
        return np.arcsinh(np.asarray(values) / 150.0)

    config = FitConfig(do_mef=True, logicle_params={"T": 262144.0})
    fig = plot_coefficient_fits(synthetic_control_set, result.mapping, config, display_transform=transform)
    assert len(calls) == 4 * 4
    assert calls[0] == (True, {"T": 262144.0})
    plt.close(fig)


def test_plot_lut_fit(tmp_path: Path) -> None:
    x = np.linspace(0.0, 10.0, 30)
    lut = PiecewiseLUT.fit(x, 3.0 * x, [0.0, 5.0, 10.0])
    output = tmp_path / "lut.png"
    fig = plot_lut_fit(x, 3.0 * x, lut, str(output))
    assert output.exists()
    plt.close(fig)

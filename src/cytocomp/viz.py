"""Matplotlib diagnostics for coefficient and lookup-table fits."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import matplotlib.pyplot as plt
import numpy as np

from cytocomp.compensate import CompensationMapping
from cytocomp.config import FitConfig
from cytocomp.controls import ControlSet
from cytocomp.lut import PiecewiseLUT

# (values, do_mef, logicle_params) -> display-space values
DisplayTransform = Callable[[np.ndarray, bool, dict], np.ndarray]


def plot_coefficient_fits(
    controls: ControlSet,
    mapping: CompensationMapping,
    config: Optional[FitConfig] = None,
    output_path: Optional[str] = None,
    display_transform: Optional[DisplayTransform] = None,
) -> plt.Figure:
    """Grid of control scatter plots with the fitted bleed lines overlaid.

    Row ``f`` is the channel the signal is read in, column ``b`` the control
    (bleed) channel. Fits are drawn in linear space when ``config.plot_lin``
    is set; otherwise values go through ``display_transform`` when one is
    supplied, or onto symlog axes.
    """

    cfg = config or FitConfig()
    n = len(controls)
    top = max(float(np.max(m)) for _, m in controls)
    xrange = np.logspace(0, np.log10(max(top, 10.0)), 100)

    fig, axes = plt.subplots(n, n, figsize=(3 * n, 3 * n), squeeze=False)
    for ch_f in range(n):
        for ch_b in range(n):
            ax = axes[ch_f, ch_b]
            slope = mapping.coefficients[ch_f, ch_b]
            intercept = mapping.intercepts[ch_f]
            xdata = controls.matrices[ch_b][:, ch_b]
            ydata = controls.matrices[ch_b][:, ch_f]
            xline = xrange
            yline = xrange * slope + intercept

            if not cfg.plot_lin and display_transform is not None:
                xdata, ydata, xline, yline = (
                    display_transform(v, cfg.do_mef, cfg.logicle_params) for v in (xdata, ydata, xline, yline)
                )
            elif not cfg.plot_lin:
                ax.set_xscale("symlog")
                ax.set_yscale("symlog")

            ax.plot(xdata, ydata, ".", markersize=4)
            ax.plot(xline, yline, "-", linewidth=4)
            ax.set_title(f"Slope: {slope:.4f} | Intercept: {intercept:.2f}", fontsize=9)
            if ch_f == n - 1:
                ax.set_xlabel(controls.channels[ch_b].replace("_", "-"))
            if ch_b == 0:
                ax.set_ylabel(controls.channels[ch_f].replace("_", "-"))

    fig.tight_layout()
    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=200)
    return fig


def plot_lut_fit(
    x: np.ndarray,
    y: np.ndarray,
    lut: PiecewiseLUT,
    output_path: Optional[str] = None,
) -> plt.Figure:
    """Scatter of calibration samples with the fitted lookup table and its breakpoints."""

    fig, ax = plt.subplots(figsize=(5, 4))
    ax.scatter(np.ravel(x), np.ravel(y), s=5, alpha=0.3, label="Samples")
    ax.plot(lut.breakpoints, lut.values, "o-", color="#C0392B", label="LUT")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.legend()
    fig.tight_layout()
    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=200)
    return fig

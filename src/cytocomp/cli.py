"""Typer-powered CLI around the compensation numerics."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import typer

from cytocomp import __version__
from cytocomp.compensate import apply_compensation
from cytocomp.config import FitConfig
from cytocomp.errors import CompensationError
from cytocomp.fit import compute_coefficients
from cytocomp.io import load_controls, read_event_table, read_mapping, write_mapping
from cytocomp.lut import PiecewiseLUT
from cytocomp.utils import ensure_dir, load_config
from cytocomp.viz import plot_lut_fit

app = typer.Typer(add_completion=False, help="Fit and apply flow cytometry bleed-through compensation")


@app.callback()
def _main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log fitting progress"),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def fit(
    control: List[str] = typer.Option(..., "--control", help="CHANNEL=PATH of a single-color control table"),
    out: Path = typer.Option(..., "--out", help="Output directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML config"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for control subsampling"),
) -> None:
    cfg = load_config(config) if config else {}
    paths = _parse_controls(control)
    fit_options = dict(cfg.get("fit") or {})
    if seed is not None:
        fit_options["seed"] = seed

    root = ensure_dir(out)
    try:
        fit_config = FitConfig.from_dict(fit_options)
        controls = load_controls(paths, cfg.get("channels"))
        result = compute_coefficients(controls, config=fit_config)
    except (CompensationError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    coeff_path, ints_path = write_mapping(result.mapping, root)
    if result.figure is not None:
        result.figure.savefig(ensure_dir(root / "figures") / "fits.png", dpi=200)
        plt.close(result.figure)

    typer.echo(result.mapping.to_frame().to_string())
    typer.echo(f"Objective value: {result.objective_value:.4g} (converged: {result.converged})")
    typer.echo(f"Coefficients -> {coeff_path}")
    typer.echo(f"Intercepts -> {ints_path}")


@app.command()
def apply(
    events: Path = typer.Argument(..., exists=True, readable=True),
    coefficients: Path = typer.Option(..., "--coefficients", exists=True, help="Coefficient matrix CSV"),
    out: Path = typer.Option(..., "--out", help="Output CSV"),
    intercepts: Optional[Path] = typer.Option(None, "--intercepts", exists=True, help="Intercepts CSV to subtract"),
) -> None:
    try:
        mapping = read_mapping(coefficients, intercepts)
        table = read_event_table(events)
        compensated = apply_compensation(table, mapping, subtract_intercepts=intercepts is not None)
    except (CompensationError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    out.parent.mkdir(parents=True, exist_ok=True)
    compensated.to_csv(out, index=False)
    typer.echo(f"Compensated {len(compensated)} events -> {out}")


@app.command()
def lut(
    table: Path = typer.Argument(..., exists=True, readable=True),
    x: str = typer.Option(..., "--x", help="Column holding the measured values"),
    y: str = typer.Option(..., "--y", help="Column holding the reference values"),
    breakpoints: str = typer.Option(..., "--breakpoints", help="Comma-separated, increasing breakpoints"),
    out: Path = typer.Option(..., "--out", help="Output CSV"),
    plot: Optional[Path] = typer.Option(None, "--plot", help="Optional PNG of the fitted table"),
) -> None:
    df = read_event_table(table)
    missing = [col for col in (x, y) if col not in df.columns]
    if missing:
        raise typer.BadParameter(f"Columns not found: {missing}")
    try:
        xi = np.array([float(v) for v in breakpoints.split(",") if v.strip()])
        fitted = PiecewiseLUT.fit(df[x].to_numpy(), df[y].to_numpy(), xi)
    except (CompensationError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    out.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame({"breakpoint": fitted.breakpoints, "value": fitted.values}).to_csv(out, index=False)
    if plot is not None:
        fig = plot_lut_fit(df[x].to_numpy(), df[y].to_numpy(), fitted, str(plot))
        plt.close(fig)
    typer.echo(f"Lookup table with {fitted.breakpoints.size} breakpoints -> {out}")


# ---------------------------------------------------------------------------
# Helpers


def _parse_controls(values: List[str]) -> Dict[str, str]:
    controls: Dict[str, str] = {}
    for value in values:
        channel, sep, path = value.partition("=")
        if not sep or not channel.strip() or not path.strip():
            raise typer.BadParameter(f"Expected CHANNEL=PATH, got '{value}'")
        controls[channel.strip()] = path.strip()
    return controls

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
from typer.testing import CliRunner

from cytocomp import __version__
from cytocomp.cli import app

from conftest import synthetic_controls


def _write_controls(tmp_path: Path) -> dict[str, Path]:
    coefficients = np.array([[1.0, 0.08], [0.04, 1.0]])
    controls = synthetic_controls(coefficients, np.array([12.0, 7.0]), ("FITC", "PE"), n_events=40)
    paths = {}
    for channel, matrix in controls:
        path = tmp_path / f"{channel}.csv"
        pd.DataFrame(matrix, columns=list(controls.channels)).to_csv(path, index=False)
        paths[channel] = path
    return paths


def test_cli_version() -> None:
    result = CliRunner().invoke(app, ["--version", "fit"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_fit_then_apply(tmp_path: Path) -> None:
    runner = CliRunner()
    paths = _write_controls(tmp_path)
    config = tmp_path / "config.yaml"
    config.write_text("channels: [FITC, PE]\nfit:\n  max_iter: 5000\n", encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "fit",
            "--control",
            f"FITC={paths['FITC']}",
            "--control",
            f"PE={paths['PE']}",
            "--config",
            str(config),
            "--out",
            str(tmp_path / "model"),
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0, result.output
    coeffs = pd.read_csv(tmp_path / "model" / "coefficients.csv", index_col=0)
    np.testing.assert_allclose(coeffs.to_numpy(), [[1.0, 0.08], [0.04, 1.0]], atol=1e-3)

    events = tmp_path / "events.csv"
    pd.DataFrame({"FITC": [112.0, 1012.0], "PE": [87.0, 47.0], "FSC-A": [1.0, 2.0]}).to_csv(events, index=False)
    out = tmp_path / "compensated.csv"
    result = runner.invoke(
        app,
        [
            "apply",
            str(events),
            "--coefficients",
            str(tmp_path / "model" / "coefficients.csv"),
            "--intercepts",
            str(tmp_path / "model" / "intercepts.csv"),
            "--out",
            str(out),
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0, result.output
    compensated = pd.read_csv(out)
    assert list(compensated.columns) == ["FITC", "PE", "FSC-A"]
    # second event is a pure FITC signal of 1000 read through the bleed model
    assert abs(compensated.loc[1, "PE"]) < 3.0


def test_cli_fit_rejects_bad_control_spec(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["fit", "--control", "FITC", "--out", str(tmp_path)])
    assert result.exit_code != 0


def test_cli_lut(tmp_path: Path) -> None:
    table = tmp_path / "beads.csv"
    x = np.linspace(0.0, 100.0, 101)
    pd.DataFrame({"measured": x, "mef": 2.0 * x + 3.0}).to_csv(table, index=False)
    out = tmp_path / "lut.csv"
    plot = tmp_path / "lut.png"
    result = CliRunner().invoke(
        app,
        [
            "lut",
            str(table),
            "--x",
            "measured",
            "--y",
            "mef",
            "--breakpoints",
            "0,25,50,100",
            "--out",
            str(out),
            "--plot",
            str(plot),
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0, result.output
    lut = pd.read_csv(out)
    np.testing.assert_allclose(lut["value"], 2.0 * lut["breakpoint"] + 3.0, atol=1e-8)
    assert plot.exists()


def test_cli_lut_rejects_unknown_column(tmp_path: Path) -> None:
    table = tmp_path / "beads.csv"
    pd.DataFrame({"measured": [1.0, 2.0], "mef": [2.0, 4.0]}).to_csv(table, index=False)
    result = CliRunner().invoke(
        app,
        ["lut", str(table), "--x", "nope", "--y", "mef", "--breakpoints", "0,2", "--out", str(tmp_path / "o.csv")],
    )
    assert result.exit_code != 0

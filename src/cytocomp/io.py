"""I/O helpers for control and event tables.

The numerics never read files; these helpers only feed them from the
tabular surrogates used by the CLI (CSV, TSV, Parquet).
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from cytocomp.compensate import CompensationMapping
from cytocomp.controls import ControlSet

PathLike = Union[str, Path]


def read_event_table(file_path: PathLike) -> pd.DataFrame:
    """Load an events table (rows are events, columns are channels)."""

    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File does not exist: {file_path}")

    suffix = path.suffix.lower()
    if suffix in {".csv", ".tsv"}:
        sep = "," if suffix == ".csv" else "\t"
        return pd.read_csv(path, sep=sep)
    if suffix in {".parquet", ".pq"}:
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported event table format: {path.suffix}")


def load_controls(paths: Mapping[str, PathLike], channels: Optional[Sequence[str]] = None) -> ControlSet:
    """Read one single-color control table per channel into a :class:`ControlSet`.

    ``channels`` fixes the channel order; by default the mapping order is used.
    """

    order = list(channels) if channels is not None else list(paths)
    frames = {channel: read_event_table(path) for channel, path in paths.items()}
    return ControlSet.from_frames(frames, order)


def read_matrix_csv(path: PathLike) -> pd.DataFrame:
    """Load a square, channel-indexed matrix CSV."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Matrix not found: {path}")

    df = pd.read_csv(path, index_col=0)
    if df.shape[0] != df.shape[1]:
        raise ValueError("Matrix CSV must be square")
    if not df.index.astype(str).equals(df.columns.astype(str)):
        raise ValueError("CSV index/columns must match channel names")
    df.index = df.index.astype(str)
    return df


def read_intercepts_csv(path: PathLike, channels: Sequence[str]) -> np.ndarray:
    """Load intercepts written by :func:`write_mapping`, ordered by ``channels``."""

    series = pd.read_csv(path, index_col=0).iloc[:, 0]
    series.index = series.index.astype(str)
    missing = [ch for ch in channels if ch not in series.index]
    if missing:
        raise ValueError(f"Intercepts missing channels {missing}")
    return series.loc[list(channels)].to_numpy(dtype=float)


def write_mapping(mapping: CompensationMapping, out_dir: PathLike) -> tuple[Path, Path]:
    """Write ``coefficients.csv`` and ``intercepts.csv`` into ``out_dir``."""

    directory = Path(out_dir)
    directory.mkdir(parents=True, exist_ok=True)
    coeff_path = directory / "coefficients.csv"
    ints_path = directory / "intercepts.csv"
    mapping.to_frame().to_csv(coeff_path)
    pd.Series(mapping.intercepts, index=list(mapping.channels), name="intercept").to_csv(ints_path, index_label="channel")
    return coeff_path, ints_path


def read_mapping(coefficients_path: PathLike, intercepts_path: Optional[PathLike] = None) -> CompensationMapping:
    frame = read_matrix_csv(coefficients_path)
    intercepts = None
    if intercepts_path is not None:
        intercepts = read_intercepts_csv(intercepts_path, list(frame.index))
    return CompensationMapping.from_frame(frame, intercepts)

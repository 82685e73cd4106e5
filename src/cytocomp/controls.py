"""Single-color control containers, outlier filtering and subsampling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from cytocomp.errors import DegenerateDataError, InputShapeError

logger = logging.getLogger(__name__)

# A row whose off-channel signal exceeds this multiple of its own channel is
# treated as tube carry-over rather than bleed-through.
OUTLIER_RATIO = 10.0

MIN_CHANNELS = 2


@dataclass(frozen=True, eq=False)
class ControlSet:
    """Ordered single-color controls, one ``N_c x C`` matrix per channel.

    ``matrices[c]`` holds the events of the control expressing only the
    fluorophore read in ``channels[c]``; column order follows ``channels``.
    Row counts may differ between controls until :func:`equalize_controls`.
    """

    channels: Tuple[str, ...]
    matrices: Tuple[np.ndarray, ...]

    def __post_init__(self) -> None:
        channels = tuple(str(ch) for ch in self.channels)
        if len(channels) < MIN_CHANNELS:
            raise InputShapeError("Compensation needs at least two channels")
        if len(set(channels)) != len(channels):
            raise InputShapeError(f"Channel names must be unique: {list(channels)}")
        if len(self.matrices) != len(channels):
            raise InputShapeError(
                f"Got {len(self.matrices)} controls for {len(channels)} channels"
            )

        matrices = []
        for channel, matrix in zip(channels, self.matrices):
            data = np.array(matrix, dtype=float)
            if data.ndim != 2 or data.shape[1] != len(channels):
                raise InputShapeError(
                    f"Control '{channel}' has shape {data.shape}; expected (N, {len(channels)})"
                )
            data.setflags(write=False)
            matrices.append(data)

        object.__setattr__(self, "channels", channels)
        object.__setattr__(self, "matrices", tuple(matrices))

    @classmethod
    def from_mapping(cls, controls: Mapping[str, np.ndarray]) -> "ControlSet":
        """Build from ``{channel: matrix}``; mapping order fixes channel order."""
        return cls(tuple(controls.keys()), tuple(controls.values()))

    @classmethod
    def from_frames(
        cls,
        frames: Mapping[str, pd.DataFrame],
        channels: Sequence[str],
    ) -> "ControlSet":
        """Build from per-channel event tables, selecting ``channels`` columns by name."""

        missing = [ch for ch in channels if ch not in frames]
        if missing or len(frames) != len(channels):
            raise InputShapeError(
                f"Controls {sorted(frames)} do not match channels {list(channels)}"
            )
        matrices = []
        for channel in channels:
            frame = frames[channel]
            absent = [ch for ch in channels if ch not in frame.columns]
            if absent:
                raise InputShapeError(f"Control '{channel}' is missing columns {absent}")
            matrices.append(frame[list(channels)].to_numpy(dtype=float))
        return cls(tuple(channels), tuple(matrices))

    def __len__(self) -> int:
        return len(self.channels)

    def __iter__(self) -> Iterator[Tuple[str, np.ndarray]]:
        return iter(zip(self.channels, self.matrices))

    def __getitem__(self, channel: str) -> np.ndarray:
        return self.matrices[self.channels.index(channel)]

    @property
    def sizes(self) -> Dict[str, int]:
        return {ch: int(m.shape[0]) for ch, m in self}

    def replace_matrices(self, matrices: Sequence[np.ndarray]) -> "ControlSet":
        return ControlSet(self.channels, tuple(matrices))


def remove_outliers(matrix: np.ndarray, channel_index: int) -> np.ndarray:
    """Drop rows where another column exceeds ``OUTLIER_RATIO`` times ``|column channel_index|``."""

    data = np.asarray(matrix, dtype=float)
    if data.ndim != 2 or not 0 <= channel_index < data.shape[1]:
        raise InputShapeError(
            f"Cannot filter column {channel_index} of a matrix with shape {data.shape}"
        )
    others = np.delete(data, channel_index, axis=1)
    limit = OUTLIER_RATIO * np.abs(data[:, channel_index])
    outliers = np.any(others > limit[:, np.newaxis], axis=1)
    return data[~outliers]


def filter_controls(controls: ControlSet) -> ControlSet:
    """Apply :func:`remove_outliers` to every control on its own channel."""

    filtered = []
    for idx, (channel, matrix) in enumerate(controls):
        kept = remove_outliers(matrix, idx)
        dropped = matrix.shape[0] - kept.shape[0]
        if kept.shape[0] == 0:
            raise DegenerateDataError(f"No events left in control '{channel}' after outlier removal")
        if dropped:
            logger.info("Dropped %d of %d outlier events from control %s", dropped, matrix.shape[0], channel)
        filtered.append(kept)
    return controls.replace_matrices(filtered)


def subsample_rows(n_rows: int, n_keep: int, rng: np.random.Generator) -> np.ndarray:
    """Sorted indices of ``n_keep`` rows drawn uniformly without replacement."""

    if n_keep > n_rows:
        raise ValueError(f"Cannot draw {n_keep} rows from {n_rows}")
    return np.sort(rng.choice(n_rows, size=n_keep, replace=False))


def equalize_controls(controls: ControlSet, seed: Optional[int] = None) -> ControlSet:
    """Subsample every control down to the smallest control's row count."""

    sizes = controls.sizes
    empty = [ch for ch, n in sizes.items() if n == 0]
    if empty:
        raise DegenerateDataError(f"Empty controls cannot be equalized: {empty}")

    n_keep = min(sizes.values())
    rng = np.random.default_rng(seed)
    equalized = []
    for _, matrix in controls:
        if matrix.shape[0] == n_keep:
            equalized.append(matrix)
            continue
        equalized.append(matrix[subsample_rows(matrix.shape[0], n_keep, rng)])
    logger.info("Equalized %d controls to %d events each", len(controls), n_keep)
    return controls.replace_matrices(equalized)

"""Spillover compensation by linear solve."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from cytocomp.errors import InputShapeError, SingularMatrixError

# Condition numbers above 1/eps mean the solve carries no correct digits.
MAX_CONDITION = 1.0 / np.finfo(float).eps


def compensate(data: np.ndarray, coefficients: np.ndarray) -> np.ndarray:
    """Solve ``coefficients @ X_real = data`` for ``X_real``.

    ``data`` is ``C x N`` (channels by events); a length-``C`` vector is
    treated as a single event and a vector is returned. ``coefficients`` is
    the ``C x C`` bleed-through matrix. The input is not modified.
    """

    matrix = _check_coefficients(coefficients)
    observed = np.asarray(data, dtype=float)
    single = observed.ndim == 1
    if single:
        observed = observed[:, np.newaxis]
    if observed.ndim != 2:
        raise InputShapeError(f"Data must be a C x N matrix, got shape {observed.shape}")
    if observed.shape[0] != matrix.shape[1]:
        raise InputShapeError(
            f"# channels in data ({observed.shape[0]}) and coefficients ({matrix.shape[1]}) are not the same"
        )

    _check_conditioning(matrix)
    try:
        real = np.linalg.solve(matrix, observed)
    except np.linalg.LinAlgError as exc:
        raise SingularMatrixError("Coefficient matrix is singular") from exc
    return real[:, 0] if single else real


def _check_coefficients(coefficients: np.ndarray) -> np.ndarray:
    matrix = np.asarray(coefficients, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise InputShapeError(f"Coefficient matrix is not square (shape {matrix.shape})")
    return matrix


def _check_conditioning(matrix: np.ndarray) -> None:
    if not np.all(np.isfinite(matrix)):
        raise SingularMatrixError("Coefficient matrix contains non-finite values")
    cond = np.linalg.cond(matrix)
    if not np.isfinite(cond) or cond > MAX_CONDITION:
        raise SingularMatrixError(f"Coefficient matrix is singular or ill-conditioned (cond={cond:.3g})")


@dataclass(frozen=True, eq=False)
class CompensationMapping:
    """Fitted (or supplied) bleed-through model for one channel panel.

    ``coefficients[i, j]`` is the fraction of fluorophore ``j`` read in
    channel ``i``; the diagonal is 1. ``intercepts[i]`` is the
    autofluorescence baseline of channel ``i``. Arrays are stored read-only.
    """

    coefficients: np.ndarray
    intercepts: np.ndarray
    channels: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        matrix = _check_coefficients(self.coefficients).copy()
        n = matrix.shape[0]
        if not np.allclose(np.diag(matrix), 1.0):
            raise ValueError("Coefficient matrix diagonal must be 1")
        intercepts = np.array(self.intercepts, dtype=float).reshape(-1)
        if intercepts.shape != (n,):
            raise InputShapeError(f"Expected {n} intercepts, got {intercepts.size}")
        channels = tuple(str(ch) for ch in self.channels) or tuple(str(i) for i in range(n))
        if len(channels) != n:
            raise InputShapeError(f"Expected {n} channel names, got {len(channels)}")

        matrix.setflags(write=False)
        intercepts.setflags(write=False)
        object.__setattr__(self, "coefficients", matrix)
        object.__setattr__(self, "intercepts", intercepts)
        object.__setattr__(self, "channels", channels)

    @classmethod
    def identity(cls, channels: Sequence[str]) -> "CompensationMapping":
        n = len(channels)
        return cls(np.eye(n), np.zeros(n), tuple(channels))

    def apply(self, data: np.ndarray, subtract_intercepts: bool = True) -> np.ndarray:
        """Compensate ``C x N`` data, removing autofluorescence first if asked."""

        observed = np.asarray(data, dtype=float)
        if subtract_intercepts:
            if observed.ndim == 0 or observed.shape[0] != self.intercepts.size:
                raise InputShapeError(
                    f"Data has shape {observed.shape}; expected {self.intercepts.size} channels first"
                )
            offset = self.intercepts if observed.ndim == 1 else self.intercepts[:, np.newaxis]
            observed = observed - offset
        return compensate(observed, self.coefficients)

    def to_frame(self) -> pd.DataFrame:
        """Coefficients as a channel-indexed square DataFrame."""
        return pd.DataFrame(self.coefficients, index=list(self.channels), columns=list(self.channels))

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, intercepts: Optional[Sequence[float]] = None) -> "CompensationMapping":
        if frame.shape[0] != frame.shape[1]:
            raise InputShapeError("Coefficient table must be square")
        if not frame.index.equals(frame.columns):
            raise InputShapeError("Coefficient table index/columns must match channel names")
        n = frame.shape[0]
        values = np.zeros(n) if intercepts is None else intercepts
        return cls(frame.to_numpy(dtype=float), values, tuple(frame.index.astype(str)))


def apply_compensation(
    df: pd.DataFrame,
    model: Union[CompensationMapping, np.ndarray],
    channels: Optional[Sequence[str]] = None,
    subtract_intercepts: bool = False,
) -> pd.DataFrame:
    """Compensate the fluorescence columns of an events table.

    Rows of ``df`` are events. ``model`` is either a
    :class:`CompensationMapping` or a bare coefficient matrix, in which case
    ``channels`` names its rows/columns. A copy of ``df`` is returned to avoid
    mutating upstream data.
    """

    if isinstance(model, CompensationMapping):
        mapping = model
        if channels is not None and tuple(channels) != mapping.channels:
            raise InputShapeError(f"Channels {list(channels)} do not match model {list(mapping.channels)}")
    else:
        if channels is None:
            raise InputShapeError("Channel names are required with a bare coefficient matrix")
        matrix = _check_coefficients(model)
        mapping = CompensationMapping(matrix, np.zeros(matrix.shape[0]), tuple(channels))

    missing = [ch for ch in mapping.channels if ch not in df.columns]
    if missing:
        raise InputShapeError(f"Events table is missing channels {missing}")

    present = list(mapping.channels)
    observed = df[present].to_numpy(dtype=float).T
    corrected = mapping.apply(observed, subtract_intercepts=subtract_intercepts)

    compensated = df.copy()
    compensated[present] = corrected.T
    return compensated

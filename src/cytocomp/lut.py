"""Least-squares piecewise-linear lookup tables.

Given scattered ``(x, y)`` samples and fixed breakpoints ``XI``, find the
table values ``YI`` such that ``np.interp(x, XI, YI)`` is the best fit to
``y`` in the least-squares sense. Each sample only touches the two
breakpoints bounding its bin, so the design matrix is banded and sparse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy import linalg, sparse

from cytocomp.errors import DegenerateDataError, InputShapeError

logger = logging.getLogger(__name__)


def _as_vector(values: np.ndarray, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise InputShapeError(f"Vector {name} must have dimension n x 1, got shape {arr.shape}")
    return arr


def _check_breakpoints(breakpoints: np.ndarray) -> np.ndarray:
    xi = np.asarray(breakpoints, dtype=float).reshape(-1)
    if xi.size < 2:
        raise InputShapeError(f"At least two breakpoints are required, got {xi.size}")
    if np.any(np.diff(xi) <= 0):
        raise InputShapeError("Breakpoints must be strictly increasing")
    return xi


def bin_index(x: np.ndarray, breakpoints: np.ndarray) -> np.ndarray:
    """Lower breakpoint index of each sample's bin, or -1 outside the table.

    Bins are half-open ``[XI[j-1], XI[j])`` except the last, which also
    includes ``XI[-1]``.
    """

    n_bins = breakpoints.size - 1
    lower = np.searchsorted(breakpoints, x, side="right") - 1
    lower[x == breakpoints[-1]] = n_bins - 1
    lower[(lower < 0) | (lower >= n_bins)] = -1
    return lower


def assemble_design_matrix(x: np.ndarray, breakpoints: np.ndarray) -> Tuple[sparse.csr_matrix, np.ndarray]:
    """Build the interpolation-weight matrix in one pass.

    Returns ``(A, order)`` where ``order`` indexes the samples that fall in
    the table, sorted by bin, so that ``A @ YI`` approximates ``y[order]``.
    """

    x = _as_vector(x, "x")
    xi = _check_breakpoints(breakpoints)
    lower = bin_index(x, xi)

    inside = np.flatnonzero(lower >= 0)
    order = inside[np.argsort(lower[inside], kind="stable")]
    lo = lower[order]
    t = (x[order] - xi[lo]) / (xi[lo + 1] - xi[lo])

    n_rows = order.size
    rows = np.repeat(np.arange(n_rows), 2)
    cols = np.column_stack([lo, lo + 1]).ravel()
    vals = np.column_stack([1.0 - t, t]).ravel()
    design = sparse.coo_matrix((vals, (rows, cols)), shape=(n_rows, xi.size)).tocsr()
    return design, order


def fit_piecewise_lut(x: np.ndarray, y: np.ndarray, breakpoints: np.ndarray) -> np.ndarray:
    """Table values ``YI`` minimizing ``|y - interp(x; XI, YI)|^2``.

    Breakpoints whose neighbouring bins hold no samples are not determined by
    the data; the minimum-norm solution is returned for them.
    """

    x = _as_vector(x, "x")
    y = _as_vector(y, "y")
    if x.size != y.size:
        raise InputShapeError(f"Vector x and y must have the same length ({x.size} != {y.size})")
    xi = _check_breakpoints(breakpoints)

    design, order = assemble_design_matrix(x, xi)
    if order.size == 0:
        raise DegenerateDataError(f"No samples fall within the breakpoint range [{xi[0]}, {xi[-1]}]")

    normal = (design.T @ design).toarray()
    rhs = design.T @ y[order]
    values, _, rank, _ = linalg.lstsq(normal, rhs, lapack_driver="gelsd")
    if rank < xi.size:
        logger.debug("LUT system is rank deficient (rank %d of %d); using minimum-norm values", rank, xi.size)
    return values


@dataclass(frozen=True, eq=False)
class PiecewiseLUT:
    """A fitted lookup table evaluated by linear interpolation."""

    breakpoints: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        xi = _check_breakpoints(self.breakpoints).copy()
        yi = np.array(self.values, dtype=float).reshape(-1)
        if yi.shape != xi.shape:
            raise InputShapeError(f"Got {yi.size} values for {xi.size} breakpoints")
        xi.setflags(write=False)
        yi.setflags(write=False)
        object.__setattr__(self, "breakpoints", xi)
        object.__setattr__(self, "values", yi)

    @classmethod
    def fit(cls, x: np.ndarray, y: np.ndarray, breakpoints: np.ndarray) -> "PiecewiseLUT":
        return cls(breakpoints, fit_piecewise_lut(x, y, breakpoints))

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return np.interp(np.asarray(x, dtype=float), self.breakpoints, self.values)

    def bin_residuals(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Sum of squared residuals per bin (``len(breakpoints) - 1`` entries)."""

        x = _as_vector(x, "x")
        y = _as_vector(y, "y")
        if x.size != y.size:
            raise InputShapeError(f"Vector x and y must have the same length ({x.size} != {y.size})")
        lower = bin_index(x, self.breakpoints)
        inside = lower >= 0
        squared = np.square(y[inside] - self(x[inside]))
        return np.bincount(lower[inside], weights=squared, minlength=self.breakpoints.size - 1)

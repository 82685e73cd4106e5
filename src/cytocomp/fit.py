"""Joint estimation of bleed-through coefficients and autofluorescence.

Every single-color control, once correctly compensated, should read zero in
all channels except its own. The fit therefore searches the intercepts and
the off-diagonal coefficients together, minimizing the residual signal left
in the off channels of all controls at once. Coefficients are coupled
through the matrix solve, so the channels cannot be fitted pair by pair.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from cytocomp.compensate import CompensationMapping, compensate
from cytocomp.config import FitConfig
from cytocomp.controls import ControlSet, equalize_controls, filter_controls
from cytocomp.errors import ConvergenceWarning, InputShapeError, SingularMatrixError
from cytocomp.optimize import Optimizer, ScipyOptimizer

logger = logging.getLogger(__name__)

Renderer = Callable[[ControlSet, CompensationMapping, FitConfig], Any]


@dataclass(frozen=True, eq=False)
class FitResult:
    mapping: CompensationMapping
    objective_value: float
    converged: bool
    n_iterations: int
    n_evaluations: int
    message: str
    channel_residuals: Dict[str, float]
    n_events: int
    figure: Any = None

    @property
    def coefficients(self) -> np.ndarray:
        return self.mapping.coefficients

    @property
    def intercepts(self) -> np.ndarray:
        return self.mapping.intercepts

    def __iter__(self) -> Iterator[Any]:
        # allows ``coeffs, ints, fval = compute_coefficients(...)``
        return iter((self.coefficients, self.intercepts, self.objective_value))


def offdiagonal_index(n_channels: int) -> Tuple[np.ndarray, np.ndarray]:
    """Row and column indices of the off-diagonal entries, column by column."""

    cols, rows = np.nonzero(~np.eye(n_channels, dtype=bool))
    return rows, cols


def unpack_parameters(params: np.ndarray, n_channels: int) -> Tuple[np.ndarray, np.ndarray]:
    """Split a parameter vector into the coefficient matrix and intercept vector."""

    params = np.asarray(params, dtype=float)
    expected = n_channels * n_channels
    if params.shape != (expected,):
        raise InputShapeError(f"Expected {expected} parameters for {n_channels} channels, got {params.size}")
    intercepts = params[:n_channels].copy()
    coefficients = np.eye(n_channels)
    coefficients[offdiagonal_index(n_channels)] = params[n_channels:]
    return coefficients, intercepts


def pack_parameters(coefficients: np.ndarray, intercepts: np.ndarray) -> np.ndarray:
    """Inverse of :func:`unpack_parameters`."""

    coefficients = np.asarray(coefficients, dtype=float)
    n = coefficients.shape[0]
    return np.concatenate([np.asarray(intercepts, dtype=float).reshape(n), coefficients[offdiagonal_index(n)]])


def channel_residuals(
    params: np.ndarray,
    controls: ControlSet,
    min_func: Callable[[np.ndarray], float],
) -> np.ndarray:
    """Residual left in the off channels of each control for a candidate model."""

    n = len(controls)
    coefficients, intercepts = unpack_parameters(params, n)
    residuals = np.zeros(n)
    for ch, (_, matrix) in enumerate(controls):
        fixed = compensate(matrix.T - intercepts[:, np.newaxis], coefficients)
        # the control's own channel is not expected to be near zero
        residuals[ch] = min_func(np.delete(fixed, ch, axis=0).ravel())
    return residuals


def joint_objective(
    params: np.ndarray,
    controls: ControlSet,
    min_func: Callable[[np.ndarray], float],
) -> float:
    """Sum of per-control residuals; ``inf`` where the candidate matrix is singular."""

    try:
        return float(np.sum(channel_residuals(params, controls, min_func)))
    except SingularMatrixError:
        return np.inf


def compute_coefficients(
    controls: Union[ControlSet, Sequence[np.ndarray]],
    channels: Optional[Sequence[str]] = None,
    config: Optional[Union[FitConfig, Dict[str, Any]]] = None,
    *,
    optimizer: Optional[Optimizer] = None,
    renderer: Optional[Renderer] = None,
) -> FitResult:
    """Fit the bleed-through matrix and intercepts from single-color controls.

    Parameters
    ----------
    controls:
        A :class:`ControlSet`, or one ``N_c x C`` matrix per channel in the
        order of ``channels``.
    channels:
        Channel names. Required when ``controls`` is a plain sequence.
    config:
        :class:`FitConfig` or a mapping accepted by ``FitConfig.from_dict``.
    optimizer:
        Minimizer used for the joint search; defaults to scipy Nelder-Mead.
    renderer:
        Called as ``renderer(controls, mapping, config)`` when
        ``config.plots_on`` is set; defaults to
        :func:`cytocomp.viz.plot_coefficient_fits`.

    Outliers are removed and the controls equalized before fitting. A fit
    that exhausts the optimizer budget emits :class:`ConvergenceWarning` and
    still returns the best estimate with ``converged=False``.
    """

    cfg = config if isinstance(config, FitConfig) else FitConfig.from_dict(config)
    control_set = _as_control_set(controls, channels)
    n = len(control_set)

    prepared = equalize_controls(filter_controls(control_set), seed=cfg.seed)

    x0 = np.concatenate([
        np.full(n, float(cfg.initial_intercept)),
        np.full(n * n - n, float(cfg.initial_coefficient)),
    ])
    search = optimizer or ScipyOptimizer(method=cfg.method, max_iter=cfg.max_iter)
    outcome = search(lambda p: joint_objective(p, prepared, cfg.min_func), x0)
    logger.info("Linear fits obtained with objective value %.2f", outcome.fun)
    if not outcome.converged:
        warnings.warn(
            f"Coefficient fit did not converge after {outcome.n_iterations} iterations "
            f"({outcome.message}); returning best estimate",
            ConvergenceWarning,
            stacklevel=2,
        )

    coefficients, intercepts = unpack_parameters(outcome.x, n)
    mapping = CompensationMapping(coefficients, intercepts, control_set.channels)
    per_channel = dict(zip(control_set.channels, channel_residuals(outcome.x, prepared, cfg.min_func).tolist()))
    logger.debug("Per-channel residuals: %s", per_channel)

    figure = None
    if cfg.plots_on:
        if renderer is None:
            from cytocomp.viz import plot_coefficient_fits

            renderer = plot_coefficient_fits
        figure = renderer(prepared, mapping, cfg)

    return FitResult(
        mapping=mapping,
        objective_value=float(outcome.fun),
        converged=outcome.converged,
        n_iterations=outcome.n_iterations,
        n_evaluations=outcome.n_evaluations,
        message=outcome.message,
        channel_residuals=per_channel,
        n_events=int(prepared.matrices[0].shape[0]),
        figure=figure,
    )


def _as_control_set(
    controls: Union[ControlSet, Sequence[np.ndarray]],
    channels: Optional[Sequence[str]],
) -> ControlSet:
    if isinstance(controls, ControlSet):
        if channels is not None and tuple(str(ch) for ch in channels) != controls.channels:
            raise InputShapeError(f"Channels {list(channels)} do not match controls {list(controls.channels)}")
        return controls
    if channels is None:
        raise InputShapeError("Channel names are required when controls are passed as a sequence")
    return ControlSet(tuple(channels), tuple(controls))

"""Pluggable derivative-free minimizers for the joint coefficient fit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

import numpy as np
from scipy import optimize

Objective = Callable[[np.ndarray], float]


@dataclass(frozen=True)
class OptimizeOutcome:
    x: np.ndarray
    fun: float
    converged: bool
    n_iterations: int = 0
    n_evaluations: int = 0
    message: str = ""


class Optimizer(Protocol):
    """Anything that minimizes ``objective`` starting from ``x0``."""

    def __call__(self, objective: Objective, x0: np.ndarray) -> OptimizeOutcome:
        ...


@dataclass(frozen=True)
class ScipyOptimizer:
    """Wrap :func:`scipy.optimize.minimize` with a gradient-free method.

    Nelder-Mead is the reference behaviour. Tolerances are scipy's defaults
    unless overridden through ``options``.
    """

    method: str = "Nelder-Mead"
    max_iter: Optional[int] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __call__(self, objective: Objective, x0: np.ndarray) -> OptimizeOutcome:
        opts = dict(self.options)
        if self.max_iter is not None:
            opts["maxiter"] = int(self.max_iter)
        result = optimize.minimize(objective, np.asarray(x0, dtype=float), method=self.method, options=opts)
        return OptimizeOutcome(
            x=np.asarray(result.x, dtype=float),
            fun=float(result.fun),
            converged=bool(result.success),
            n_iterations=int(getattr(result, "nit", 0) or 0),
            n_evaluations=int(getattr(result, "nfev", 0) or 0),
            message=str(result.message),
        )

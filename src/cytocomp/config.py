"""Fit configuration with explicit defaults."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np


def sum_of_squares(residuals: np.ndarray) -> float:
    """Least-squares residual reduction (the default)."""
    return float(np.sum(np.square(residuals)))


def sum_of_absolute(residuals: np.ndarray) -> float:
    """L1 residual reduction, less sensitive to leftover outliers."""
    return float(np.sum(np.abs(residuals)))


MIN_FUNCS: Dict[str, Callable[[np.ndarray], float]] = {
    "sum_of_squares": sum_of_squares,
    "sum_of_absolute": sum_of_absolute,
}

DEFAULT_FIT_CONFIG: Dict[str, Any] = {
    "min_func": "sum_of_squares",
    "initial_intercept": 10.0,
    "initial_coefficient": 0.0,
    "seed": None,
    "max_iter": None,
    "method": "Nelder-Mead",
    "plots_on": False,
    "plot_lin": False,
    "do_mef": False,
    "logicle_params": {},
}


@dataclass(frozen=True)
class FitConfig:
    """Options recognised by :func:`cytocomp.fit.compute_coefficients`.

    Only ``min_func``, the initial guesses, ``seed``, ``max_iter`` and
    ``method`` affect the numerics. ``plots_on``, ``plot_lin``, ``do_mef``
    and ``logicle_params`` are forwarded untouched to the rendering
    collaborator.
    """

    min_func: Callable[[np.ndarray], float] = sum_of_squares
    initial_intercept: float = 10.0
    initial_coefficient: float = 0.0
    seed: Optional[int] = None
    max_iter: Optional[int] = None
    method: str = "Nelder-Mead"
    plots_on: bool = False
    plot_lin: bool = False
    do_mef: bool = False
    logicle_params: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.min_func, str):
            object.__setattr__(self, "min_func", resolve_min_func(self.min_func))
        if not callable(self.min_func):
            raise ValueError(f"min_func must be callable or one of {sorted(MIN_FUNCS)}")
        if self.max_iter is not None and int(self.max_iter) < 1:
            raise ValueError(f"max_iter must be positive, got {self.max_iter}")

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]] = None) -> "FitConfig":
        """Build a config from a plain mapping (e.g. the ``fit`` section of a YAML file)."""

        options = dict(options or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown fit configuration keys: {unknown}")
        merged = {**DEFAULT_FIT_CONFIG, **options}
        merged["logicle_params"] = dict(merged.get("logicle_params") or {})
        return cls(**merged)

    def with_options(self, **changes: Any) -> "FitConfig":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


def resolve_min_func(name: str) -> Callable[[np.ndarray], float]:
    try:
        return MIN_FUNCS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown min_func '{name}'; expected one of {sorted(MIN_FUNCS)}") from exc

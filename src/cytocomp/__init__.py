"""cytocomp: bleed-through compensation and piecewise-linear calibration fits for flow cytometry."""

__version__ = "0.1.0"

__author__ = "CytoComp Team"
__email__ = "cytocomp@example.com"

from cytocomp.compensate import CompensationMapping, apply_compensation, compensate
from cytocomp.config import FitConfig
from cytocomp.controls import ControlSet, equalize_controls, filter_controls, remove_outliers
from cytocomp.errors import (
    CompensationError,
    ConvergenceWarning,
    DegenerateDataError,
    InputShapeError,
    SingularMatrixError,
)
from cytocomp.fit import FitResult, compute_coefficients
from cytocomp.lut import PiecewiseLUT, fit_piecewise_lut

__all__ = [
    "CompensationError",
    "CompensationMapping",
    "ControlSet",
    "ConvergenceWarning",
    "DegenerateDataError",
    "FitConfig",
    "FitResult",
    "InputShapeError",
    "PiecewiseLUT",
    "SingularMatrixError",
    "apply_compensation",
    "compensate",
    "compute_coefficients",
    "equalize_controls",
    "filter_controls",
    "fit_piecewise_lut",
    "remove_outliers",
]

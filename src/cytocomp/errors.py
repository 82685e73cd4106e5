"""Exception and warning types raised by the compensation numerics."""

from __future__ import annotations

import numpy as np


class CompensationError(Exception):
    """Base class for all errors raised by cytocomp."""


class InputShapeError(CompensationError, ValueError):
    """Channel, control, matrix or vector dimensions disagree."""


class DegenerateDataError(CompensationError, ValueError):
    """A required dataset is empty, e.g. every row was filtered as an outlier."""


class SingularMatrixError(CompensationError, np.linalg.LinAlgError):
    """The coefficient matrix cannot be inverted for the requested solve."""


class ConvergenceWarning(UserWarning):
    """The joint minimizer stopped before meeting its tolerance.

    The best estimate found so far is still returned; callers may retry with
    different initial conditions or a larger iteration budget.
    """

# src/epicurve/progress/errors.py
from __future__ import annotations

from typing import Optional

import numpy as np


class EpiCurveError(Exception):
    """Base class for every error raised by the modelling core."""


class InsufficientData(EpiCurveError, ValueError):
    def __init__(self, message: str, n: Optional[int] = None, required: Optional[int] = None):
        super().__init__(message)
        self.n = n
        self.required = required

    def __reduce__(self):
        return (type(self), (str(self), self.n, self.required))


class InvalidParameter(EpiCurveError, ValueError):
    pass


class DegenerateTransform(EpiCurveError, ValueError):
    pass


class NoConvergence(EpiCurveError, RuntimeError):
    """
    Nonlinear fit stopped on its evaluation budget.

    `last_params` holds the final iterate (ordered as the model's parameter
    names) so callers can inspect it or fall back to a linear fit.
    """

    def __init__(self, message: str, last_params: Optional[np.ndarray] = None, nfev: Optional[int] = None):
        super().__init__(message)
        self.last_params = None if last_params is None else np.asarray(last_params, float)
        self.nfev = nfev

    def __reduce__(self):
        # keep the iterate when the error crosses a worker-process boundary
        return (type(self), (str(self), self.last_params, self.nfev))


class FitWarning(UserWarning):
    pass

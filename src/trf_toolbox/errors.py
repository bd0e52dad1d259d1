"""Exception types raised by the TRF estimation engine."""

from __future__ import annotations

import numpy as np


class TRFError(Exception):
    """Base class for all TRF toolbox errors."""


class InvalidParameterError(TRFError, ValueError):
    """A scalar argument is malformed (rate, time window, lambda, flags)."""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        super().__init__(f"{parameter}: {message}")


class ShapeMismatchError(TRFError, ValueError):
    """Paired inputs disagree on trial, observation or variable counts."""


class NumericalInstabilityError(TRFError, np.linalg.LinAlgError):
    """The regularized normal equations are singular or ill-conditioned.

    Retrying with the same inputs cannot help; choose a larger regularization
    value (or a regularized method instead of ``ols``).
    """


__all__ = [
    "TRFError",
    "InvalidParameterError",
    "ShapeMismatchError",
    "NumericalInstabilityError",
]

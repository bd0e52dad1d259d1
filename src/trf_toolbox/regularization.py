"""Regularization matrices for the penalized normal equations."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict

import numpy as np

from .errors import InvalidParameterError


class RegularizationMethod(str, Enum):
    RIDGE = "ridge"
    SMOOTHNESS = "smoothness"
    OLS = "ols"

    @classmethod
    def parse(cls, value: "RegularizationMethod | str") -> "RegularizationMethod":
        if isinstance(value, cls):
            return value
        name = str(value).lower()
        if name == "tikhonov":
            return cls.SMOOTHNESS
        try:
            return cls(name)
        except ValueError:
            available = ", ".join(m.value for m in cls)
            raise InvalidParameterError(
                "method", f"unknown regularization method {value!r}. Available: {available}, tikhonov"
            ) from None


def _ridge_matrix(n: int) -> np.ndarray:
    M = np.eye(n)
    M[0, 0] = 0.0
    return M


def _smoothness_matrix(n: int) -> np.ndarray:
    """Second-order difference penalty; the bias and the edges are handled apart."""

    M = np.eye(n) - 0.5 * (np.eye(n, k=1) + np.eye(n, k=-1))
    if n > 1:
        M[1, 1] = 0.5
        M[0, 1] = 0.0
        M[1, 0] = 0.0
    M[-1, -1] = 0.5
    M[0, 0] = 0.0
    return M


def _ols_matrix(n: int) -> np.ndarray:
    return np.zeros((n, n))


REGULARIZATION_BUILDERS: Dict[RegularizationMethod, Callable[[int], np.ndarray]] = {
    RegularizationMethod.RIDGE: _ridge_matrix,
    RegularizationMethod.SMOOTHNESS: _smoothness_matrix,
    RegularizationMethod.OLS: _ols_matrix,
}


def regularization_matrix(n: int, method: RegularizationMethod | str, sample_rate: float) -> np.ndarray:
    """Build the ``n``-by-``n`` penalty matrix for ``method``.

    Row/column 0 belongs to the bias term and is never penalized. The matrix
    is divided by the sampling interval (``1 / sample_rate``) so that the same
    lambda gives consistent shrinkage across sample rates. The lambda itself
    is applied at solve time.
    """

    method = RegularizationMethod.parse(method)
    if n < 1:
        raise InvalidParameterError("n", f"matrix size must be positive, got {n}")
    return REGULARIZATION_BUILDERS[method](n) * float(sample_rate)


def effective_lambdas(lambdas: np.ndarray, method: RegularizationMethod) -> np.ndarray:
    """OLS ignores the requested strengths; every other method keeps them."""

    lambdas = np.asarray(lambdas, dtype=np.float64)
    if method is RegularizationMethod.OLS:
        return np.zeros_like(lambdas)
    return lambdas


__all__ = [
    "RegularizationMethod",
    "REGULARIZATION_BUILDERS",
    "effective_lambdas",
    "regularization_matrix",
]

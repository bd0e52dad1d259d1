"""Regularized normal-equation solver."""

from __future__ import annotations

import warnings

import numpy as np
from scipy import linalg

from .covariance import CovariancePair
from .errors import NumericalInstabilityError
from .lags import single_lag_columns
from .model import ModelType


def _solve(lhs: np.ndarray, rhs: np.ndarray, context: str) -> np.ndarray:
    with warnings.catch_warnings():
        warnings.simplefilter("error", linalg.LinAlgWarning)
        try:
            w = linalg.solve(lhs, rhs)
        except (linalg.LinAlgError, linalg.LinAlgWarning) as exc:
            raise NumericalInstabilityError(
                f"Regularized covariance matrix is singular or ill-conditioned ({context}): {exc}. "
                "Increase the regularization value."
            ) from exc
    if not np.all(np.isfinite(w)):
        raise NumericalInstabilityError(f"Solution contains non-finite weights ({context})")
    return w


def solve_weights(pair: CovariancePair, reg: np.ndarray, lam: float, model_type: ModelType) -> np.ndarray:
    """Solve ``(Cxx + lam * M) w = Cxy``.

    Parameters
    ----------
    pair:
        Training covariances.
    reg:
        Regularization matrix ``M`` (already scaled by the sample rate).
    lam:
        Regularization strength.
    model_type:
        Multi-lag pairs are solved once; single-lag pairs once per lag.

    Returns
    -------
    np.ndarray
        (xvar * nlag + 1, yvar) for multi-lag models, (xvar + 1, nlag, yvar)
        for single-lag models. Row 0 holds the bias.
    """

    penalty = lam * reg
    if model_type is ModelType.MULTI:
        return _solve(pair.cxx + penalty, pair.cxy, f"lambda={lam:g}")
    n_lags = pair.cxx.shape[-1]
    w = np.zeros((pair.cxy.shape[0], n_lags, pair.cxy.shape[1]))
    for k in range(n_lags):
        w[:, k, :] = _solve(pair.cxx[:, :, k] + penalty, pair.cxy[:, :, k], f"lambda={lam:g}, lag index {k}")
    return w


def predict(design: np.ndarray, w: np.ndarray, model_type: ModelType, n_vars: int) -> np.ndarray:
    """Predict from a biased design matrix.

    Returns (rows, yvar) for multi-lag weights and (rows, yvar, nlag) for
    single-lag weights, each lag using only its own columns.
    """

    if model_type is ModelType.MULTI:
        return design @ w
    n_lags = w.shape[1]
    pred = np.zeros((design.shape[0], w.shape[2], n_lags))
    for k in range(n_lags):
        pred[:, :, k] = design[:, single_lag_columns(n_vars, k)] @ w[:, k, :]
    return pred


__all__ = ["predict", "solve_weights"]

"""Prediction accuracy metrics for TRF models."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import stats


@dataclass
class MetricResult:
    r: np.ndarray
    p: np.ndarray
    rmse: np.ndarray


def pearson_corr(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    """Column-wise Pearson correlation; constant columns score 0."""

    a = y_true - y_true.mean(axis=0)
    b = y_pred - y_pred.mean(axis=0)
    num = (a * b).sum(axis=0)
    den = np.sqrt((a**2).sum(axis=0) * (b**2).sum(axis=0))
    r = np.divide(num, den, out=np.zeros_like(num, dtype=np.float64), where=den > 0)
    return np.clip(r, -1.0, 1.0)


def correlation_pvalue(r: np.ndarray, n: int) -> np.ndarray:
    """Two-sided p-value of ``r`` under the null of no correlation (t test, n - 2 dof)."""

    r = np.asarray(r, dtype=np.float64)
    if n < 3:
        return np.full_like(r, np.nan)
    dof = n - 2
    with np.errstate(divide="ignore"):
        t = r * np.sqrt(dof / np.maximum(1.0 - r**2, 0.0))
    return 2.0 * stats.t.sf(np.abs(t), dof)


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    return np.sqrt(np.mean((y_true - y_pred) ** 2, axis=0))


def evaluate_predictions(y_true: np.ndarray, y_pred: np.ndarray) -> MetricResult:
    """Score predictions against observations, independently per column.

    Both arrays have observations along axis 0. Any trailing axes (outputs,
    lags) are scored element-wise.
    """

    if y_true.ndim < y_pred.ndim:
        y_true = y_true.reshape(y_true.shape + (1,) * (y_pred.ndim - y_true.ndim))
    r = pearson_corr(y_true, y_pred)
    return MetricResult(r=r, p=correlation_pvalue(r, y_true.shape[0]), rmse=rmse(y_true, y_pred))


__all__ = [
    "MetricResult",
    "correlation_pvalue",
    "evaluate_predictions",
    "pearson_corr",
    "rmse",
]

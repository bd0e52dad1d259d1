"""Result containers: trained TRF models and cross-validation statistics."""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .errors import InvalidParameterError


class Direction(int, Enum):
    """Direction of causality: forward (encoding) or backward (decoding)."""

    FORWARD = 1
    BACKWARD = -1

    @classmethod
    def parse(cls, value: "Direction | str | float") -> "Direction":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
        elif isinstance(value, numbers.Real) and not isinstance(value, bool) and value in (1, -1):
            return cls(int(value))
        raise InvalidParameterError(
            "direction", f"must be 'forward' (1) or 'backward' (-1), got {value!r}"
        )


class ModelType(str, Enum):
    """``multi`` fits all lags jointly; ``single`` fits one model per lag."""

    MULTI = "multi"
    SINGLE = "single"

    @classmethod
    def parse(cls, value: "ModelType | str") -> "ModelType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidParameterError(
                "model_type", f"must be 'multi' or 'single', got {value!r}"
            ) from None


def _readonly(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class Model:
    """A trained temporal response function.

    Attributes
    ----------
    weights:
        Array of shape (xvar, nlag, yvar), normalized by the sampling interval.
    bias:
        Array of shape (1, 1, yvar) for multi-lag models and (1, nlag, yvar)
        for single-lag models.
    lags_ms:
        Time lags in milliseconds, ascending.
    sample_rate:
        Sample rate in Hz.
    direction:
        Forward (stimulus to response) or backward (response to stimulus).
    model_type:
        Multi-lag or single-lag.
    method:
        Regularization method used for fitting.
    regularization:
        Regularization strength used for fitting (0 for ``ols``).
    """

    weights: np.ndarray
    bias: np.ndarray
    lags_ms: np.ndarray
    sample_rate: float
    direction: Direction
    model_type: ModelType
    method: str = "ridge"
    regularization: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", _readonly(self.weights))
        object.__setattr__(self, "bias", _readonly(self.bias))
        object.__setattr__(self, "lags_ms", _readonly(self.lags_ms))

    @property
    def n_lags(self) -> int:
        return int(self.lags_ms.shape[0])


@dataclass(frozen=True)
class CrossValStats:
    """Per-fold cross-validation scores.

    ``r``, ``p`` and ``rmse`` have shape (nfold, nlambda, yvar) for multi-lag
    models and (nfold, nlambda, yvar, nlag) for single-lag models.
    """

    r: np.ndarray
    p: np.ndarray
    rmse: np.ndarray
    lambdas: np.ndarray
    lags_ms: np.ndarray
    model_type: ModelType = ModelType.MULTI

    def __post_init__(self) -> None:
        for name in ("r", "p", "rmse", "lambdas", "lags_ms"):
            object.__setattr__(self, name, _readonly(getattr(self, name)))

    @property
    def n_folds(self) -> int:
        return int(self.r.shape[0])

    def mean_r(self) -> np.ndarray:
        """Correlation averaged over folds and outputs, one value per lambda (and lag)."""

        return np.nanmean(self.r, axis=(0, 2))

    def best_lambda(self) -> float:
        """Lambda with the highest mean correlation; ties go to the smaller value.

        For single-lag models the score of a lambda is its best lag.
        """

        score = self.mean_r()
        if score.ndim > 1:
            score = np.nanmax(score, axis=1)
        order = np.argsort(self.lambdas, kind="stable")
        best = order[int(np.nanargmax(score[order]))]
        return float(self.lambdas[best])

    def to_frame(self) -> pd.DataFrame:
        """Long-format table with one row per fold, lambda, output (and lag)."""

        rows: List[Dict[str, Any]] = []
        single = self.r.ndim == 4
        n_fold, n_lambda, n_out = self.r.shape[:3]
        for fold in range(n_fold):
            for k in range(n_lambda):
                for j in range(n_out):
                    if single:
                        for lag_idx, lag_ms in enumerate(self.lags_ms):
                            rows.append(
                                {
                                    "fold": fold,
                                    "lambda": float(self.lambdas[k]),
                                    "output": j,
                                    "lag_ms": float(lag_ms),
                                    "r": float(self.r[fold, k, j, lag_idx]),
                                    "p": float(self.p[fold, k, j, lag_idx]),
                                    "rmse": float(self.rmse[fold, k, j, lag_idx]),
                                }
                            )
                    else:
                        rows.append(
                            {
                                "fold": fold,
                                "lambda": float(self.lambdas[k]),
                                "output": j,
                                "r": float(self.r[fold, k, j]),
                                "p": float(self.p[fold, k, j]),
                                "rmse": float(self.rmse[fold, k, j]),
                            }
                        )
        return pd.DataFrame(rows)


def format_model_weights(
    w: np.ndarray, n_vars: int, n_lags: int, model_type: ModelType
) -> tuple[np.ndarray, np.ndarray]:
    """Split the bias row off solved weights and reshape to (xvar, nlag, yvar).

    Multi-lag solutions arrive as (xvar*nlag + 1, yvar) with lag-major rows;
    single-lag solutions as (xvar + 1, nlag, yvar).
    """

    if model_type is ModelType.MULTI:
        n_out = w.shape[-1]
        bias = w[0].reshape(1, 1, n_out)
        weights = w[1:].reshape(n_lags, n_vars, n_out).transpose(1, 0, 2)
        return weights, bias
    return w[1:], w[:1]


__all__ = ["CrossValStats", "Direction", "Model", "ModelType", "format_model_weights"]

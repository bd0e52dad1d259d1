"""Time-lag utilities: lag sets, lagged design matrices and trial segments."""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np

from .model import Direction


def lag_samples(sample_rate: float, direction: Direction, t_min_ms: float, t_max_ms: float) -> np.ndarray:
    """Convert a time window in milliseconds to an ascending set of sample lags.

    Backward models reverse the window: ``t_min``/``t_max`` are swapped and
    negated, so a forward window of [0, 100] ms becomes [-100, 0] ms.
    """

    sign = int(direction)
    if direction is Direction.BACKWARD:
        t_min_ms, t_max_ms = t_max_ms, t_min_ms
    # round first so 0.1 * 30 does not ceil to 4
    lag_min = math.floor(round(t_min_ms / 1e3 * sample_rate * sign, 10))
    lag_max = math.ceil(round(t_max_ms / 1e3 * sample_rate * sign, 10))
    return np.arange(lag_min, lag_max + 1, dtype=int)


def lags_to_ms(lags: np.ndarray, sample_rate: float) -> np.ndarray:
    return np.asarray(lags, dtype=np.float64) / sample_rate * 1e3


def valid_row_range(n_obs: int, lags: Sequence[int]) -> Tuple[int, int]:
    """Rows whose whole lag window falls inside the trial."""

    start = max(0, int(lags[-1]))
    stop = n_obs + min(0, int(lags[0]))
    return start, max(start, stop)


def lag_matrix(x: np.ndarray, lags: Sequence[int], zero_pad: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """Build a time-lagged matrix from ``x``.

    Parameters
    ----------
    x:
        Array of shape (T, F).
    lags:
        Ascending integer lags. A positive lag pairs row ``t`` with
        ``x[t - lag]`` (the predictor precedes the predictand).
    zero_pad:
        If True, samples outside the trial are zero and all T rows are kept.
        Otherwise the rows touching the boundary are dropped.

    Returns
    -------
    lagged:
        Array of shape (rows, F * len(lags)), one F-wide block per lag in
        ascending lag order.
    valid_rows:
        Original row positions of the rows in ``lagged``.
    """

    if x.ndim != 2:
        raise ValueError("x must be a 2D array (T, F)")
    T, F = x.shape
    lagged = np.zeros((T, F * len(lags)), dtype=np.float64)
    for i, lag in enumerate(lags):
        block = slice(i * F, (i + 1) * F)
        if abs(lag) >= T:
            continue
        if lag > 0:
            lagged[lag:, block] = x[: T - lag]
        elif lag < 0:
            lagged[: T + lag, block] = x[-lag:]
        else:
            lagged[:, block] = x
    if zero_pad:
        return lagged, np.arange(T)
    start, stop = valid_row_range(T, lags)
    return lagged[start:stop], np.arange(start, stop)


def design_matrix(x: np.ndarray, lags: Sequence[int], zero_pad: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """Lagged matrix with a leading column of ones for the bias term."""

    lagged, valid_rows = lag_matrix(x, lags, zero_pad=zero_pad)
    return np.hstack([np.ones((lagged.shape[0], 1)), lagged]), valid_rows


def single_lag_columns(n_vars: int, lag_index: int) -> np.ndarray:
    """Design-matrix columns (bias first) belonging to one lag."""

    start = 1 + lag_index * n_vars
    return np.concatenate([[0], np.arange(start, start + n_vars)])


def segment_bounds(n_obs: int, split: int) -> List[Tuple[int, int]]:
    """Partition ``n_obs`` rows into ``split`` contiguous segments.

    Segments hold ``ceil(n_obs / split)`` rows; the last one may be shorter.
    Trailing segments left empty by the rounding are skipped, so fewer than
    ``split`` bounds can come back.
    """

    seg_len = math.ceil(n_obs / split)
    bounds = [(seg_len * j, min(seg_len * (j + 1), n_obs)) for j in range(split)]
    return [(start, stop) for start, stop in bounds if stop > start]


__all__ = [
    "design_matrix",
    "lag_matrix",
    "lag_samples",
    "lags_to_ms",
    "segment_bounds",
    "single_lag_columns",
    "valid_row_range",
]

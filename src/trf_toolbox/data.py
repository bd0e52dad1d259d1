"""Boundary adapter: normalize trial inputs and load trial files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Sequence, Tuple

import numpy as np
from sklearn.utils import check_array

from .errors import ShapeMismatchError

logger = logging.getLogger(__name__)


def _as_trial_list(data: Any) -> List[Any]:
    if isinstance(data, np.ndarray):
        if data.ndim > 2:
            raise ShapeMismatchError(
                f"Expected a 1D/2D array or a sequence of trials, got an array with shape {data.shape}"
            )
        return [data]
    if isinstance(data, (list, tuple)):
        if not data:
            raise ShapeMismatchError("At least one trial is required")
        if np.ndim(data[0]) == 0:
            return [np.asarray(data)]
        return list(data)
    raise ShapeMismatchError(f"Unsupported trial container: {type(data).__name__}")


def format_trials(data: Any, axis: int = 0, name: str = "data") -> Tuple[List[np.ndarray], np.ndarray, int]:
    """Normalize ``data`` into a list of (T, F) float64 trials.

    Parameters
    ----------
    data:
        A single array (one trial) or a list/tuple of arrays (one per trial).
        1D vectors are treated as a single variable.
    axis:
        Axis holding observations in the caller's arrays (0: rows, 1: columns).
    name:
        Argument name used in error messages.

    Returns
    -------
    trials:
        Copies of the trials with observations along rows.
    n_obs:
        Observation count of each trial.
    n_vars:
        The variable count shared by all trials.
    """

    trials: List[np.ndarray] = []
    for i, trial in enumerate(_as_trial_list(data)):
        arr = np.asarray(trial)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        elif arr.ndim != 2:
            raise ShapeMismatchError(f"{name}[{i}] must be 1D or 2D, got shape {arr.shape}")
        elif axis == 1:
            arr = arr.T
        try:
            arr = check_array(arr, dtype=np.float64, copy=True)
        except ValueError as exc:
            raise ShapeMismatchError(f"{name}[{i}]: {exc}") from exc
        trials.append(arr)

    widths = {t.shape[1] for t in trials}
    if len(widths) != 1:
        raise ShapeMismatchError(f"All trials of {name} must have the same number of variables, got {sorted(widths)}")
    n_obs = np.array([t.shape[0] for t in trials], dtype=int)
    return trials, n_obs, widths.pop()


def check_paired(names: Sequence[str], n_obs: Sequence[np.ndarray]) -> None:
    """Raise unless every input has the same trial count and per-trial lengths."""

    counts = {len(obs) for obs in n_obs}
    if len(counts) != 1:
        detail = ", ".join(f"{n}={len(o)}" for n, o in zip(names, n_obs))
        raise ShapeMismatchError(f"Inputs must contain the same number of trials ({detail})")
    reference = n_obs[0]
    for n, obs in zip(names[1:], n_obs[1:]):
        if not np.array_equal(reference, obs):
            raise ShapeMismatchError(
                f"{names[0]} and {n} must have the same number of observations per trial "
                f"({reference.tolist()} vs {obs.tolist()})"
            )


def load_numpy(path: str | Path) -> np.ndarray:
    """Load a NumPy array from ``.npy`` file."""

    array_path = Path(path)
    if not array_path.exists():
        raise FileNotFoundError(f"Array file not found: {array_path}")
    return np.load(array_path)


def load_trials(paths: Sequence[str | Path], base_dir: Path | None = None) -> List[np.ndarray]:
    """Load one trial per ``.npy`` path, resolving relative paths under ``base_dir``."""

    trials = []
    for value in paths:
        path = Path(value)
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        trials.append(load_numpy(path))
    logger.info("Loaded %d trials", len(trials))
    return trials


def trial_summary(trials: Sequence[np.ndarray], name: str) -> None:
    """Log trial count and length range for one input role.

    Columns that are constant within a trial are reported as a warning; their
    weights are set by the regularization alone.
    """

    lengths = [t.shape[0] for t in trials]
    logger.info(
        "%s: trials=%d, observations min=%d max=%d, variables=%d",
        name,
        len(trials),
        min(lengths),
        max(lengths),
        trials[0].shape[1],
    )
    constant = [i for i, t in enumerate(trials) if t.shape[0] > 1 and np.any(np.ptp(t, axis=0) == 0)]
    if constant:
        logger.warning(
            "%s: %d/%d trials have constant columns (first: trial %d)",
            name,
            len(constant),
            len(trials),
            constant[0],
        )


__all__ = ["check_paired", "format_trials", "load_numpy", "load_trials", "trial_summary"]

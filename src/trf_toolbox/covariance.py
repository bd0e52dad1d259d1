"""Covariance accumulation over trials and memory-bounded segments.

The normal equations of the TRF only need ``Cxx = X'X`` and ``Cxy = X'Y``.
Both are sums of outer products over rows, so they add up across segments:
summing the pairs of every segment of every trial gives the pair of the whole
dataset. Cross-validation relies on this to drop one segment's contribution
without rebuilding any design matrix.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Sequence, Tuple

import numpy as np

from .lags import design_matrix, segment_bounds, single_lag_columns
from .model import ModelType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CovariancePair:
    """Predictor auto-covariance ``cxx`` and predictor/predictand cross-covariance ``cxy``.

    Multi-lag pairs are dense: ``cxx`` (m, m), ``cxy`` (m, yvar) with
    ``m = xvar * nlag + 1``. Single-lag pairs carry a trailing lag axis:
    ``cxx`` (xvar + 1, xvar + 1, nlag), ``cxy`` (xvar + 1, yvar, nlag).
    """

    cxx: np.ndarray
    cxy: np.ndarray

    def __add__(self, other: "CovariancePair") -> "CovariancePair":
        return CovariancePair(self.cxx + other.cxx, self.cxy + other.cxy)

    def __sub__(self, other: "CovariancePair") -> "CovariancePair":
        return CovariancePair(self.cxx - other.cxx, self.cxy - other.cxy)


def segment_covariance(
    design: np.ndarray, y: np.ndarray, model_type: ModelType, n_vars: int, n_lags: int
) -> CovariancePair:
    """Covariance pair of one segment.

    Parameters
    ----------
    design:
        Biased, lagged predictor matrix of shape (rows, n_vars * n_lags + 1).
    y:
        Predictand rows aligned with ``design``.
    """

    if model_type is ModelType.MULTI:
        return CovariancePair(design.T @ design, design.T @ y)
    cxx = np.zeros((n_vars + 1, n_vars + 1, n_lags))
    cxy = np.zeros((n_vars + 1, y.shape[1], n_lags))
    for k in range(n_lags):
        sub = design[:, single_lag_columns(n_vars, k)]
        cxx[:, :, k] = sub.T @ sub
        cxy[:, :, k] = sub.T @ y
    return CovariancePair(cxx, cxy)


@dataclass(frozen=True)
class LaggedSegment:
    """Design matrix of one segment together with its aligned predictand rows."""

    design: np.ndarray
    y: np.ndarray
    valid_rows: np.ndarray


class CovarianceAccumulator:
    """Computes covariance pairs across trials split into ``split`` segments."""

    def __init__(self, lags: np.ndarray, model_type: ModelType, n_vars: int, split: int = 1, zero_pad: bool = True):
        self.lags = np.asarray(lags, dtype=int)
        self.model_type = model_type
        self.n_vars = n_vars
        self.split = split
        self.zero_pad = zero_pad

    @property
    def n_lags(self) -> int:
        return int(self.lags.shape[0])

    def lag_segment(self, x: np.ndarray, y: np.ndarray) -> LaggedSegment:
        """Build the design matrix of a segment and keep the matching predictand rows."""

        design, valid_rows = design_matrix(x, self.lags, zero_pad=self.zero_pad)
        return LaggedSegment(design=design, y=y[valid_rows], valid_rows=valid_rows)

    def pair(self, segment: LaggedSegment, y: np.ndarray | None = None) -> CovariancePair:
        """Covariance pair of ``segment``; ``y`` overrides its predictand rows."""

        target = segment.y if y is None else y[segment.valid_rows]
        return segment_covariance(segment.design, target, self.model_type, self.n_vars, self.n_lags)

    def iter_lagged(
        self, x_trials: Sequence[np.ndarray], *y_trials: Sequence[np.ndarray]
    ) -> Iterator[Tuple[LaggedSegment, Tuple[np.ndarray, ...]]]:
        """Yield each segment's lagged predictors with the raw segments of every ``y`` set.

        The first ``y`` set supplies the predictand rows of the yielded
        segment. Order is trial-major, segment-minor, matching
        cross-validation folds.
        """

        for i, x in enumerate(x_trials):
            for start, stop in segment_bounds(x.shape[0], self.split):
                parts = tuple(trials[i][start:stop] for trials in y_trials)
                yield self.lag_segment(x[start:stop], parts[0]), parts

    def segment_pairs(self, x_trials: Sequence[np.ndarray], y_trials: Sequence[np.ndarray]) -> Iterator[CovariancePair]:
        """Per-segment pairs of an ordinary (single predictand set) model."""

        for segment, _ in self.iter_lagged(x_trials, y_trials):
            yield self.pair(segment)

    def paired_segment_pairs(
        self,
        x_trials: Sequence[np.ndarray],
        y1_trials: Sequence[np.ndarray],
        y2_trials: Sequence[np.ndarray],
    ) -> Iterator[Tuple[CovariancePair, CovariancePair]]:
        """Per-segment pairs for one shared predictor set and two predictand sets.

        The design matrix is built once per segment; both pairs share ``cxx``.
        """

        for segment, (y1, y2) in self.iter_lagged(x_trials, y1_trials, y2_trials):
            yield self.pair(segment, y1), self.pair(segment, y2)

    def accumulate(self, x_trials: Sequence[np.ndarray], y_trials: Sequence[np.ndarray]) -> CovariancePair:
        """Grand covariance pair summed over all segments of all trials."""

        return sum_pairs(self.segment_pairs(x_trials, y_trials))


def sum_pairs(pairs: Iterable[CovariancePair]) -> CovariancePair:
    """Running sum of covariance pairs; holds one pair in memory at a time."""

    total: CovariancePair | None = None
    for pair in pairs:
        total = pair if total is None else total + pair
    if total is None:
        raise ValueError("No segments to accumulate")
    return total


class CovarianceStrategy(ABC):
    """Source of leave-one-segment-out training covariances."""

    @property
    @abstractmethod
    def grand(self) -> CovariancePair:
        """Covariance pair over every segment."""

    @abstractmethod
    def training_pair(self, fold: int, held_out: Callable[[], CovariancePair]) -> CovariancePair:
        """Covariance pair of every segment except ``fold``.

        ``held_out`` computes the held-out segment's own pair on demand.
        """


class SegmentedCovariance(CovarianceStrategy):
    """Fast path: keeps every per-segment pair and re-sums all but the held-out one."""

    def __init__(self, pairs: Iterable[CovariancePair]):
        self.pairs: List[CovariancePair] = list(pairs)

    @property
    def grand(self) -> CovariancePair:
        return sum_pairs(self.pairs)

    def training_pair(self, fold: int, held_out: Callable[[], CovariancePair]) -> CovariancePair:
        return sum_pairs(pair for k, pair in enumerate(self.pairs) if k != fold)


class SummedCovariance(CovarianceStrategy):
    """Slow path: keeps only the grand pair and subtracts the held-out segment."""

    def __init__(self, pairs: Iterable[CovariancePair]):
        self._grand = sum_pairs(pairs)

    @property
    def grand(self) -> CovariancePair:
        return self._grand

    def training_pair(self, fold: int, held_out: Callable[[], CovariancePair]) -> CovariancePair:
        return self._grand - held_out()


def build_strategy(pairs: Iterable[CovariancePair], fast: bool) -> CovarianceStrategy:
    strategy = SegmentedCovariance(pairs) if fast else SummedCovariance(pairs)
    logger.debug("Covariance strategy: %s", type(strategy).__name__)
    return strategy


__all__ = [
    "CovarianceAccumulator",
    "CovariancePair",
    "CovarianceStrategy",
    "LaggedSegment",
    "SegmentedCovariance",
    "SummedCovariance",
    "build_strategy",
    "segment_covariance",
    "sum_pairs",
]

"""Leave-one-out cross-validation of ordinary and additive TRFs.

Each fold leaves out one segment (a whole trial when ``split=1``). Training
covariances come from a covariance strategy: the fast one keeps every
per-segment pair and re-sums all but the held-out segment, the slow one keeps
only the grand total and subtracts the held-out segment's own pair. Both give
the same training covariances, so the two modes return identical scores.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Sequence, Tuple

import numpy as np

from .additive import SUPERPOSITION_FACTOR, combine_pairs
from .config import TRFOptions, resolve_options
from .covariance import CovarianceAccumulator, CovariancePair, CovarianceStrategy, LaggedSegment, build_strategy
from .data import check_paired, format_trials, trial_summary
from .errors import InvalidParameterError, ShapeMismatchError
from .evaluation import evaluate_predictions
from .lags import lag_samples, lags_to_ms, segment_bounds, valid_row_range
from .model import CrossValStats, Direction, ModelType
from .regularization import effective_lambdas, regularization_matrix
from .solver import predict, solve_weights
from .train import additive_segment_pairs, format_additive_inputs, validate_parameters

logger = logging.getLogger(__name__)

HeldOut = Callable[[], CovariancePair]


def _check_folds(n_obs: np.ndarray, lags: np.ndarray, options: TRFOptions) -> int:
    """Validate the fold layout before any covariance is computed."""

    n_folds = len(n_obs) * options.split
    if n_folds < 2:
        raise InvalidParameterError(
            "split", "cross-validation needs at least two folds; pass several trials or split > 1"
        )
    for T in n_obs:
        bounds = segment_bounds(int(T), options.split)
        if len(bounds) != options.split:
            raise InvalidParameterError(
                "split", f"{options.split} segments leave an empty held-out fold in a trial of {T} observations"
            )
        for start, stop in bounds:
            rows = stop - start
            if not options.zero_pad:
                lo, hi = valid_row_range(rows, lags)
                rows = hi - lo
            if rows < 2:
                raise ShapeMismatchError(
                    f"A held-out segment of {stop - start} observations leaves {rows} scorable rows; "
                    "reduce split or the lag window"
                )
    return n_folds


def _run_folds(
    folds: Iterable[Tuple[LaggedSegment, HeldOut]],
    strategy: CovarianceStrategy,
    reg: np.ndarray,
    lambdas: np.ndarray,
    model_type: ModelType,
    n_vars: int,
    n_folds: int,
    n_out: int,
    n_lags: int,
    scale: float = 1.0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    shape: Tuple[int, ...] = (n_folds, len(lambdas), n_out)
    if model_type is ModelType.SINGLE:
        shape = shape + (n_lags,)
    r = np.zeros(shape)
    p = np.zeros(shape)
    err = np.zeros(shape)

    for fold, (segment, held_out) in enumerate(folds):
        training = strategy.training_pair(fold, held_out)
        for k, lam in enumerate(lambdas):
            w = solve_weights(training, reg, lam, model_type) * scale
            pred = predict(segment.design, w, model_type, n_vars)
            metrics = evaluate_predictions(segment.y, pred)
            r[fold, k] = metrics.r
            p[fold, k] = metrics.p
            err[fold, k] = metrics.rmse
        logger.debug("Fold %d/%d: mean r per lambda=%s", fold + 1, n_folds, np.round(r[fold].mean(axis=1), 4))
    return r, p, err


def _design_size(n_vars: int, n_lags: int, model_type: ModelType) -> int:
    return n_vars * n_lags + 1 if model_type is ModelType.MULTI else n_vars + 1


def crossvalidate(
    stim: Any,
    resp: Any,
    sample_rate: float,
    direction: Any,
    t_min_ms: float,
    t_max_ms: float,
    lambdas: Any,
    options: TRFOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Tuple[CrossValStats, np.ndarray]:
    """Leave-one-out cross-validation over trials (and segments).

    To run a k-fold cross-validation, pass the data as k trials. ``split``
    multiplies the number of folds by cutting every trial into contiguous
    segments. Discontinuous recordings should be passed as separate trials
    rather than concatenated, so that lags never straddle a discontinuity.

    Returns
    -------
    stats:
        ``CrossValStats`` with arrays of shape (nfold, nlambda, yvar), plus a
        trailing lag axis for single-lag models.
    lags_ms:
        Time lags in milliseconds (ascending).
    """

    direction, lambdas = validate_parameters(sample_rate, direction, t_min_ms, t_max_ms, lambdas)
    options = resolve_options(options, **overrides)

    x, y = (stim, resp) if direction is Direction.FORWARD else (resp, stim)
    x, xobs, xvar = format_trials(x, options.axis, name="predictor")
    y, yobs, yvar = format_trials(y, options.axis, name="predictand")
    check_paired(["predictor", "predictand"], [xobs, yobs])
    trial_summary(x, "predictor")

    lags = lag_samples(sample_rate, direction, t_min_ms, t_max_ms)
    n_folds = _check_folds(xobs, lags, options)
    lam_used = effective_lambdas(lambdas, options.method)
    reg = regularization_matrix(_design_size(xvar, len(lags), options.model_type), options.method, sample_rate)
    logger.info(
        "Cross-validating %s %s-lag TRF: folds=%d, lambdas=%d, lags=%d..%d samples, fast=%s",
        direction.name.lower(),
        options.model_type.value,
        n_folds,
        len(lambdas),
        lags[0],
        lags[-1],
        options.fast,
    )

    accumulator = CovarianceAccumulator(lags, options.model_type, xvar, split=options.split, zero_pad=options.zero_pad)
    strategy = build_strategy(accumulator.segment_pairs(x, y), options.fast)

    def folds() -> Iterable[Tuple[LaggedSegment, HeldOut]]:
        for segment, _ in accumulator.iter_lagged(x, y):
            yield segment, (lambda seg=segment: accumulator.pair(seg))

    r, p, err = _run_folds(folds(), strategy, reg, lam_used, options.model_type, xvar, n_folds, yvar, len(lags))
    lags_ms = lags_to_ms(lags, sample_rate)
    stats = CrossValStats(r=r, p=p, rmse=err, lambdas=lambdas, lags_ms=lags_ms, model_type=options.model_type)
    logger.info("Cross-validation done: best lambda=%g", stats.best_lambda())
    return stats, lags_ms


def _additive_held_out(
    accumulator: CovarianceAccumulator,
    direction: Direction,
    segment: LaggedSegment,
    parts: Sequence[np.ndarray],
) -> CovariancePair:
    """Additive-model covariance of one held-out segment, built from its unisensory data."""

    target, z1, z2 = parts
    if direction is Direction.FORWARD:
        # segment.design is the lagged stimulus shared by both conditions
        return combine_pairs(direction, accumulator.pair(segment, z1), accumulator.pair(segment, z2))
    pair1 = accumulator.pair(accumulator.lag_segment(z1, target))
    pair2 = accumulator.pair(accumulator.lag_segment(z2, target))
    return combine_pairs(direction, pair1, pair2)


def multicrossvalidate(
    stim: Any,
    resp: Any,
    resp1: Any,
    resp2: Any,
    sample_rate: float,
    direction: Any,
    t_min_ms: float,
    t_max_ms: float,
    lambdas: Any,
    options: TRFOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Tuple[CrossValStats, np.ndarray]:
    """Cross-validate an additive multisensory model.

    Models are trained on the two unisensory conditions (``resp1``, ``resp2``)
    of the remaining folds and validated on the multisensory condition
    (``resp``) of the held-out fold.
    """

    direction, lambdas = validate_parameters(sample_rate, direction, t_min_ms, t_max_ms, lambdas)
    options = resolve_options(options, **overrides)

    stim, z1, z2, xvar, (resp_trials,) = format_additive_inputs(
        stim, resp1, resp2, direction, options.axis, extra=[("resp", resp)]
    )
    x, y = (stim, resp_trials) if direction is Direction.FORWARD else (resp_trials, stim)
    yvar = y[0].shape[1]
    trial_summary(x, "predictor")

    lags = lag_samples(sample_rate, direction, t_min_ms, t_max_ms)
    n_folds = _check_folds(np.array([t.shape[0] for t in x]), lags, options)
    lam_used = effective_lambdas(lambdas, options.method)
    reg = regularization_matrix(_design_size(xvar, len(lags), options.model_type), options.method, sample_rate)
    logger.info(
        "Cross-validating additive %s %s-lag TRF: folds=%d, lambdas=%d, fast=%s",
        direction.name.lower(),
        options.model_type.value,
        n_folds,
        len(lambdas),
        options.fast,
    )

    accumulator = CovarianceAccumulator(lags, options.model_type, xvar, split=options.split, zero_pad=options.zero_pad)
    strategy = build_strategy(additive_segment_pairs(accumulator, direction, stim, z1, z2), options.fast)

    def folds() -> Iterable[Tuple[LaggedSegment, HeldOut]]:
        for segment, parts in accumulator.iter_lagged(x, y, z1, z2):
            yield segment, (lambda seg=segment, held=parts: _additive_held_out(accumulator, direction, seg, held))

    r, p, err = _run_folds(
        folds(),
        strategy,
        reg,
        lam_used,
        options.model_type,
        xvar,
        n_folds,
        yvar,
        len(lags),
        scale=SUPERPOSITION_FACTOR,
    )
    lags_ms = lags_to_ms(lags, sample_rate)
    stats = CrossValStats(r=r, p=p, rmse=err, lambdas=lambdas, lags_ms=lags_ms, model_type=options.model_type)
    logger.info("Additive cross-validation done: best lambda=%g", stats.best_lambda())
    return stats, lags_ms


__all__ = ["crossvalidate", "multicrossvalidate"]

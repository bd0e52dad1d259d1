"""Model training: ordinary and additive multisensory TRFs."""

from __future__ import annotations

import logging
import numbers
from typing import Any, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

from .additive import SUPERPOSITION_FACTOR, combine_stream
from .config import TRFOptions, resolve_options
from .covariance import CovarianceAccumulator, CovariancePair, sum_pairs
from .data import check_paired, format_trials, trial_summary
from .errors import InvalidParameterError, ShapeMismatchError
from .lags import lag_samples, lags_to_ms
from .model import Direction, Model, format_model_weights
from .regularization import effective_lambdas, regularization_matrix
from .solver import solve_weights

logger = logging.getLogger(__name__)


def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))


def validate_parameters(
    sample_rate: float, direction: Any, t_min_ms: float, t_max_ms: float, lambdas: Any
) -> Tuple[Direction, np.ndarray]:
    """Check scalar arguments before any data is touched.

    Returns the parsed direction and the regularization values as a 1D array.
    """

    if not _is_real(sample_rate) or not np.isfinite(sample_rate) or sample_rate <= 0:
        raise InvalidParameterError("sample_rate", f"must be a positive number, got {sample_rate!r}")
    for name, value in (("t_min_ms", t_min_ms), ("t_max_ms", t_max_ms)):
        if not _is_real(value) or not np.isfinite(value):
            raise InvalidParameterError(name, f"must be a finite number, got {value!r}")
    if t_min_ms > t_max_ms:
        raise InvalidParameterError("t_min_ms", f"must not exceed t_max_ms ({t_min_ms} > {t_max_ms})")
    try:
        raw = np.asarray(lambdas)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError("regularization", f"must be numeric, got {lambdas!r}") from exc
    if raw.dtype == np.bool_ or not np.issubdtype(raw.dtype, np.number) or np.iscomplexobj(raw):
        raise InvalidParameterError("regularization", f"must be numeric, got {lambdas!r}")
    lambdas = np.atleast_1d(raw.astype(np.float64))
    if lambdas.ndim != 1 or lambdas.size == 0:
        raise InvalidParameterError("regularization", "must be a scalar or a non-empty 1D sequence")
    if not np.all(np.isfinite(lambdas)) or np.any(lambdas < 0):
        raise InvalidParameterError("regularization", f"values must be non-negative, got {lambdas.tolist()}")
    return Direction.parse(direction), lambdas


def _fit(
    pairs: Iterator[CovariancePair],
    n_vars: int,
    lags: np.ndarray,
    sample_rate: float,
    direction: Direction,
    regularization: float,
    options: TRFOptions,
    scale: float = 1.0,
) -> Model:
    grand = sum_pairs(pairs)
    lam = float(effective_lambdas(np.array([regularization]), options.method)[0])
    reg = regularization_matrix(grand.cxx.shape[0], options.method, sample_rate)
    # weights are normalized by the sampling interval
    w = solve_weights(grand, reg, lam, options.model_type) * sample_rate * scale
    weights, bias = format_model_weights(w, n_vars, len(lags), options.model_type)
    return Model(
        weights=weights,
        bias=bias,
        lags_ms=lags_to_ms(lags, sample_rate),
        sample_rate=float(sample_rate),
        direction=direction,
        model_type=options.model_type,
        method=options.method.value,
        regularization=lam,
    )


def train(
    stim: Any,
    resp: Any,
    sample_rate: float,
    direction: Any,
    t_min_ms: float,
    t_max_ms: float,
    regularization: float,
    options: TRFOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Model:
    """Train a forward (encoding) or backward (decoding) TRF.

    Parameters
    ----------
    stim, resp:
        A single trial array or a list of trial arrays. Covariances of all
        trials are summed into one model.
    sample_rate:
        Sample rate in Hz.
    direction:
        ``"forward"`` (stimulus to response) or ``"backward"`` (response to
        stimulus). Backward models reverse the time window automatically.
    t_min_ms, t_max_ms:
        Time-lag window in milliseconds.
    regularization:
        Non-negative regularization strength (ignored by ``ols``).
    options:
        ``TRFOptions`` or a mapping of option values; keyword ``overrides``
        take precedence.
    """

    direction, lambdas = validate_parameters(sample_rate, direction, t_min_ms, t_max_ms, regularization)
    if lambdas.size != 1:
        raise InvalidParameterError("regularization", "train expects a single value")
    options = resolve_options(options, **overrides)

    x, y = (stim, resp) if direction is Direction.FORWARD else (resp, stim)
    x, xobs, xvar = format_trials(x, options.axis, name="predictor")
    y, yobs, _ = format_trials(y, options.axis, name="predictand")
    check_paired(["predictor", "predictand"], [xobs, yobs])
    trial_summary(x, "predictor")

    lags = lag_samples(sample_rate, direction, t_min_ms, t_max_ms)
    logger.info(
        "Training %s %s-lag TRF: lags=%d..%d samples, method=%s, lambda=%g",
        direction.name.lower(),
        options.model_type.value,
        lags[0],
        lags[-1],
        options.method.value,
        lambdas[0],
    )
    accumulator = CovarianceAccumulator(lags, options.model_type, xvar, split=options.split, zero_pad=options.zero_pad)
    return _fit(accumulator.segment_pairs(x, y), xvar, lags, sample_rate, direction, lambdas[0], options)


def format_additive_inputs(
    stim: Any, resp1: Any, resp2: Any, direction: Direction, axis: int, extra: Sequence[Tuple[str, Any]] = ()
) -> Tuple[List[np.ndarray], List[np.ndarray], List[np.ndarray], int, List[List[np.ndarray]]]:
    """Format the inputs of an additive model and check their shapes.

    Returns the stimulus trials, the two unisensory response sets, the number
    of predictor variables and any ``extra`` sets (formatted the same way).
    """

    s, sobs, svar = format_trials(stim, axis, name="stim")
    z1, zobs1, zvar1 = format_trials(resp1, axis, name="resp1")
    z2, zobs2, zvar2 = format_trials(resp2, axis, name="resp2")
    if zvar1 != zvar2:
        raise ShapeMismatchError(f"resp1 and resp2 must have the same number of variables ({zvar1} vs {zvar2})")
    formatted_extra = []
    names, obs = ["stim", "resp1", "resp2"], [sobs, zobs1, zobs2]
    for name, value in extra:
        trials, eobs, evar = format_trials(value, axis, name=name)
        if evar != zvar1:
            raise ShapeMismatchError(f"{name} must have the same number of variables as resp1 ({evar} vs {zvar1})")
        formatted_extra.append(trials)
        names.append(name)
        obs.append(eobs)
    check_paired(names, obs)
    xvar = svar if direction is Direction.FORWARD else zvar1
    return s, z1, z2, xvar, formatted_extra


def additive_segment_pairs(
    accumulator: CovarianceAccumulator,
    direction: Direction,
    stim: Sequence[np.ndarray],
    z1: Sequence[np.ndarray],
    z2: Sequence[np.ndarray],
) -> Iterator[CovariancePair]:
    """Per-segment additive-model covariance pairs."""

    if direction is Direction.FORWARD:
        pairs = accumulator.paired_segment_pairs(stim, z1, z2)
    else:
        pairs = zip(accumulator.segment_pairs(z1, stim), accumulator.segment_pairs(z2, stim))
    return combine_stream(direction, pairs)


def multitrain(
    stim: Any,
    resp1: Any,
    resp2: Any,
    sample_rate: float,
    direction: Any,
    t_min_ms: float,
    t_max_ms: float,
    regularization: float,
    options: TRFOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Model:
    """Train an additive multisensory TRF on two unisensory conditions.

    ``resp1`` and ``resp2`` are the responses to the two unisensory
    conditions. Forward models map ``stim`` to the summed responses; backward
    models map each response back to ``stim``. Weights are multiplied by
    ``SUPERPOSITION_FACTOR`` (see :mod:`trf_toolbox.additive`).
    """

    direction, lambdas = validate_parameters(sample_rate, direction, t_min_ms, t_max_ms, regularization)
    if lambdas.size != 1:
        raise InvalidParameterError("regularization", "multitrain expects a single value")
    options = resolve_options(options, **overrides)

    stim, z1, z2, xvar, _ = format_additive_inputs(stim, resp1, resp2, direction, options.axis)
    lags = lag_samples(sample_rate, direction, t_min_ms, t_max_ms)
    logger.info(
        "Training additive %s %s-lag TRF: trials=%d, lags=%d..%d samples, method=%s",
        direction.name.lower(),
        options.model_type.value,
        len(stim),
        lags[0],
        lags[-1],
        options.method.value,
    )
    accumulator = CovarianceAccumulator(lags, options.model_type, xvar, split=options.split, zero_pad=options.zero_pad)
    pairs = additive_segment_pairs(accumulator, direction, stim, z1, z2)
    return _fit(pairs, xvar, lags, sample_rate, direction, lambdas[0], options, scale=SUPERPOSITION_FACTOR)


__all__ = ["multitrain", "train", "validate_parameters"]

"""Tests for model training, the solver and the additive model."""

import dataclasses
import logging

import numpy as np
import pytest
from sklearn.linear_model import LinearRegression, Ridge

from trf_toolbox import crossvalidate, multitrain, train
from trf_toolbox.additive import SUPERPOSITION_FACTOR, combine_pairs
from trf_toolbox.covariance import CovarianceAccumulator, CovariancePair
from trf_toolbox.errors import InvalidParameterError, NumericalInstabilityError, ShapeMismatchError
from trf_toolbox.lags import design_matrix, lag_matrix, lag_samples
from trf_toolbox.model import Direction, ModelType
from trf_toolbox.regularization import regularization_matrix
from trf_toolbox.solver import predict, solve_weights

FS = 100.0


def _flat_weights(model):
    """Stack bias and weights back into solver layout, undoing the sample-rate scaling."""

    n_vars, n_lags, n_out = model.weights.shape
    flat = model.weights.transpose(1, 0, 2).reshape(n_lags * n_vars, n_out)
    return np.vstack([model.bias.reshape(1, n_out), flat]) / model.sample_rate


class TestTrain:
    def test_single_trial_two_lags(self):
        rng = np.random.default_rng(0)
        stim = rng.standard_normal((100, 2))
        resp = rng.standard_normal((100, 1))
        model = train(stim, resp, 10, "forward", 0, 100, 1.0, method="ridge")
        assert model.weights.shape == (2, 2, 1)
        assert model.bias.shape == (1, 1, 1)
        np.testing.assert_allclose(model.lags_ms, [0.0, 100.0])
        assert model.direction is Direction.FORWARD
        assert model.model_type is ModelType.MULTI

    @pytest.mark.parametrize("lam", [0.01, 1.0, 25.0])
    def test_ridge_matches_sklearn(self, trials, lam):
        stims, resps = trials
        lags = lag_samples(FS, Direction.FORWARD, 0, 40)
        X = np.vstack([lag_matrix(s, lags)[0] for s in stims])
        Y = np.vstack(resps)
        reference = Ridge(alpha=lam * FS, fit_intercept=True).fit(X, Y)

        model = train(stims, resps, FS, "forward", 0, 40, lam)
        expected = reference.coef_.T.reshape(len(lags), 2, 3).transpose(1, 0, 2) * FS
        np.testing.assert_allclose(model.weights, expected, rtol=1e-6, atol=1e-8)
        np.testing.assert_allclose(model.bias[0, 0], reference.intercept_ * FS, rtol=1e-6, atol=1e-8)

    def test_ols_matches_least_squares(self, trials):
        stims, resps = trials
        lags = lag_samples(FS, Direction.FORWARD, -20, 30)
        X = np.vstack([lag_matrix(s, lags, zero_pad=False)[0] for s in stims])
        Y = np.vstack([r[max(0, lags[-1]) : len(r) + min(0, lags[0])] for r in resps])
        reference = LinearRegression().fit(X, Y)

        model = train(stims, resps, FS, "forward", -20, 30, 0.0, method="ols", zero_pad=False)
        expected = reference.coef_.T.reshape(len(lags), 2, 3).transpose(1, 0, 2) * FS
        np.testing.assert_allclose(model.weights, expected, rtol=1e-6, atol=1e-8)

    def test_ols_ignores_lambda(self, trials):
        stims, resps = trials
        ols = train(stims, resps, FS, "forward", 0, 50, 10.0, method="ols")
        ridge = train(stims, resps, FS, "forward", 0, 50, 0.0, method="ridge")
        np.testing.assert_allclose(ols.weights, ridge.weights)
        assert ols.regularization == 0.0

    def test_larger_lambda_shrinks_weights(self, trials):
        stims, resps = trials
        small = train(stims, resps, FS, "forward", 0, 50, 0.01)
        large = train(stims, resps, FS, "forward", 0, 50, 1000.0)
        assert np.linalg.norm(large.weights) < np.linalg.norm(small.weights)

    def test_smoothness_fits(self, trials):
        stims, resps = trials
        model = train(stims, resps, FS, "forward", 0, 50, 1.0, method="tikhonov")
        assert model.method == "smoothness"
        assert np.all(np.isfinite(model.weights))

    def test_recovers_filter(self):
        rng = np.random.default_rng(4)
        stim = rng.standard_normal((2000, 1))
        kernel = np.array([0.0, 1.0, -0.5, 0.25])
        resp = np.convolve(stim[:, 0], kernel)[:2000].reshape(-1, 1)
        model = train(stim, resp, FS, "forward", 0, 30, 1e-6)
        np.testing.assert_allclose(model.weights[0, :, 0] / FS, kernel, atol=1e-4)

    def test_backward_model(self, trials):
        stims, resps = trials
        model = train(stims, resps, FS, "backward", 0, 40, 1.0)
        assert model.weights.shape == (3, 5, 2)
        np.testing.assert_allclose(model.lags_ms, [-40.0, -30.0, -20.0, -10.0, 0.0])
        assert model.direction is Direction.BACKWARD
        assert train(stims, resps, FS, -1, 0, 40, 1.0).direction is Direction.BACKWARD

    def test_observation_axis(self, trials):
        stims, resps = trials
        rows = train(stims, resps, FS, "forward", 0, 30, 1.0)
        cols = train([s.T for s in stims], [r.T for r in resps], FS, "forward", 0, 30, 1.0, axis=1)
        np.testing.assert_allclose(cols.weights, rows.weights)

    def test_single_array_is_one_trial(self, trials):
        stims, resps = trials
        as_list = train([stims[0]], [resps[0]], FS, "forward", 0, 30, 1.0)
        as_array = train(stims[0], resps[0], FS, "forward", 0, 30, 1.0)
        np.testing.assert_array_equal(as_array.weights, as_list.weights)

    def test_split_with_empty_trailing_segment(self, trials):
        # 9 rows in 4 segments of ceil(9 / 4) = 3 leave the last one empty
        stims, resps = trials
        stim, resp = stims[0][:9], resps[0][:9]
        whole = train(stim, resp, FS, "forward", 0, 0, 1.0)
        split = train(stim, resp, FS, "forward", 0, 0, 1.0, split=4)
        np.testing.assert_allclose(split.weights, whole.weights, rtol=1e-10)

    def test_inputs_untouched_and_model_read_only(self, trials):
        stims, resps = trials
        before = [s.copy() for s in stims]
        model = train(stims, resps, FS, "forward", 0, 30, 1.0)
        for original, now in zip(before, stims):
            np.testing.assert_array_equal(original, now)
        with pytest.raises(ValueError):
            model.weights[0, 0, 0] = 1.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            model.sample_rate = 1.0

    def test_weights_reproduce_solver_predictions(self, trials):
        stims, resps = trials
        model = train(stims, resps, FS, "forward", 0, 40, 1.0)
        lags = lag_samples(FS, Direction.FORWARD, 0, 40)
        design, _ = design_matrix(stims[0], lags)
        acc = CovarianceAccumulator(lags, ModelType.MULTI, 2)
        grand = acc.accumulate(stims, resps)
        w = solve_weights(grand, regularization_matrix(grand.cxx.shape[0], "ridge", FS), 1.0, ModelType.MULTI)
        np.testing.assert_allclose(
            predict(design, _flat_weights(model), ModelType.MULTI, 2),
            predict(design, w, ModelType.MULTI, 2),
            atol=1e-9,
        )


class TestSingleLag:
    def test_fifty_lags(self):
        rng = np.random.default_rng(5)
        stim = rng.standard_normal((300, 2))
        resp = rng.standard_normal((300, 3))
        model = train(stim, resp, FS, "forward", 0, 490, 1.0, model_type="single")
        assert model.weights.shape == (2, 50, 3)
        assert model.bias.shape == (1, 50, 3)
        assert model.n_lags == 50

    def test_each_lag_matches_its_own_fit(self, trials):
        stims, resps = trials
        full = train(stims, resps, FS, "forward", 0, 200, 1.0, model_type="single")
        only = train(stims, resps, FS, "forward", 100, 100, 1.0, model_type="single")
        multi = train(stims, resps, FS, "forward", 100, 100, 1.0, model_type="multi")
        np.testing.assert_allclose(only.weights[:, 0], full.weights[:, 10], rtol=1e-9, atol=1e-12)
        np.testing.assert_allclose(multi.weights[:, 0], full.weights[:, 10], rtol=1e-9, atol=1e-12)

    def test_per_lag_solves_are_independent(self, trials):
        stims, resps = trials
        lags = np.arange(0, 6)
        pair = CovarianceAccumulator(lags, ModelType.SINGLE, 2).accumulate(stims, resps)
        reg = regularization_matrix(3, "ridge", FS)
        base = solve_weights(pair, reg, 1.0, ModelType.SINGLE)

        # heavier penalty on lag 0 only
        cxx = pair.cxx.copy()
        cxx[:, :, 0] += 50.0 * reg
        changed = solve_weights(CovariancePair(cxx, pair.cxy), reg, 1.0, ModelType.SINGLE)
        np.testing.assert_array_equal(changed[:, 1:], base[:, 1:])
        assert not np.allclose(changed[:, 0], base[:, 0])

    def test_single_lag_prediction_shape(self, trials):
        stims, resps = trials
        lags = np.arange(0, 4)
        pair = CovarianceAccumulator(lags, ModelType.SINGLE, 2).accumulate(stims, resps)
        w = solve_weights(pair, regularization_matrix(3, "ridge", FS), 1.0, ModelType.SINGLE)
        design, _ = design_matrix(stims[0], lags)
        assert predict(design, w, ModelType.SINGLE, 2).shape == (200, 3, 4)


class TestMultitrain:
    def test_identical_conditions_double_the_model(self, trials):
        stims, resps = trials
        single = train(stims, resps, FS, "forward", 0, 40, 0.0, method="ols")
        additive = multitrain(stims, resps, resps, FS, "forward", 0, 40, 0.0, method="ols")
        np.testing.assert_allclose(additive.weights, SUPERPOSITION_FACTOR * single.weights, rtol=1e-8)
        np.testing.assert_allclose(additive.bias, SUPERPOSITION_FACTOR * single.bias, rtol=1e-8, atol=1e-10)

    @pytest.mark.parametrize("direction", ["forward", "backward"])
    def test_identical_conditions_with_ridge(self, trials, direction):
        # summed covariances halve the effective lambda
        stims, resps = trials
        single = train(stims, resps, FS, direction, 0, 40, 0.5)
        additive = multitrain(stims, resps, resps, FS, direction, 0, 40, 1.0)
        np.testing.assert_allclose(additive.weights, 2.0 * single.weights, rtol=1e-8, atol=1e-10)

    def test_forward_fits_summed_responses(self, multisensory_trials):
        stims, _, resp1, resp2 = multisensory_trials
        additive = multitrain(stims, resp1, resp2, FS, "forward", 0, 40, 2.0)
        summed = train(stims, [a + b for a, b in zip(resp1, resp2)], FS, "forward", 0, 40, 1.0)
        np.testing.assert_allclose(additive.weights, summed.weights, rtol=1e-8, atol=1e-10)

    def test_backward_shapes(self, multisensory_trials):
        stims, _, resp1, resp2 = multisensory_trials
        model = multitrain(stims, resp1, resp2, FS, "backward", 0, 40, 1.0)
        assert model.weights.shape == (3, 5, 2)
        assert model.lags_ms[0] == -40.0

    def test_mismatched_condition_widths(self, multisensory_trials):
        stims, _, resp1, resp2 = multisensory_trials
        with pytest.raises(ShapeMismatchError):
            multitrain(stims, resp1, [r[:, :2] for r in resp2], FS, "forward", 0, 40, 1.0)


class TestCombinePairs:
    def _pairs(self):
        rng = np.random.default_rng(6)
        pair1 = CovariancePair(rng.standard_normal((3, 3)), rng.standard_normal((3, 2)))
        pair2 = CovariancePair(rng.standard_normal((3, 3)), rng.standard_normal((3, 2)))
        return pair1, pair2

    def test_forward_doubles_first_auto_covariance(self):
        pair1, pair2 = self._pairs()
        combined = combine_pairs(Direction.FORWARD, pair1, pair2)
        np.testing.assert_allclose(combined.cxx, 2 * pair1.cxx)
        np.testing.assert_allclose(combined.cxy, pair1.cxy + pair2.cxy)

    def test_backward_sums_both_auto_covariances(self):
        pair1, pair2 = self._pairs()
        combined = combine_pairs(Direction.BACKWARD, pair1, pair2)
        np.testing.assert_allclose(combined.cxx, pair1.cxx + pair2.cxx)
        np.testing.assert_allclose(combined.cxy, pair1.cxy + pair2.cxy)

    def test_directions_differ_for_distinct_predictors(self):
        pair1, pair2 = self._pairs()
        forward = combine_pairs(Direction.FORWARD, pair1, pair2)
        backward = combine_pairs(Direction.BACKWARD, pair1, pair2)
        assert not np.allclose(forward.cxx, backward.cxx)


class TestErrors:
    @pytest.mark.parametrize("sample_rate", [0, -10, float("nan"), float("inf"), True])
    def test_bad_sample_rate(self, trials, sample_rate):
        stims, resps = trials
        with pytest.raises(InvalidParameterError) as excinfo:
            train(stims, resps, sample_rate, "forward", 0, 40, 1.0)
        assert excinfo.value.parameter == "sample_rate"

    def test_reversed_window(self, trials):
        stims, resps = trials
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, "forward", 100, 0, 1.0)

    @pytest.mark.parametrize("lam", [-1.0, float("nan"), [1.0, 2.0]])
    def test_bad_regularization(self, trials, lam):
        stims, resps = trials
        with pytest.raises(InvalidParameterError) as excinfo:
            train(stims, resps, FS, "forward", 0, 40, lam)
        assert excinfo.value.parameter == "regularization"

    @pytest.mark.parametrize("direction", ["sideways", 0, 2, True, 0.5, float("nan")])
    def test_bad_direction(self, trials, direction):
        stims, resps = trials
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, direction, 0, 40, 1.0)

    @pytest.mark.parametrize(
        "direction, expected",
        [(1.0, Direction.FORWARD), (-1.0, Direction.BACKWARD), (np.float64(-1.0), Direction.BACKWARD)],
    )
    def test_integral_float_direction(self, direction, expected):
        assert Direction.parse(direction) is expected

    @pytest.mark.parametrize(
        "name, args",
        [
            ("sample_rate", ("100", "forward", 0, 40, 1.0)),
            ("sample_rate", (np.array([100.0]), "forward", 0, 40, 1.0)),
            ("t_min_ms", (FS, "forward", "0", 40, 1.0)),
            ("t_max_ms", (FS, "forward", 0, None, 1.0)),
            ("regularization", (FS, "forward", 0, 40, "big")),
            ("regularization", (FS, "forward", 0, 40, None)),
            ("regularization", (FS, "forward", 0, 40, False)),
        ],
    )
    def test_malformed_scalars(self, trials, name, args):
        stims, resps = trials
        with pytest.raises(InvalidParameterError) as excinfo:
            train(stims, resps, *args)
        assert excinfo.value.parameter == name

    def test_malformed_lambda_grid(self, trials):
        stims, resps = trials
        with pytest.raises(InvalidParameterError) as excinfo:
            crossvalidate(stims, resps, FS, "forward", 0, 40, [1.0, "big"])
        assert excinfo.value.parameter == "regularization"

    def test_bad_options(self, trials):
        stims, resps = trials
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, "forward", 0, 40, 1.0, split=0)
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, "forward", 0, 40, 1.0, model_type="many")
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, "forward", 0, 40, 1.0, axis=2)
        with pytest.raises(InvalidParameterError):
            train(stims, resps, FS, "forward", 0, 40, 1.0, verbose=True)

    def test_trial_count_mismatch(self, trials):
        stims, resps = trials
        with pytest.raises(ShapeMismatchError):
            train(stims, resps[:-1], FS, "forward", 0, 40, 1.0)

    def test_observation_mismatch(self, trials):
        stims, resps = trials
        with pytest.raises(ShapeMismatchError):
            train(stims, [r[:-1] for r in resps], FS, "forward", 0, 40, 1.0)

    def test_variable_count_mismatch_across_trials(self, trials):
        stims, resps = trials
        stims = list(stims)
        stims[1] = stims[1][:, :1]
        with pytest.raises(ShapeMismatchError):
            train(stims, resps, FS, "forward", 0, 40, 1.0)

    def test_three_dimensional_input(self):
        with pytest.raises(ShapeMismatchError):
            train(np.ones((2, 10, 2)), np.ones((2, 10, 1)), FS, "forward", 0, 40, 1.0)

    def test_non_finite_input(self, trials):
        stims, resps = trials
        resps = [r.copy() for r in resps]
        resps[0][3, 1] = np.nan
        with pytest.raises(ShapeMismatchError):
            train(stims, resps, FS, "forward", 0, 40, 1.0)

    def test_singular_ols(self):
        rng = np.random.default_rng(7)
        stim = np.column_stack([rng.standard_normal(200), np.zeros(200)])
        resp = rng.standard_normal((200, 1))
        with pytest.raises(NumericalInstabilityError) as excinfo:
            train(stim, resp, FS, "forward", 0, 20, 0.0, method="ols")
        assert isinstance(excinfo.value, np.linalg.LinAlgError)

    def test_ridge_regularizes_singular_design(self, caplog):
        rng = np.random.default_rng(7)
        stim = np.column_stack([rng.standard_normal(200), np.zeros(200)])
        resp = rng.standard_normal((200, 1))
        with caplog.at_level(logging.WARNING, logger="trf_toolbox.data"):
            model = train(stim, resp, FS, "forward", 0, 20, 1.0)
        np.testing.assert_allclose(model.weights[1], 0.0, atol=1e-12)
        assert "constant columns" in caplog.text

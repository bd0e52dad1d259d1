"""Synthetic stimulus/response trials shared by the test modules."""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pytest


def make_trials(
    n_trials: int = 5,
    n_obs: int = 200,
    n_stim: int = 2,
    n_resp: int = 3,
    kernel_lags: int = 4,
    noise: float = 0.5,
    seed: int = 0,
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """Responses are a lagged linear filter of the stimulus plus noise."""

    rng = np.random.default_rng(seed)
    kernel = rng.standard_normal((kernel_lags, n_stim, n_resp))
    stims, resps = [], []
    for _ in range(n_trials):
        stim = rng.standard_normal((n_obs, n_stim))
        resp = np.zeros((n_obs, n_resp))
        for lag in range(kernel_lags):
            resp[lag:] += stim[: n_obs - lag] @ kernel[lag]
        resp += noise * rng.standard_normal((n_obs, n_resp))
        stims.append(stim)
        resps.append(resp)
    return stims, resps


@pytest.fixture
def trials() -> Tuple[List[np.ndarray], List[np.ndarray]]:
    return make_trials()


@pytest.fixture
def multisensory_trials() -> Tuple[List[np.ndarray], List[np.ndarray], List[np.ndarray], List[np.ndarray]]:
    """Stimulus, multisensory response and two unisensory responses."""

    stims, resp1 = make_trials(n_trials=4, n_obs=150, seed=1)
    _, resp2 = make_trials(n_trials=4, n_obs=150, seed=2)
    rng = np.random.default_rng(3)
    resp = [a + b + 0.1 * rng.standard_normal(a.shape) for a, b in zip(resp1, resp2)]
    return stims, resp, resp1, resp2

"""Additive multisensory models.

An additive model is trained on two unisensory conditions and tested on the
multisensory condition (Crosse et al., 2015). It assumes superposition: the
multisensory response is well approximated by the sum of the two unisensory
responses. Summing the unisensory covariances fits the *average* of the two
unisensory models, so the solved weights are multiplied by
``SUPERPOSITION_FACTOR`` to recover their sum. The factor expresses that
modelling assumption; it is not a numerical correction.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Tuple

from .covariance import CovariancePair
from .model import Direction

SUPERPOSITION_FACTOR = 2.0


def combine_pairs(direction: Direction, pair1: CovariancePair, pair2: CovariancePair) -> CovariancePair:
    """Combine two unisensory covariance pairs into one additive-model pair.

    Forward models share a single predictor (the stimulus) across both
    conditions, so the auto-covariance of ``pair1`` is doubled and
    ``pair2.cxx`` is ignored. Backward models have a different predictor per
    condition (the two responses), so both auto-covariances are summed.
    Cross-covariances are summed in both directions.
    """

    if direction is Direction.FORWARD:
        cxx = pair1.cxx + pair1.cxx
    else:
        cxx = pair1.cxx + pair2.cxx
    return CovariancePair(cxx, pair1.cxy + pair2.cxy)


def combine_stream(
    direction: Direction, pairs: Iterable[Tuple[CovariancePair, CovariancePair]]
) -> Iterator[CovariancePair]:
    for pair1, pair2 in pairs:
        yield combine_pairs(direction, pair1, pair2)


__all__ = ["SUPERPOSITION_FACTOR", "combine_pairs", "combine_stream"]

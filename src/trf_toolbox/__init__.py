"""Regularized time-lagged regression (temporal response functions)."""

from .config import TRFOptions, load_config, load_options
from .crossval import crossvalidate, multicrossvalidate
from .errors import InvalidParameterError, NumericalInstabilityError, ShapeMismatchError, TRFError
from .model import CrossValStats, Direction, Model, ModelType
from .regularization import RegularizationMethod
from .train import multitrain, train

__all__ = [
    "TRFOptions",
    "load_config",
    "load_options",
    "crossvalidate",
    "multicrossvalidate",
    "train",
    "multitrain",
    "Model",
    "CrossValStats",
    "Direction",
    "ModelType",
    "RegularizationMethod",
    "TRFError",
    "InvalidParameterError",
    "ShapeMismatchError",
    "NumericalInstabilityError",
]

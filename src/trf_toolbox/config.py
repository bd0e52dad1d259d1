"""Configuration loading and option resolution for TRF fitting."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import InvalidParameterError
from .model import ModelType
from .regularization import RegularizationMethod


def load_config(path: str | Path) -> Dict[str, Any]:
    """Load a YAML configuration file.

    Parameters
    ----------
    path:
        Path to the YAML file.

    Returns
    -------
    Dict[str, Any]
        Parsed configuration dictionary (empty when the file is empty).
    """

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass(frozen=True)
class TRFOptions:
    """Options shared by the training and cross-validation entry points.

    Attributes
    ----------
    axis:
        Array axis holding observations: 0 for rows (default), 1 for columns.
    method:
        Regularization method (``ridge``, ``smoothness``/``tikhonov`` or ``ols``).
    model_type:
        ``multi`` fits all lags jointly, ``single`` fits each lag on its own.
    split:
        Number of contiguous segments per trial. Bounds peak memory and, in
        cross-validation, multiplies the number of folds.
    zero_pad:
        Zero-pad the lagged design matrix (True) or drop the rows whose lag
        window leaves the trial (False).
    fast:
        Cross-validation only: keep every per-segment covariance in memory
        (True) or only the grand total (False). Results are identical.
    """

    axis: int = 0
    method: RegularizationMethod = RegularizationMethod.RIDGE
    model_type: ModelType = ModelType.MULTI
    split: int = 1
    zero_pad: bool = True
    fast: bool = True

    def __post_init__(self) -> None:
        if self.axis not in (0, 1):
            raise InvalidParameterError("axis", f"must be 0 or 1, got {self.axis!r}")
        object.__setattr__(self, "method", RegularizationMethod.parse(self.method))
        object.__setattr__(self, "model_type", ModelType.parse(self.model_type))
        if isinstance(self.split, bool) or int(self.split) != self.split or self.split < 1:
            raise InvalidParameterError("split", f"must be a positive integer, got {self.split!r}")
        object.__setattr__(self, "split", int(self.split))
        object.__setattr__(self, "zero_pad", bool(self.zero_pad))
        object.__setattr__(self, "fast", bool(self.fast))

    @classmethod
    def from_mapping(cls, config_like: Mapping[str, Any]) -> "TRFOptions":
        """Build options from a mapping, ignoring keys that are not option names."""

        field_names = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_like.items() if k in field_names}
        return cls(**filtered)


def resolve_options(options: TRFOptions | Mapping[str, Any] | None = None, **overrides: Any) -> TRFOptions:
    """Merge an options object (or mapping) with keyword overrides."""

    if options is None:
        resolved = TRFOptions()
    elif isinstance(options, TRFOptions):
        resolved = options
    else:
        resolved = TRFOptions.from_mapping(options)
    unknown = set(overrides) - {f.name for f in fields(TRFOptions)}
    if unknown:
        raise InvalidParameterError("options", f"unknown option(s): {sorted(unknown)}")
    return replace(resolved, **overrides) if overrides else resolved


def load_options(path: str | Path, section: str = "trf") -> TRFOptions:
    """Read ``TRFOptions`` from the ``section`` mapping of a YAML file."""

    config_dict = load_config(path)
    section_dict = config_dict.get(section, {}) if isinstance(config_dict.get(section, {}), dict) else {}
    return TRFOptions.from_mapping(section_dict)


__all__ = ["TRFOptions", "load_config", "load_options", "resolve_options"]

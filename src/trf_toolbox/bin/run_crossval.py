"""Cross-validate a TRF on ``.npy`` trials described by a YAML config."""

from __future__ import annotations

import argparse
import datetime
import logging
from pathlib import Path
from typing import Dict, List, Sequence

import numpy as np

from trf_toolbox.config import TRFOptions, load_config
from trf_toolbox.crossval import crossvalidate
from trf_toolbox.data import load_trials

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run TRF cross-validation on .npy trials")
    parser.add_argument("--config", required=True, help="Path to cross-validation YAML config")
    parser.add_argument("--output", type=Path, help="Optional CSV path (defaults to a timestamped file)")
    return parser.parse_args(argv)


def _section(config_dict: Dict[str, object], key: str) -> Dict[str, object]:
    value = config_dict.get(key, {})
    return value if isinstance(value, dict) else {}


def _resolve_output(config_dict: Dict[str, object], output: Path | None) -> Path:
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        return output
    base = Path(str(config_dict.get("output_dir", "results/trf")))
    base.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    return base / f"crossval_{timestamp}.csv"


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)
    config_path = Path(args.config)
    config_dict = load_config(config_path)

    data_section = _section(config_dict, "data")
    if "stim" not in data_section or "resp" not in data_section:
        raise ValueError("Config 'data' section must list 'stim' and 'resp' trial files")
    base_dir = Path(str(data_section.get("root", config_path.parent)))
    stim = load_trials(list(data_section["stim"]), base_dir=base_dir)
    resp = load_trials(list(data_section["resp"]), base_dir=base_dir)

    lambdas: List[float] = [float(v) for v in config_dict.get("lambdas", [1.0])]
    options = TRFOptions.from_mapping(_section(config_dict, "trf"))
    stats, lags_ms = crossvalidate(
        stim,
        resp,
        sample_rate=float(config_dict["sample_rate"]),
        direction=config_dict.get("direction", "forward"),
        t_min_ms=float(config_dict.get("t_min_ms", 0.0)),
        t_max_ms=float(config_dict.get("t_max_ms", 250.0)),
        lambdas=lambdas,
        options=options,
    )

    output_path = _resolve_output(config_dict, args.output)
    stats.to_frame().to_csv(output_path, index=False)
    print(f"Saved cross-validation results to {output_path}")
    best = stats.best_lambda()
    best_idx = int(np.flatnonzero(stats.lambdas == best)[0])
    mean_r = np.nanmean(stats.r[:, best_idx])
    print(f"Best lambda: {best:g} (mean r={mean_r:.4f}, lags {lags_ms[0]:g}..{lags_ms[-1]:g} ms)")


if __name__ == "__main__":
    main()

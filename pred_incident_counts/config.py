"""Shared configuration for the monthly incident forecasting pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


# Path to the repository root
_REPO_ROOT = Path(__file__).resolve().parents[1]
_CFG_FILE = _REPO_ROOT / "config.yaml"

DEFAULT_FORECASTING: Dict[str, Any] = {
    "seasonal_period": 12,
    "seasonal": True,
    "horizon": 12,
    "max_p": 5,
    "max_q": 5,
    "max_P": 2,
    "max_Q": 2,
    "max_order": 5,
    "max_d": 2,
    "max_D": 1,
    "max_models": 94,
    "alpha": 0.05,
    "seasonal_threshold": 0.64,
    "levels": [80, 95],
    "max_iter": 200,
    "tol": 1e-9,
    "n_jobs": 1,
    "backend": "loky",
    "date_col": "month",
    "value_col": "count",
}

# Keys of ``DEFAULT_FORECASTING`` forwarded to :func:`search_models`.
SEARCH_KEYS = (
    "max_p",
    "max_q",
    "max_P",
    "max_Q",
    "max_order",
    "seasonal",
    "max_d",
    "max_D",
    "alpha",
    "seasonal_threshold",
    "max_models",
    "n_jobs",
    "backend",
    "max_iter",
    "tol",
)


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Return the YAML configuration at ``path`` (repository default if omitted).

    A missing file yields an empty configuration so that defaults apply.
    """
    cfg_path = Path(path) if path is not None else _CFG_FILE
    try:
        with open(cfg_path, "r", encoding="utf-8") as fh:
            cfg = yaml.safe_load(fh) or {}
    except FileNotFoundError:
        if path is not None:
            raise
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError(f"{cfg_path} must contain a mapping")
    return cfg


def forecasting_params(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge the ``forecasting`` section of ``cfg`` over the defaults."""
    section = dict((cfg or {}).get("forecasting") or {})
    unknown = sorted(set(section) - set(DEFAULT_FORECASTING))
    if unknown:
        raise ValueError(f"unknown forecasting option(s): {', '.join(unknown)}")
    params = dict(DEFAULT_FORECASTING)
    params.update(section)
    params["levels"] = [int(level) for level in params["levels"]]
    return params


__all__ = [
    "DEFAULT_FORECASTING",
    "SEARCH_KEYS",
    "load_config",
    "forecasting_params",
]

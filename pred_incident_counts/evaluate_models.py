"""Rolling-origin evaluation of the forecasting pipeline."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .pipeline import TimeSeriesPipeline
from .preprocess_timeseries import validate_series

logger = logging.getLogger(__name__)


def safe_mape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Return MAPE ignoring zero ``y_true`` values."""
    mask = y_true != 0
    if mask.sum() == 0:
        return np.nan
    return np.mean(np.abs((y_pred[mask] - y_true[mask]) / y_true[mask])) * 100


# ---------------------------------------------------------------------------
# Metric helper
# ---------------------------------------------------------------------------


def _compute_metrics(true: np.ndarray, pred: List[float]) -> Dict[str, float]:
    """Return MAE, RMSE and MAPE between ``true`` and ``pred``."""
    true_a = np.asarray(true, dtype=float)
    pred_a = np.asarray(pred, dtype=float)
    mae = mean_absolute_error(true_a, pred_a)
    rmse = mean_squared_error(true_a, pred_a) ** 0.5
    mape = safe_mape(true_a, pred_a)
    return {"MAE": mae, "RMSE": rmse, "MAPE": mape}


# ---------------------------------------------------------------------------
# Rolling forecast
# ---------------------------------------------------------------------------


def rolling_origin_evaluation(
    series: pd.Series,
    test_size: int,
    *,
    config: Optional[Dict[str, Any]] = None,
    **overrides: Any,
) -> Tuple[pd.DataFrame, Dict[str, float]]:
    """Refit on an expanding window and forecast one month ahead each time.

    Returns the per-step predictions and a metrics dict with MAE, RMSE,
    MAPE and the empirical coverage of the 95% interval.
    """
    series = validate_series(series)
    if not 0 < test_size < len(series):
        raise ValueError(f"test_size must lie in [1, {len(series) - 1}], got {test_size}")

    pipeline = TimeSeriesPipeline(config, **overrides)
    if 95 not in pipeline.params["levels"]:
        pipeline.params["levels"] = [*pipeline.params["levels"], 95]
    train_end = len(series) - test_size
    rows = []
    for t in range(train_end, len(series)):
        history = series.iloc[:t]
        result = pipeline.run(history, horizon=1)
        fc = result.forecast
        rows.append(
            {
                "period": series.index[t],
                "model": result.model.label(),
                "forecast": float(fc.mean[0]),
                "lower_95": float(fc.lower[95][0]),
                "upper_95": float(fc.upper[95][0]),
                "actual": float(series.iloc[t]),
            }
        )
        logger.debug("origin %s: %s", series.index[t - 1], rows[-1])

    preds = pd.DataFrame(rows).set_index("period")
    metrics = _compute_metrics(preds["actual"].to_numpy(), preds["forecast"].tolist())
    inside = (preds["actual"] >= preds["lower_95"]) & (preds["actual"] <= preds["upper_95"])
    metrics["coverage_95"] = float(inside.mean())
    return preds, metrics


__all__ = ["safe_mape", "rolling_origin_evaluation"]

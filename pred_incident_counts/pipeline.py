"""Single entry point from a monthly count series to forecasts.

Stages
------
1. validate the series (gap-free, finite, monthly periods);
2. choose the differencing orders and search ``(p, q, P, Q)`` by AICc;
3. keep the winning fit (estimated by :func:`fit_arima` during the search);
4. extrapolate ``horizon`` months with 80% and 95% prediction intervals.

The input is never modified: every stage works on copies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import pandas as pd

from .config import SEARCH_KEYS, forecasting_params
from .future_forecast import check_horizon, forecast_arima
from .preprocess_timeseries import to_monthly_series, validate_series
from .search_arima import SearchResult, search_models
from .structures import FittedModel, ForecastResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Everything the reporting layer needs from one run."""

    series: pd.Series
    model: FittedModel
    forecast: ForecastResult
    search: SearchResult

    def summary(self) -> Dict[str, Any]:
        return self.model.summary()


class TimeSeriesPipeline:
    """Order search, estimation and forecasting for one monthly series."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, **overrides: Any) -> None:
        cfg = dict(config or {})
        section = dict(cfg.get("forecasting") or {})
        section.update(overrides)
        cfg["forecasting"] = section
        self.params = forecasting_params(cfg)

    def run(
        self,
        values: Union[pd.Series, Iterable[float]],
        start: Optional[Tuple[int, int]] = None,
        *,
        horizon: Optional[int] = None,
    ) -> PipelineResult:
        if isinstance(values, pd.Series):
            series = validate_series(values)
        else:
            series = to_monthly_series(values, start)
        horizon = check_horizon(self.params["horizon"] if horizon is None else horizon)
        s = int(self.params["seasonal_period"])

        logger.info("Searching seasonal ARIMA orders for %d observations (s=%d)", len(series), s)
        search = search_models(series, s, **{k: self.params[k] for k in SEARCH_KEYS})
        model = search.model
        forecast = forecast_arima(model, horizon, levels=self.params["levels"])
        logger.info(
            "%s: sigma2=%.4g, drift=%.4g, AICc=%.3f",
            model.label(),
            model.sigma2,
            model.drift,
            model.aicc,
        )
        return PipelineResult(series=series, model=model, forecast=forecast, search=search)


def forecast_monthly_counts(
    values: Union[pd.Series, Iterable[float]],
    start: Optional[Tuple[int, int]] = None,
    *,
    seasonal_period: int = 12,
    horizon: int = 12,
    config: Optional[Dict[str, Any]] = None,
) -> PipelineResult:
    """Convenience wrapper around :class:`TimeSeriesPipeline`."""
    pipeline = TimeSeriesPipeline(config, seasonal_period=seasonal_period)
    return pipeline.run(values, start, horizon=horizon)


__all__ = ["PipelineResult", "TimeSeriesPipeline", "forecast_monthly_counts"]

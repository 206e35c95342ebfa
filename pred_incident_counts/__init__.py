"""Seasonal ARIMA forecasting of monthly incident counts."""

from .exceptions import (
    ForecastingError,
    InsufficientDataError,
    InvalidOrderError,
    InvalidHorizonError,
    NoConvergingModelError,
    EstimationError,
    EstimationDivergedError,
    SingularCovarianceError,
)
from .structures import Order, FittedModel, ForecastResult
from .preprocess_timeseries import (
    to_monthly_series,
    validate_series,
    difference,
    integrate,
    is_stationary,
    seasonal_strength,
    estimate_seasonal_differences,
    estimate_differences,
)
from .estimate_arima import fit_arima
from .search_arima import SearchResult, search_models, search_order
from .future_forecast import forecast_arima, psi_weights
from .pipeline import PipelineResult, TimeSeriesPipeline, forecast_monthly_counts
from .evaluate_models import rolling_origin_evaluation

__all__ = [
    "ForecastingError",
    "InsufficientDataError",
    "InvalidOrderError",
    "InvalidHorizonError",
    "NoConvergingModelError",
    "EstimationError",
    "EstimationDivergedError",
    "SingularCovarianceError",
    "Order",
    "FittedModel",
    "ForecastResult",
    "to_monthly_series",
    "validate_series",
    "difference",
    "integrate",
    "is_stationary",
    "seasonal_strength",
    "estimate_seasonal_differences",
    "estimate_differences",
    "fit_arima",
    "SearchResult",
    "search_models",
    "search_order",
    "forecast_arima",
    "psi_weights",
    "PipelineResult",
    "TimeSeriesPipeline",
    "forecast_monthly_counts",
    "rolling_origin_evaluation",
]

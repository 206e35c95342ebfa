"""Error taxonomy for the seasonal ARIMA forecasting pipeline."""

from __future__ import annotations


class ForecastingError(Exception):
    """Base class for every error raised by :mod:`pred_incident_counts`."""


class InsufficientDataError(ForecastingError, ValueError):
    """The series is too short for the requested differencing or season."""


class InvalidOrderError(ForecastingError, ValueError):
    """A model order is malformed or over-differenced (``d + D > 2``)."""


class InvalidHorizonError(ForecastingError, ValueError):
    """The forecast horizon is not a positive integer."""


class NoConvergingModelError(ForecastingError, RuntimeError):
    """Every candidate order of the search failed to fit."""


class EstimationError(ForecastingError, RuntimeError):
    """A single candidate fit failed.

    The order search recovers from these by skipping the candidate.
    """


class EstimationDivergedError(EstimationError):
    """The likelihood optimiser did not converge within its iteration cap."""


class SingularCovarianceError(EstimationError):
    """The information matrix at the optimum cannot be inverted."""


__all__ = [
    "ForecastingError",
    "InsufficientDataError",
    "InvalidOrderError",
    "InvalidHorizonError",
    "NoConvergingModelError",
    "EstimationError",
    "EstimationDivergedError",
    "SingularCovarianceError",
]

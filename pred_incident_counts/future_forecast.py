"""Forecast monthly counts with prediction intervals from a fitted model."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm

from .estimate_arima import expand_polynomials, state_space
from .exceptions import InvalidHorizonError
from .preprocess_timeseries import differencing_polynomial, integrate
from .structures import FittedModel, ForecastResult

logger = logging.getLogger(__name__)


def check_horizon(horizon) -> int:
    if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon < 1:
        raise InvalidHorizonError(f"horizon must be a positive integer, got {horizon!r}")
    return int(horizon)


def psi_weights(model: FittedModel, horizon: int) -> np.ndarray:
    """First ``horizon`` weights of the model's MA(infinity) representation.

    The differencing operator is folded into the autoregressive side, so
    the weights describe the original (integrated) scale.
    """
    horizon = check_horizon(horizon)
    order = model.order
    phi, theta = expand_polynomials(model.ar, model.ma, model.seasonal_ar, model.seasonal_ma, order.s)
    delta = differencing_polynomial(order.d, order.D, order.s)
    phi_star = -np.convolve(np.r_[1.0, -phi], delta)[1:]

    psi = np.zeros(horizon)
    psi[0] = 1.0
    for j in range(1, horizon):
        value = theta[j - 1] if j <= theta.size else 0.0
        m = min(j, phi_star.size)
        if m:
            value += np.dot(phi_star[:m], psi[j - 1 :: -1][:m])
        psi[j] = value
    return psi


def forecast_arima(
    model: FittedModel,
    horizon: int,
    *,
    levels: Sequence[int] = (80, 95),
) -> ForecastResult:
    """Return ``horizon`` point forecasts with normal prediction intervals.

    The ARMA part is extrapolated from the last Kalman state, the mean
    regressor is added back, and the differencing is undone against the
    observed history.  Interval half-widths are ``z * sqrt(sigma2 *
    sum(psi_j^2))`` and never shrink as the horizon grows.
    """
    horizon = check_horizon(horizon)
    levels = tuple(int(level) for level in levels)
    for level in levels:
        if not 0 < level < 100:
            raise ValueError(f"confidence level must lie in (0, 100), got {level}")

    order = model.order
    phi, theta = expand_polynomials(model.ar, model.ma, model.seasonal_ar, model.seasonal_ma, order.s)
    T, _ = state_space(phi, theta)
    state = np.array(model.final_state, dtype=float)

    w_hat = np.empty(horizon)
    for h in range(horizon):
        w_hat[h] = state[0] + model.intercept
        state = T @ state
    mean = integrate(w_hat, model.history, order.d, order.D, order.s)

    psi = psi_weights(model, horizon)
    std_error = np.sqrt(model.sigma2 * np.cumsum(psi**2))

    lower, upper = {}, {}
    for level in levels:
        z = norm.ppf(0.5 + level / 200.0)
        lower[level] = mean - z * std_error
        upper[level] = mean + z * std_error

    index = None
    if model.end_period is not None:
        index = pd.period_range(start=model.end_period + 1, periods=horizon, freq=model.end_period.freq)

    logger.debug("%s: forecast %d steps, final 95%% half-width=%.3f", model.label(), horizon, 1.96 * std_error[-1])
    return ForecastResult(
        mean=mean,
        std_error=std_error,
        lower=lower,
        upper=upper,
        index=index,
        levels=levels,
    )


__all__ = ["check_horizon", "psi_weights", "forecast_arima"]

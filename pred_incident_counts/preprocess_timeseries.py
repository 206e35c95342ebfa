"""Validate monthly count series, difference them and assess stationarity."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tsa.stattools import adfuller

from .exceptions import InsufficientDataError, InvalidOrderError

logger = logging.getLogger(__name__)

ArrayLike = Union[pd.Series, np.ndarray, Iterable[float]]

# Fewest observations a differenced series may keep.
MIN_DIFFERENCED_OBS = 3
# Below this many points the unit-root regression is not identified.
MIN_ADF_OBS = 8


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def to_monthly_series(
    values: Iterable[float],
    start: Optional[Tuple[int, int]] = None,
    *,
    name: str = "count",
) -> pd.Series:
    """Return ``values`` as a float Series indexed by monthly periods.

    ``start`` is a ``(year, month)`` tuple.  Without it the index is a plain
    integer range.
    """
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1:
        raise ValueError("a time series must be one-dimensional")
    if arr.size == 0:
        raise ValueError("a time series needs at least one observation")
    if not np.isfinite(arr).all():
        raise ValueError("time series values must be finite (no gaps or NaN)")

    if start is None:
        index = pd.RangeIndex(arr.size)
    else:
        year, month = start
        first = pd.Period(year=int(year), month=int(month), freq="M")
        index = pd.period_range(start=first, periods=arr.size, freq="M")
    return pd.Series(arr, index=index, name=name)


def validate_series(series: ArrayLike) -> pd.Series:
    """Return a validated float copy of ``series``.

    A ``DatetimeIndex`` is converted to monthly periods.  Missing periods
    or missing values are rejected; filling them is the aggregation step's
    responsibility.
    """
    if not isinstance(series, pd.Series):
        return to_monthly_series(series)

    s = series.astype(float)
    if s.isna().any() or not np.isfinite(s.to_numpy()).all():
        raise ValueError("time series values must be finite (no gaps or NaN)")
    if s.empty:
        raise ValueError("a time series needs at least one observation")

    if isinstance(s.index, pd.DatetimeIndex):
        s.index = s.index.to_period("M")
    if isinstance(s.index, pd.PeriodIndex):
        if not s.index.is_monotonic_increasing or s.index.has_duplicates:
            raise ValueError("period index must be strictly increasing")
        expected = pd.period_range(start=s.index[0], periods=len(s), freq=s.index.freq)
        if not s.index.equals(expected):
            raise ValueError("time series has missing periods")
    return s.copy()


def _values(series: ArrayLike) -> np.ndarray:
    return np.asarray(series, dtype=float).ravel()


# ---------------------------------------------------------------------------
# Differencing
# ---------------------------------------------------------------------------


def _check_differencing(d: int, D: int, s: int) -> None:
    if d < 0 or D < 0:
        raise InvalidOrderError("differencing orders must be non-negative")
    if d + D > 2:
        raise InvalidOrderError(f"total differencing d + D = {d + D} exceeds 2")
    if D > 0 and s < 2:
        raise InvalidOrderError("seasonal differencing requires a period >= 2")


def differencing_polynomial(d: int, D: int, s: int) -> np.ndarray:
    """Coefficients of ``(1 - B)^d (1 - B^s)^D`` in increasing powers of B."""
    poly = np.array([1.0])
    for _ in range(d):
        poly = np.convolve(poly, [1.0, -1.0])
    seasonal = np.zeros(s + 1)
    seasonal[0], seasonal[-1] = 1.0, -1.0
    for _ in range(D):
        poly = np.convolve(poly, seasonal)
    return poly


def difference(series: ArrayLike, d: int = 0, D: int = 0, s: int = 12) -> Union[pd.Series, np.ndarray]:
    """Apply ``d`` lag-1 then ``D`` lag-``s`` differences.

    The result is ``d + D*s`` observations shorter than the input and keeps
    the input's type (a Series keeps the trailing part of its index).

    Raises
    ------
    InsufficientDataError
        If seasonal differencing is requested on fewer than ``2*s``
        observations, or fewer than ``MIN_DIFFERENCED_OBS`` would remain.
    """
    _check_differencing(d, D, s)
    x = _values(series)
    n = x.size
    if D > 0 and n < 2 * s:
        raise InsufficientDataError(
            f"seasonal differencing with period {s} needs at least {2 * s} observations, got {n}"
        )
    lost = d + D * s
    if n - lost < MIN_DIFFERENCED_OBS:
        raise InsufficientDataError(
            f"differencing (d={d}, D={D}, s={s}) leaves {n - lost} of {n} observations"
        )

    for _ in range(d):
        x = x[1:] - x[:-1]
    for _ in range(D):
        x = x[s:] - x[:-s]

    if isinstance(series, pd.Series):
        return pd.Series(x, index=series.index[lost:], name=series.name)
    return x


def integrate(
    differenced: ArrayLike,
    history: ArrayLike,
    d: int = 0,
    D: int = 0,
    s: int = 12,
) -> np.ndarray:
    """Undo :func:`difference` for values that follow ``history``.

    ``history`` holds the original observations preceding the first
    differenced value (at least ``d + D*s`` of them).  Returns the
    reconstructed original-scale values aligned with ``differenced``.
    """
    _check_differencing(d, D, s)
    w = _values(differenced)
    poly = differencing_polynomial(d, D, s)
    k = poly.size - 1
    if k == 0:
        return w.copy()

    hist = _values(history)
    if hist.size < k:
        raise InsufficientDataError(
            f"re-integration needs the last {k} original observations, got {hist.size}"
        )
    out = np.concatenate([hist[-k:], np.empty(w.size)])
    lags = poly[1:]
    for i, value in enumerate(w):
        t = k + i
        out[t] = value - np.dot(lags, out[t - 1 :: -1][:k])
    return out[k:]


# ---------------------------------------------------------------------------
# Stationarity diagnostics
# ---------------------------------------------------------------------------


def _is_constant(x: np.ndarray) -> bool:
    return x.size == 0 or np.ptp(x) <= 1e-12 * max(1.0, float(np.abs(x).max()))


def is_stationary(series: ArrayLike, alpha: float = 0.05) -> bool:
    """Augmented Dickey-Fuller test of a unit root at significance ``alpha``.

    Constant or very short series are reported as stationary: there is
    nothing left for further differencing to remove.
    """
    x = _values(series)
    if _is_constant(x) or x.size < MIN_ADF_OBS:
        return True
    stat, pvalue, *_ = adfuller(x, regression="c", autolag="AIC")
    logger.debug("ADF statistic=%.3f p-value=%.4f (n=%d)", stat, pvalue, x.size)
    return bool(pvalue < alpha)


def seasonal_strength(series: ArrayLike, s: int = 12) -> float:
    """Correlation between observations one season apart, in ``[0, 1]``.

    A linear trend is removed first so that growth alone does not look
    seasonal.
    """
    x = _values(series)
    if s < 2 or x.size < 2 * s or _is_constant(x):
        return 0.0
    t = np.arange(x.size, dtype=float)
    slope, intercept = np.polyfit(t, x, 1)
    detrended = pd.Series(x - (slope * t + intercept))
    corr = detrended.autocorr(lag=s)
    if not np.isfinite(corr):
        return 0.0
    return float(max(0.0, corr))


def estimate_seasonal_differences(
    series: ArrayLike,
    s: int = 12,
    *,
    threshold: float = 0.64,
    max_D: int = 1,
) -> int:
    """Return ``D`` (0 or 1) from the seasonal-strength heuristic."""
    if max_D < 1:
        return 0
    strength = seasonal_strength(series, s)
    D = int(strength > threshold)
    logger.debug("seasonal strength=%.3f -> D=%d", strength, D)
    return D


def estimate_differences(
    series: ArrayLike,
    *,
    max_d: int = 2,
    alpha: float = 0.05,
) -> int:
    """Return ``d`` by differencing until the ADF test rejects a unit root."""
    x = _values(series)
    d = 0
    while d < max_d and not is_stationary(x, alpha=alpha):
        if x.size - 1 < MIN_DIFFERENCED_OBS:
            break
        x = x[1:] - x[:-1]
        d += 1
    logger.debug("stationarity tests -> d=%d", d)
    return d


__all__ = [
    "MIN_DIFFERENCED_OBS",
    "to_monthly_series",
    "validate_series",
    "differencing_polynomial",
    "difference",
    "integrate",
    "is_stationary",
    "seasonal_strength",
    "estimate_seasonal_differences",
    "estimate_differences",
]

"""Immutable containers shared by the estimator, the search and the forecaster."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import InvalidOrderError


# ---------------------------------------------------------------------------
# Model order
# ---------------------------------------------------------------------------


class Order(NamedTuple):
    """Seasonal ARIMA order ``(p, d, q)(P, D, Q)[s]``.

    Differencing is applied regular-first: ``d`` lag-1 rounds, then ``D``
    lag-``s`` rounds.
    """

    p: int
    d: int
    q: int
    P: int = 0
    D: int = 0
    Q: int = 0
    s: int = 12

    @property
    def nonseasonal(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal(self) -> Tuple[int, int, int, int]:
        return (self.P, self.D, self.Q, self.s)

    @property
    def n_arma(self) -> int:
        """Number of autoregressive and moving-average coefficients."""
        return self.p + self.q + self.P + self.Q

    @property
    def n_diff(self) -> int:
        """Number of observations consumed by differencing."""
        return self.d + self.D * self.s

    def validate(self) -> "Order":
        for name, value in zip(self._fields, self):
            if int(value) != value or value < 0:
                raise InvalidOrderError(f"{name} must be a non-negative integer, got {value!r}")
        if self.s < 1:
            raise InvalidOrderError(f"seasonal period must be >= 1, got {self.s}")
        if self.s < 2 and (self.P or self.D or self.Q):
            raise InvalidOrderError("seasonal terms require a seasonal period >= 2")
        if self.d + self.D > 2:
            raise InvalidOrderError(
                f"total differencing d + D = {self.d + self.D} exceeds 2"
            )
        return self

    def __str__(self) -> str:
        text = f"ARIMA({self.p},{self.d},{self.q})"
        if self.P or self.D or self.Q:
            text += f"({self.P},{self.D},{self.Q})[{self.s}]"
        return text


# ---------------------------------------------------------------------------
# Fitted model
# ---------------------------------------------------------------------------


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def _factor_roots(coefs: np.ndarray, sign: float) -> np.ndarray:
    # polynomial 1 + sign * sum(c_i z^i); np.roots wants the highest power first
    if coefs.size == 0:
        return np.empty(0, dtype=complex)
    poly = np.r_[1.0, sign * coefs]
    return np.roots(poly[::-1])


@dataclass(frozen=True, eq=False)
class FittedModel:
    """A converged seasonal ARIMA fit.

    Coefficient conventions follow Box-Jenkins:
    ``phi(B) Phi(B^s) (w_t - mean) = theta(B) Theta(B^s) e_t`` with
    ``phi(B) = 1 - sum(ar_i B^i)`` and ``theta(B) = 1 + sum(ma_i B^i)``,
    where ``w`` is the differenced series.
    """

    order: Order
    ar: np.ndarray
    ma: np.ndarray
    seasonal_ar: np.ndarray
    seasonal_ma: np.ndarray
    intercept: float
    include_mean: bool
    sigma2: float
    loglik: float
    aic: float
    aicc: float
    bic: float
    nobs: int
    std_errors: Dict[str, float]
    residuals: np.ndarray
    prediction_variance: np.ndarray
    history: np.ndarray
    final_state: np.ndarray
    end_period: Optional[pd.Period] = None
    n_iter: int = 0

    def __post_init__(self) -> None:
        for name in (
            "ar",
            "ma",
            "seasonal_ar",
            "seasonal_ma",
            "residuals",
            "prediction_variance",
            "history",
            "final_state",
        ):
            object.__setattr__(self, name, _readonly(getattr(self, name)))
        object.__setattr__(self, "std_errors", dict(self.std_errors))

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    @property
    def n_params(self) -> int:
        """Parameters counted by the information criteria (sigma2 included)."""
        return self.order.n_arma + int(self.include_mean) + 1

    @property
    def drift(self) -> float:
        """Per-step change carried by the mean of a differenced series."""
        if self.include_mean and self.order.d + self.order.D > 0:
            return float(self.intercept)
        return 0.0

    @property
    def coefficients(self) -> Dict[str, float]:
        coefs: Dict[str, float] = {}
        for prefix, values in (
            ("ar", self.ar),
            ("ma", self.ma),
            ("sar", self.seasonal_ar),
            ("sma", self.seasonal_ma),
        ):
            for i, value in enumerate(values, start=1):
                coefs[f"{prefix}{i}"] = float(value)
        if self.include_mean:
            key = "drift" if self.order.d + self.order.D > 0 else "intercept"
            coefs[key] = float(self.intercept)
        return coefs

    def predictive_loglik(self, last: int) -> float:
        """Gaussian log-likelihood of the final ``last`` one-step forecast errors.

        A one-step error is the same on the differenced and on the original
        scale, so fits with different differencing orders can be compared
        over a common stretch of observations.
        """
        if not 0 < last <= self.nobs:
            raise ValueError(f"last must lie in [1, {self.nobs}], got {last}")
        e = self.residuals[-last:]
        v = self.prediction_variance[-last:]
        return float(-0.5 * np.sum(np.log(2.0 * np.pi * v) + e**2 / self.sigma2))

    def roots(self) -> Dict[str, np.ndarray]:
        """Roots of each lag polynomial factor.

        Seasonal factors are polynomials in ``B^s``; their roots lie outside
        the unit circle exactly when those of the expanded polynomial do.
        """
        return {
            "ar": _factor_roots(self.ar, -1.0),
            "ma": _factor_roots(self.ma, 1.0),
            "seasonal_ar": _factor_roots(self.seasonal_ar, -1.0),
            "seasonal_ma": _factor_roots(self.seasonal_ma, 1.0),
        }

    def summary(self) -> Dict[str, object]:
        """Read-only diagnostics for the textual report."""
        return {
            "model": self.label(),
            "order": list(self.order.nonseasonal),
            "seasonal_order": list(self.order.seasonal),
            "include_mean": self.include_mean,
            "coefficients": self.coefficients,
            "std_errors": dict(self.std_errors),
            "intercept": float(self.intercept) if self.include_mean else 0.0,
            "drift": self.drift,
            "sigma2": float(self.sigma2),
            "loglik": float(self.loglik),
            "aic": float(self.aic),
            "aicc": float(self.aicc),
            "bic": float(self.bic),
            "nobs": int(self.nobs),
        }

    def summary_frame(self) -> pd.DataFrame:
        coefs = self.coefficients
        return pd.DataFrame(
            {
                "coef": pd.Series(coefs, dtype=float),
                "std_err": pd.Series(
                    {k: self.std_errors.get(k, np.nan) for k in coefs}, dtype=float
                ),
            }
        )

    def label(self) -> str:
        text = str(self.order)
        if self.include_mean:
            text += " with drift" if self.order.d + self.order.D > 0 else " with mean"
        return text

    def __repr__(self) -> str:
        return f"<FittedModel {self.label()} AICc={self.aicc:.2f}>"


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """Point forecasts with symmetric normal prediction intervals."""

    mean: np.ndarray
    std_error: np.ndarray
    lower: Dict[int, np.ndarray]
    upper: Dict[int, np.ndarray]
    index: Optional[pd.PeriodIndex] = None
    levels: Tuple[int, ...] = field(default=(80, 95))

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", _readonly(self.mean))
        object.__setattr__(self, "std_error", _readonly(self.std_error))
        object.__setattr__(self, "lower", {k: _readonly(v) for k, v in self.lower.items()})
        object.__setattr__(self, "upper", {k: _readonly(v) for k, v in self.upper.items()})

    @property
    def horizon(self) -> int:
        return int(self.mean.size)

    def width(self, level: int = 95) -> np.ndarray:
        return self.upper[level] - self.lower[level]

    def to_frame(self) -> pd.DataFrame:
        data = {"forecast": self.mean}
        for level in self.levels:
            data[f"lower_{level}"] = self.lower[level]
            data[f"upper_{level}"] = self.upper[level]
        index = self.index if self.index is not None else pd.RangeIndex(1, self.horizon + 1, name="step")
        return pd.DataFrame(data, index=index)


__all__ = ["Order", "FittedModel", "ForecastResult"]

"""Maximum-likelihood estimation of seasonal ARIMA coefficients.

The differenced series is treated as a zero-mean ARMA process once the
mean regressor is removed.  Its exact Gaussian likelihood is evaluated with
a Kalman filter on the Harvey state-space form and maximised with
L-BFGS-B.  The optimiser works on unconstrained values that statsmodels
maps to partial autocorrelations, so every candidate it visits is
stationary (AR) and invertible (MA).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.linalg import solve_discrete_lyapunov
from scipy.optimize import minimize
from statsmodels.tools.numdiff import approx_hess3
from statsmodels.tsa.statespace.tools import constrain_stationary_univariate

from .exceptions import (
    EstimationDivergedError,
    InsufficientDataError,
    InvalidOrderError,
    SingularCovarianceError,
)
from .preprocess_timeseries import difference
from .structures import FittedModel, Order

logger = logging.getLogger(__name__)

# Free values are clipped here: partial autocorrelations stay within 1e-8 of one.
_MAX_FREE = 1e4
# Factors with a partial autocorrelation this close to one sit on the boundary.
_BOUNDARY_TOL = 1e-3
# Objective value returned where the likelihood cannot be evaluated.
_PENALTY = 1e10
# Innovation variance floor, relative to the mean square of the series.
_SIGMA2_RTOL = 1e-10
# Smallest accepted eigenvalue of the information matrix, relative to the largest.
_SINGULAR_RTOL = 1e-8
_STEADY_STATE_TOL = 1e-9


# ---------------------------------------------------------------------------
# Parameter transforms
# ---------------------------------------------------------------------------


def _blocks(values: np.ndarray, order: Order) -> List[np.ndarray]:
    """Split a parameter vector into its AR, MA, seasonal AR and seasonal MA parts."""
    edges = np.cumsum([0, order.p, order.q, order.P, order.Q])
    return [values[edges[i] : edges[i + 1]] for i in range(4)]


def _constrain(free: np.ndarray) -> np.ndarray:
    if free.size == 0:
        return np.empty(0)
    return constrain_stationary_univariate(np.clip(free, -_MAX_FREE, _MAX_FREE))


def _unpack(x: np.ndarray, order: Order) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    # constrain_stationary_univariate returns c with 1 - sum(c_i B^i) stationary
    ar, ma, sar, sma = _blocks(np.asarray(x, dtype=float), order)
    return _constrain(ar), -_constrain(ma), _constrain(sar), -_constrain(sma)


def _coefficient_names(order: Order) -> List[str]:
    names: List[str] = []
    for prefix, count in (("ar", order.p), ("ma", order.q), ("sar", order.P), ("sma", order.Q)):
        names.extend(f"{prefix}{i}" for i in range(1, count + 1))
    return names


# ---------------------------------------------------------------------------
# Lag polynomials and state space
# ---------------------------------------------------------------------------


def _seasonal_poly(coefs: np.ndarray, s: int) -> np.ndarray:
    poly = np.zeros(coefs.size * s + 1)
    poly[0] = 1.0
    poly[s::s] = coefs
    return poly


def expand_polynomials(
    ar: np.ndarray,
    ma: np.ndarray,
    seasonal_ar: np.ndarray,
    seasonal_ma: np.ndarray,
    s: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(phi, theta)`` of the multiplicative model as plain ARMA lags.

    ``phi`` follows ``1 - sum(phi_i B^i)`` and ``theta`` ``1 + sum(theta_i B^i)``.
    """
    ar_poly = np.convolve(np.r_[1.0, -np.asarray(ar, dtype=float)], _seasonal_poly(-np.asarray(seasonal_ar, dtype=float), s))
    ma_poly = np.convolve(np.r_[1.0, np.asarray(ma, dtype=float)], _seasonal_poly(np.asarray(seasonal_ma, dtype=float), s))
    return -ar_poly[1:], ma_poly[1:]


def state_space(phi: np.ndarray, theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Transition matrix and innovation loading of the Harvey representation."""
    r = max(phi.size, theta.size + 1, 1)
    T = np.zeros((r, r))
    T[: phi.size, 0] = phi
    T[:-1, 1:] = np.eye(r - 1)
    R = np.zeros(r)
    R[0] = 1.0
    R[1 : theta.size + 1] = theta
    return T, R


def _innovations(
    w: np.ndarray, phi: np.ndarray, theta: np.ndarray
) -> Tuple[float, float, np.ndarray, np.ndarray, np.ndarray]:
    """Kalman filter of a zero-mean ARMA process with unit innovation variance.

    Returns the weighted sum of squared innovations, the sum of the log
    prediction variances, the innovations scaled by those variances, the
    variances themselves and the predicted state after the last observation.
    """
    T, R = state_space(phi, theta)
    RR = np.outer(R, R)
    P = solve_discrete_lyapunov(T, RR)
    if not np.all(np.isfinite(P)) or P[0, 0] <= 0.0:
        raise np.linalg.LinAlgError("stationary state covariance is not positive")

    a = np.zeros(T.shape[0])
    resid = np.empty(w.size)
    variances = np.empty(w.size)
    ssq = 0.0
    sumlog = 0.0
    steady = False
    F = 1.0
    K = np.zeros_like(a)
    for t, obs in enumerate(w):
        if not steady:
            F = P[0, 0]
            if F <= 0.0:
                raise np.linalg.LinAlgError("non-positive prediction variance")
            K = T @ P[:, 0] / F
        v = obs - a[0]
        resid[t] = v / np.sqrt(F)
        variances[t] = F
        ssq += v * v / F
        sumlog += np.log(F)
        a = T @ a + K * v
        if not steady:
            P_next = T @ P @ T.T - np.outer(K, K) * F + RR
            steady = np.allclose(P_next, P, rtol=0.0, atol=_STEADY_STATE_TOL)
            P = P_next
    return ssq, sumlog, resid, variances, a


def _loglik(
    z: np.ndarray, phi: np.ndarray, theta: np.ndarray, floor: float
) -> Tuple[float, float, np.ndarray, np.ndarray, np.ndarray]:
    ssq, sumlog, resid, variances, state = _innovations(z, phi, theta)
    n = z.size
    sigma2 = max(ssq / n, floor)
    loglik = -0.5 * (n * np.log(2.0 * np.pi * sigma2) + sumlog + ssq / sigma2)
    return loglik, sigma2, resid, variances, state


def _negloglik(x: np.ndarray, z: np.ndarray, order: Order, floor: float) -> float:
    ar, ma, sar, sma = _unpack(x, order)
    phi, theta = expand_polynomials(ar, ma, sar, sma, order.s)
    try:
        loglik = _loglik(z, phi, theta, floor)[0]
    except np.linalg.LinAlgError:
        return _PENALTY
    if not np.isfinite(loglik):
        return _PENALTY
    return -loglik


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def _min_root_modulus(coefs: np.ndarray, sign: float) -> float:
    if coefs.size == 0:
        return np.inf
    poly = np.r_[1.0, sign * coefs]
    roots = np.roots(poly[::-1])
    return float(np.abs(roots).min()) if roots.size else np.inf


def _check_roots(order: Order, ar, ma, sar, sma) -> None:
    for label, coefs in (("AR", ar), ("seasonal AR", sar)):
        if _min_root_modulus(coefs, -1.0) <= 1.0:
            raise EstimationDivergedError(f"{order}: {label} polynomial is not stationary")
    for label, coefs in (("MA", ma), ("seasonal MA", sma)):
        if _min_root_modulus(coefs, 1.0) < 1.0 - 1e-6:
            raise EstimationDivergedError(f"{order}: {label} polynomial is not invertible")


def _negloglik_coefs(
    values: np.ndarray, free: np.ndarray, coefs: np.ndarray, z: np.ndarray, order: Order, floor: float
) -> float:
    """Objective in coefficient space, with the coefficients outside ``free`` held fixed."""
    params = coefs.copy()
    params[free] = values
    ar, ma, sar, sma = _blocks(params, order)
    phi, theta = expand_polynomials(ar, ma, sar, sma, order.s)
    try:
        loglik = _loglik(z, phi, theta, floor)[0]
    except np.linalg.LinAlgError:
        return np.inf
    return -loglik


def _boundary_mask(x: np.ndarray, order: Order) -> np.ndarray:
    """True for coefficients of a factor that reached the stationarity or invertibility boundary."""
    pacf = np.abs(np.clip(x, -_MAX_FREE, _MAX_FREE))
    pacf = pacf / np.sqrt(1.0 + pacf**2)
    return np.concatenate(
        [np.full(b.size, b.size > 0 and b.max() > 1.0 - _BOUNDARY_TOL) for b in _blocks(pacf, order)]
    ).astype(bool)


def _standard_errors(
    x: np.ndarray, coefs: np.ndarray, z: np.ndarray, order: Order, floor: float
) -> Dict[str, float]:
    """Standard errors from the observed information matrix of the coefficients.

    The matrix is taken with respect to the coefficients themselves.  A
    factor on the boundary is held fixed and gets no standard error.
    """
    names = _coefficient_names(order)
    if not names:
        return {}
    free = ~_boundary_mask(x, order)
    se = np.full(coefs.size, np.nan)
    if not free.all():
        logger.debug("%s: boundary coefficients held fixed in the information matrix", order)
    if free.any():
        hess = np.atleast_2d(approx_hess3(coefs[free], _negloglik_coefs, args=(free, coefs, z, order, floor)))
        hess = 0.5 * (hess + hess.T)
        if not np.all(np.isfinite(hess)):
            raise SingularCovarianceError(f"{order}: information matrix is not finite")
        eig = np.linalg.eigvalsh(hess)
        if eig.min() <= _SINGULAR_RTOL * max(1.0, float(np.abs(eig).max())):
            raise SingularCovarianceError(
                f"{order}: information matrix is singular (smallest eigenvalue {eig.min():.3g})"
            )
        se[free] = np.sqrt(np.clip(np.diag(np.linalg.inv(hess)), 0.0, None))
    return dict(zip(names, se.tolist()))



# ---------------------------------------------------------------------------
# Core functionality
# ---------------------------------------------------------------------------


def fit_arima(
    series: Union[pd.Series, np.ndarray, Sequence[float]],
    order: Union[Order, Sequence[int]],
    *,
    include_mean: Optional[bool] = None,
    max_iter: int = 200,
    tol: float = 1e-9,
) -> FittedModel:
    """Estimate a seasonal ARIMA model of the given ``order``.

    Parameters
    ----------
    series : pd.Series or array-like
        Original (undifferenced) observations.  A monthly ``PeriodIndex``
        is remembered so that forecasts can be labelled.
    order : Order or tuple
        ``(p, d, q, P, D, Q, s)``.
    include_mean : bool, optional
        Include the mean of the differenced series as a fixed regressor.
        Defaults to ``True`` when ``d + D <= 1``; not allowed otherwise.
    max_iter : int
        Iteration cap of the L-BFGS-B optimiser.
    tol : float
        Relative tolerance on successive objective values.

    Raises
    ------
    InsufficientDataError
        Too few observations for the differencing or the parameter count.
    EstimationDivergedError
        The optimiser hit ``max_iter`` or the likelihood is not finite.
    SingularCovarianceError
        The information matrix of the coefficients inside the admissible
        region is not invertible.
    """
    order = Order(*order).validate()
    if isinstance(series, pd.Series):
        y = series.to_numpy(dtype=float)
        end_period = series.index[-1] if isinstance(series.index, pd.PeriodIndex) else None
    else:
        y = np.asarray(series, dtype=float).ravel()
        end_period = None
    if not np.isfinite(y).all():
        raise ValueError("time series values must be finite")

    allow_mean = order.d + order.D <= 1
    if include_mean is None:
        include_mean = allow_mean
    elif include_mean and not allow_mean:
        raise InvalidOrderError(f"{order}: a mean or drift term requires d + D <= 1")

    w = difference(y, order.d, order.D, order.s)
    n = w.size
    k = order.n_arma + int(include_mean) + 1
    if n - k - 1 <= 0:
        raise InsufficientDataError(
            f"{order} has {k} parameters but only {n} differenced observations"
        )

    mean = float(w.mean()) if include_mean else 0.0
    z = w - mean
    floor = _SIGMA2_RTOL * max(1.0, float(np.mean(w**2)))

    x = np.zeros(order.n_arma)
    n_iter = 0
    if x.size:
        res = minimize(
            _negloglik,
            x,
            args=(z, order, floor),
            method="L-BFGS-B",
            options={"maxiter": max_iter, "ftol": tol, "gtol": 1e-8},
        )
        if res.status == 1 or not np.isfinite(res.fun) or res.fun >= _PENALTY:
            raise EstimationDivergedError(
                f"{order}: optimiser did not converge after {res.nit} iterations ({res.message})"
            )
        if not res.success:
            logger.debug("%s: optimiser stopped early: %s", order, res.message)
        x = np.asarray(res.x, dtype=float)
        n_iter = int(res.nit)

    ar, ma, sar, sma = _unpack(x, order)
    _check_roots(order, ar, ma, sar, sma)
    phi, theta = expand_polynomials(ar, ma, sar, sma, order.s)
    try:
        loglik, sigma2, resid, variances, state = _loglik(z, phi, theta, floor)
    except np.linalg.LinAlgError as exc:
        raise EstimationDivergedError(f"{order}: likelihood evaluation failed ({exc})") from exc
    if not np.isfinite(loglik):
        raise EstimationDivergedError(f"{order}: log-likelihood is not finite")

    std_errors = _standard_errors(x, np.concatenate([ar, ma, sar, sma]), z, order, floor)

    aic = -2.0 * loglik + 2.0 * k
    aicc = aic + 2.0 * k * (k + 1) / (n - k - 1)
    bic = -2.0 * loglik + k * np.log(n)

    model = FittedModel(
        order=order,
        ar=ar,
        ma=ma,
        seasonal_ar=sar,
        seasonal_ma=sma,
        intercept=mean,
        include_mean=bool(include_mean),
        sigma2=float(sigma2),
        loglik=float(loglik),
        aic=float(aic),
        aicc=float(aicc),
        bic=float(bic),
        nobs=int(n),
        std_errors=std_errors,
        residuals=resid,
        prediction_variance=sigma2 * variances,
        history=y,
        final_state=state,
        end_period=end_period,
        n_iter=n_iter,
    )
    logger.debug("%s: loglik=%.3f AICc=%.3f (%d iterations)", model.label(), loglik, aicc, n_iter)
    return model


__all__ = [
    "expand_polynomials",
    "state_space",
    "fit_arima",
]

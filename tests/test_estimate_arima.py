import dataclasses
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from pred_incident_counts import estimate_arima as ea
from pred_incident_counts.exceptions import (
    EstimationDivergedError,
    InsufficientDataError,
    InvalidOrderError,
    SingularCovarianceError,
)
from pred_incident_counts.preprocess_timeseries import to_monthly_series
from pred_incident_counts.structures import Order


def simulate_arma(n, ar=0.0, ma=0.0, seed=0, burn=100):
    rng = np.random.default_rng(seed)
    e = rng.normal(size=n + burn)
    y = np.zeros(n + burn)
    for t in range(1, n + burn):
        y[t] = ar * y[t - 1] + e[t] + ma * e[t - 1]
    return y[burn:]


# ---------------------------------------------------------------------------
# Parameter transforms
# ---------------------------------------------------------------------------


def test_free_values_map_to_stationary_and_invertible_factors():
    x = np.random.default_rng(2).normal(scale=2.0, size=6)
    ar, ma, sar, sma = ea._unpack(x, Order(3, 0, 2, 1, 0, 0, 12))
    assert (ar.size, ma.size, sar.size, sma.size) == (3, 2, 1, 0)
    assert np.all(np.abs(np.roots(np.r_[1.0, -ar][::-1])) > 1.0)
    assert np.all(np.abs(np.roots(np.r_[1.0, ma][::-1])) > 1.0)
    assert abs(sar[0]) < 1.0


def test_single_coefficient_follows_partial_autocorrelation():
    ar, ma, _, _ = ea._unpack(np.array([0.75, 0.75]), Order(1, 0, 1, 0, 0, 0, 12))
    # x / sqrt(1 + x^2) = 0.6
    assert abs(ar[0]) == pytest.approx(0.6)
    assert abs(ma[0]) == pytest.approx(0.6)


def test_extreme_free_values_stay_inside_unit_circle():
    ar, _, _, _ = ea._unpack(np.array([1e12]), Order(1, 0, 0, 0, 0, 0, 12))
    assert 0.999 < abs(ar[0]) < 1.0


def test_expand_polynomials_multiplies_seasonal_factor():
    phi, theta = ea.expand_polynomials(
        np.array([0.5]), np.array([]), np.array([0.4]), np.array([0.3]), 4
    )
    # (1 - 0.5B)(1 - 0.4B^4) = 1 - 0.5B - 0.4B^4 + 0.2B^5
    np.testing.assert_allclose(phi, [0.5, 0, 0, 0.4, -0.2])
    np.testing.assert_allclose(theta, [0, 0, 0, 0.3])


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def test_fit_ar1_recovers_coefficient():
    y = simulate_arma(300, ar=0.6, seed=42)
    model = ea.fit_arima(y, Order(1, 0, 0, 0, 0, 0, 12))
    assert model.ar[0] == pytest.approx(0.6, abs=0.15)
    assert model.sigma2 == pytest.approx(1.0, abs=0.25)
    assert abs(model.intercept) < 0.5
    assert 0.02 < model.std_errors["ar1"] < 0.1
    assert np.all(np.abs(model.roots()["ar"]) > 1.0)


def test_fit_ma1_is_invertible():
    y = simulate_arma(300, ma=0.5, seed=7)
    model = ea.fit_arima(y, (0, 0, 1), include_mean=False)
    assert model.ma[0] == pytest.approx(0.5, abs=0.15)
    assert np.all(np.abs(model.roots()["ma"]) >= 1.0)
    assert not model.include_mean
    assert model.intercept == 0.0


def test_fit_drift_of_random_walk():
    y = np.random.default_rng(11).normal(0.5, 1.0, size=200).cumsum()
    model = ea.fit_arima(y, Order(0, 1, 0, 0, 0, 0, 12))
    assert model.include_mean
    assert model.drift == pytest.approx(0.5, abs=0.25)
    assert "drift" in model.coefficients
    assert model.nobs == 199


def test_information_criteria_consistent():
    y = simulate_arma(120, ar=0.4, seed=3)
    model = ea.fit_arima(y, Order(1, 0, 0, 0, 0, 0, 12))
    k = model.n_params
    assert k == 3
    assert model.aic == pytest.approx(-2 * model.loglik + 2 * k)
    assert model.aicc == pytest.approx(model.aic + 2 * k * (k + 1) / (model.nobs - k - 1))
    assert model.bic == pytest.approx(-2 * model.loglik + k * np.log(model.nobs))


def test_fit_constant_series():
    model = ea.fit_arima([7.0] * 36, Order(0, 0, 0, 0, 0, 0, 12))
    assert model.intercept == pytest.approx(7.0)
    assert model.drift == 0.0
    assert model.sigma2 < 1e-6
    assert np.isfinite(model.aicc)


def test_fit_remembers_last_period():
    s = to_monthly_series(simulate_arma(40, ar=0.3, seed=1), start=(2018, 1))
    model = ea.fit_arima(s, Order(1, 0, 0, 0, 0, 0, 12))
    assert model.end_period == pd.Period("2021-04", freq="M")


def test_fit_seasonal_model_roots():
    rng = np.random.default_rng(4)
    t = np.arange(72)
    y = 20 + 2 * np.sin(2 * np.pi * t / 12) + rng.normal(size=72)
    model = ea.fit_arima(y, Order(1, 0, 0, 1, 0, 0, 12))
    roots = model.roots()
    assert np.all(np.abs(roots["ar"]) > 1.0)
    assert np.all(np.abs(roots["seasonal_ar"]) > 1.0)
    assert model.seasonal_ar.size == 1


def test_mean_not_allowed_with_two_differences():
    y = np.random.default_rng(0).normal(size=60).cumsum().cumsum()
    with pytest.raises(InvalidOrderError):
        ea.fit_arima(y, Order(0, 2, 0, 0, 0, 0, 12), include_mean=True)


def test_overdifferenced_order_rejected():
    with pytest.raises(InvalidOrderError):
        ea.fit_arima(np.arange(60.0), Order(0, 2, 0, 0, 1, 0, 12))


def test_too_many_parameters():
    with pytest.raises(InsufficientDataError):
        ea.fit_arima(np.arange(6.0), Order(2, 0, 2, 0, 0, 0, 12))


def test_short_series_seasonal_difference():
    with pytest.raises(InsufficientDataError):
        ea.fit_arima(np.arange(5.0), Order(0, 0, 0, 0, 1, 0, 12))


def test_optimiser_iteration_cap(monkeypatch):
    def fake_minimize(fun, x0, **kwargs):
        return SimpleNamespace(status=1, fun=1.0, nit=200, message="limit reached", success=False, x=x0)

    monkeypatch.setattr(ea, "minimize", fake_minimize)
    with pytest.raises(EstimationDivergedError):
        ea.fit_arima(simulate_arma(60, ar=0.5), Order(1, 0, 0, 0, 0, 0, 12))


def test_singular_information_matrix(monkeypatch):
    monkeypatch.setattr(ea, "approx_hess3", lambda x, f, **kwargs: np.zeros((x.size, x.size)))
    with pytest.raises(SingularCovarianceError):
        ea.fit_arima(simulate_arma(60, ar=0.5), Order(1, 0, 0, 0, 0, 0, 12))


def test_fitted_model_is_read_only():
    model = ea.fit_arima(simulate_arma(60, ar=0.5), Order(1, 0, 0, 0, 0, 0, 12))
    with pytest.raises(ValueError):
        model.ar[0] = 0.0
    with pytest.raises(dataclasses.FrozenInstanceError):
        model.sigma2 = 2.0


def test_summary_surface():
    model = ea.fit_arima(simulate_arma(80, ar=0.5, seed=9), Order(1, 0, 0, 0, 0, 0, 12))
    summary = model.summary()
    assert summary["model"] == "ARIMA(1,0,0) with mean"
    assert set(summary["coefficients"]) == {"ar1", "intercept"}
    assert summary["aicc"] == pytest.approx(model.aicc)
    frame = model.summary_frame()
    assert list(frame.columns) == ["coef", "std_err"]
    assert np.isnan(frame.loc["intercept", "std_err"])


def test_residuals_are_in_data_units():
    y = np.random.default_rng(12).normal(10.0, 3.0, size=400)
    model = ea.fit_arima(y, Order(0, 0, 0, 0, 0, 0, 12))
    assert np.std(model.residuals) == pytest.approx(3.0, abs=0.4)
    np.testing.assert_allclose(model.prediction_variance, model.sigma2)


def test_predictive_loglik_over_full_sample_is_loglik():
    model = ea.fit_arima(simulate_arma(80, ma=0.4, seed=13), Order(0, 0, 1, 0, 0, 0, 12))
    assert model.predictive_loglik(model.nobs) == pytest.approx(model.loglik)
    assert model.predictive_loglik(10) > model.loglik
    with pytest.raises(ValueError):
        model.predictive_loglik(0)


# ---------------------------------------------------------------------------
# Boundary fits
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("seed", range(10))
def test_seasonal_ma_near_invertibility_boundary(seed):
    rng = np.random.default_rng(seed)
    t = np.arange(72)
    y = 30 + 5 * np.sin(2 * np.pi * t / 12) + rng.normal(size=72)
    model = ea.fit_arima(y, Order(0, 0, 0, 0, 1, 1, 12))
    sma = model.seasonal_ma[0]
    assert -1.0 < sma < 0.0
    se = model.std_errors["sma1"]
    assert np.isnan(se) or se > 0.0
    assert np.isnan(se) == (abs(sma) > 0.999)


def test_boundary_factor_is_held_fixed(monkeypatch):
    def no_hessian(*args, **kwargs):
        raise AssertionError("no free coefficient left")

    monkeypatch.setattr(ea, "approx_hess3", no_hessian)
    z = np.random.default_rng(14).normal(size=60)
    se = ea._standard_errors(np.array([50.0]), np.array([-0.9998]), z, Order(0, 0, 0, 0, 0, 1, 12), 1e-10)
    assert list(se) == ["sma1"]
    assert np.isnan(se["sma1"])


def test_interior_coefficients_keep_standard_errors():
    z = simulate_arma(120, ar=0.5, seed=15)
    order = Order(1, 0, 0, 0, 0, 1, 12)
    se = ea._standard_errors(np.array([0.55, 50.0]), np.array([0.48, -0.9998]), z, order, 1e-10)
    assert 0.0 < se["ar1"] < 0.2
    assert np.isnan(se["sma1"])

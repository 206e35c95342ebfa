import numpy as np
import pytest

from pred_incident_counts import evaluate_models as em
from pred_incident_counts.preprocess_timeseries import to_monthly_series


# ---------------------------------------------------------------------------
# Metric helpers
# ---------------------------------------------------------------------------

def test_safe_mape_ignores_zero():
    y_true = np.array([10, 0, 20])
    y_pred = np.array([12, 0, 18])
    mape = em.safe_mape(y_true, y_pred)
    assert mape == pytest.approx(15.0)


def test_safe_mape_all_zero():
    assert np.isnan(em.safe_mape(np.zeros(3), np.ones(3)))


def test_compute_metrics_basic():
    true = [1, 2, 3]
    pred = [1, 2, 4]
    metrics = em._compute_metrics(true, pred)
    assert set(metrics) == {"MAE", "RMSE", "MAPE"}
    assert metrics["MAE"] == pytest.approx(1 / 3)
    assert metrics["RMSE"] == pytest.approx((1 / 3) ** 0.5)
    assert metrics["MAPE"] == pytest.approx(11.111111, rel=1e-5)


# ---------------------------------------------------------------------------
# Rolling evaluation
# ---------------------------------------------------------------------------


def sample_series(n=40, seed=0):
    rng = np.random.default_rng(seed)
    y = np.zeros(n)
    for t in range(1, n):
        y[t] = 0.5 * y[t - 1] + rng.normal()
    return to_monthly_series(y + 30, start=(2020, 1))


def test_rolling_origin_evaluation():
    series = sample_series()
    preds, metrics = em.rolling_origin_evaluation(
        series, 3, seasonal=False, max_p=1, max_q=1, max_models=6, levels=[80]
    )
    assert len(preds) == 3
    assert list(preds.index) == list(series.index[-3:])
    assert {"model", "forecast", "lower_95", "upper_95", "actual"} <= set(preds.columns)
    np.testing.assert_allclose(preds["actual"], series.iloc[-3:].to_numpy())
    assert set(metrics) == {"MAE", "RMSE", "MAPE", "coverage_95"}
    assert 0.0 <= metrics["coverage_95"] <= 1.0
    assert metrics["RMSE"] >= metrics["MAE"]


@pytest.mark.parametrize("test_size", [0, 40])
def test_rolling_origin_evaluation_bad_size(test_size):
    with pytest.raises(ValueError):
        em.rolling_origin_evaluation(sample_series(), test_size)

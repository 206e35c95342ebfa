import numpy as np
import pandas as pd
import pytest

from pred_incident_counts import pipeline as pl
from pred_incident_counts.exceptions import InsufficientDataError, InvalidHorizonError
from pred_incident_counts.preprocess_timeseries import to_monthly_series

SMALL = dict(max_p=1, max_q=1, max_P=1, max_Q=1, max_order=3, max_models=15)


def monthly_incidents(n=48, seed=0):
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    return np.round(40 + 8 * np.sin(2 * np.pi * t / 12) + 0.2 * t + rng.normal(0, 1.5, n))


def test_pipeline_end_to_end():
    series = to_monthly_series(monthly_incidents(), start=(2019, 1))
    result = pl.TimeSeriesPipeline(**SMALL).run(series, horizon=6)

    frame = result.forecast.to_frame()
    assert len(frame) == 6
    assert frame.index[0] == pd.Period("2023-01", freq="M")
    assert (frame["upper_95"] >= frame["upper_80"]).all()
    assert (frame["lower_95"] <= frame["lower_80"]).all()
    assert np.isfinite(frame.to_numpy()).all()

    summary = result.summary()
    assert summary["model"] == result.model.label()
    assert summary["aicc"] == pytest.approx(result.model.aicc)
    assert result.search.n_evaluated >= 1


def test_pipeline_does_not_modify_input():
    values = list(monthly_incidents(seed=1))
    original = list(values)
    series = to_monthly_series(values, start=(2019, 1))
    snapshot = series.copy()

    pipeline = pl.TimeSeriesPipeline(**SMALL)
    pipeline.run(values, start=(2019, 1), horizon=3)
    pipeline.run(series, horizon=3)

    assert values == original
    pd.testing.assert_series_equal(series, snapshot)


def test_pipeline_without_start_uses_step_index():
    result = pl.TimeSeriesPipeline(seasonal=False, **SMALL).run(monthly_incidents(36, seed=2), horizon=2)
    assert result.forecast.to_frame().index.name == "step"


def test_invalid_horizon_rejected_before_search(monkeypatch):
    def no_search(*args, **kwargs):
        raise AssertionError("search should not run")

    monkeypatch.setattr(pl, "search_models", no_search)
    with pytest.raises(InvalidHorizonError):
        pl.TimeSeriesPipeline().run(monthly_incidents(), start=(2019, 1), horizon=0)


def test_short_series_rejected():
    with pytest.raises(InsufficientDataError):
        pl.forecast_monthly_counts([3.0, 4.0, 2.0, 5.0, 4.0], start=(2020, 1))


def test_constant_series_forecasts_the_constant():
    result = pl.forecast_monthly_counts([7.0] * 36, start=(2020, 1), horizon=12)
    fc = result.forecast
    np.testing.assert_allclose(fc.mean, 7.0, atol=1e-6)
    assert np.all(fc.width(95) < 1e-2)
    assert result.model.drift == 0.0


def test_config_section_and_overrides():
    cfg = {"forecasting": {"horizon": 3, "max_p": 4}}
    pipeline = pl.TimeSeriesPipeline(cfg, max_p=1)
    assert pipeline.params["horizon"] == 3
    assert pipeline.params["max_p"] == 1
    assert cfg["forecasting"]["max_p"] == 4


def test_unknown_option_rejected():
    with pytest.raises(ValueError, match="unknown forecasting option"):
        pl.TimeSeriesPipeline(max_lag=3)

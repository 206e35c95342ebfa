#!/usr/bin/env python3
"""Forecast monthly incident counts from the command line.

The input CSV holds one row per month (columns ``date_col`` and
``value_col`` of the configuration), as written by the aggregation step.
The script selects a seasonal ARIMA model, writes the forecasts with their
80%/95% bounds, the model summary cited in the report and the trace of the
order search.

Usage::

    python -m pred_incident_counts.run_all --config config.yaml [--horizon H] [--jobs N]
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd
import yaml

from .config import forecasting_params, load_config
from .evaluate_models import rolling_origin_evaluation
from .logging_utils import setup_logging
from .pipeline import TimeSeriesPipeline
from .preprocess_timeseries import validate_series

logger = logging.getLogger(__name__)


def load_monthly_counts(csv_path: Path, *, date_col: str, value_col: str) -> pd.Series:
    """Return the monthly count series stored in ``csv_path``."""
    df = pd.read_csv(csv_path)
    missing = [c for c in (date_col, value_col) if c not in df.columns]
    if missing:
        raise ValueError(f"{csv_path} lacks column(s): {', '.join(missing)}")
    index = pd.PeriodIndex(pd.to_datetime(df[date_col]).dt.to_period("M"))
    series = pd.Series(df[value_col].to_numpy(dtype=float), index=index, name=value_col)
    return validate_series(series.sort_index())


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Forecast monthly incident counts with seasonal ARIMA")
    p.add_argument("--config", default="config.yaml", help="YAML configuration file")
    p.add_argument("--input", default=None, help="CSV of monthly counts (overrides the config)")
    p.add_argument("--output", default=None, help="Output directory (overrides the config)")
    p.add_argument("--horizon", type=int, default=None, help="Number of months to forecast")
    p.add_argument("--jobs", type=int, default=None, help="Parallel candidate fits per search round")
    p.add_argument(
        "--evaluate",
        type=int,
        default=0,
        metavar="K",
        help="Also run a rolling one-step evaluation over the last K months",
    )
    p.add_argument("--log-file", default=None, help="Write a DEBUG log to this file")
    args = p.parse_args(argv)

    setup_logging(log_file=args.log_file)

    cfg = load_config(args.config)
    overrides = {}
    if args.horizon is not None:
        overrides["horizon"] = args.horizon
    if args.jobs is not None:
        overrides["n_jobs"] = args.jobs
    cfg["forecasting"] = {**(cfg.get("forecasting") or {}), **overrides}
    params = forecasting_params(cfg)

    csv_path = Path(args.input or cfg.get("input_file_monthly_counts", "monthly_counts.csv"))
    output_dir = Path(args.output or cfg.get("output_dir", "."))

    series = load_monthly_counts(csv_path, date_col=params["date_col"], value_col=params["value_col"])
    logger.info("Loaded %d months from %s (%s to %s)", len(series), csv_path, series.index[0], series.index[-1])

    result = TimeSeriesPipeline(cfg).run(series)

    output_dir.mkdir(parents=True, exist_ok=True)
    table = result.forecast.to_frame()
    table.to_csv(output_dir / "forecast.csv", index_label="period")
    with open(output_dir / "model_summary.yaml", "w", encoding="utf-8") as fh:
        yaml.safe_dump(result.summary(), fh, sort_keys=False)
    result.search.trace_frame().to_csv(output_dir / "search_trace.csv", index=False)
    logger.info("%s\n%s", result.model.label(), table.to_string())

    if args.evaluate:
        preds, metrics = rolling_origin_evaluation(series, args.evaluate, config=cfg)
        preds.to_csv(output_dir / "evaluation.csv", index_label="period")
        logger.info("Rolling evaluation: %s", {k: round(v, 3) for k, v in metrics.items()})


if __name__ == "__main__":  # pragma: no cover - CLI helper
    main()

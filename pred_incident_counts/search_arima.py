"""Stepwise seasonal ARIMA order selection by AICc.

The search follows Hyndman & Khandakar (2008): the differencing orders are
chosen first from the seasonal-strength heuristic and repeated
Dickey-Fuller tests, then ``(p, q, P, Q)`` and the mean term are improved
one step at a time from a few starting models.  One regular difference
less than the diagnostics suggest is always searched as well, and the two
winners are compared on their one-step forecast errors.  Each round fits its
candidates independently (optionally through joblib) and keeps the best
one by a deterministic key, so the result never depends on which worker
finishes first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .estimate_arima import fit_arima
from .exceptions import EstimationError, InsufficientDataError, NoConvergingModelError
from .preprocess_timeseries import (
    MIN_DIFFERENCED_OBS,
    difference,
    estimate_differences,
    estimate_seasonal_differences,
)
from .structures import FittedModel, Order

logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, np.ndarray, Sequence[float]]


# ---------------------------------------------------------------------------
# Candidates and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candidate:
    """ARMA terms and mean flag explored by the stepwise search."""

    p: int
    q: int
    P: int
    Q: int
    include_mean: bool

    def order(self, d: int, D: int, s: int) -> Order:
        return Order(self.p, d, self.q, self.P, D, self.Q, s)


@dataclass(frozen=True, eq=False)
class CandidateResult:
    order: Order
    include_mean: bool
    model: Optional[FittedModel] = None
    error: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.model is not None

    @property
    def aicc(self) -> float:
        return self.model.aicc if self.model is not None else np.inf

    def rank_key(self) -> Tuple:
        """Lower is better: AICc, then fewer parameters, then a fixed order."""
        n_params = self.order.n_arma + int(self.include_mean)
        return (self.aicc, n_params, self.order.n_arma, tuple(self.order), not self.include_mean)


@dataclass(frozen=True, eq=False)
class SearchResult:
    """Winning model plus every candidate evaluated on the way."""

    model: FittedModel
    candidates: Tuple[CandidateResult, ...]

    @property
    def order(self) -> Order:
        return self.model.order

    @property
    def include_mean(self) -> bool:
        return self.model.include_mean

    @property
    def n_evaluated(self) -> int:
        return len(self.candidates)

    @property
    def n_failed(self) -> int:
        return sum(not c.converged for c in self.candidates)

    def trace_frame(self) -> pd.DataFrame:
        rows = [
            {
                "model": str(c.order),
                "include_mean": c.include_mean,
                "aicc": c.aicc,
                "converged": c.converged,
                "error": c.error or "",
            }
            for c in self.candidates
        ]
        return pd.DataFrame(rows, columns=["model", "include_mean", "aicc", "converged", "error"])


# ---------------------------------------------------------------------------
# Candidate evaluation
# ---------------------------------------------------------------------------


def _fit_candidate(series: SeriesLike, order: Order, include_mean: bool, fit_kwargs: Dict) -> CandidateResult:
    try:
        model = fit_arima(series, order, include_mean=include_mean, **fit_kwargs)
    except (EstimationError, InsufficientDataError) as exc:
        logger.debug("%s%s skipped: %s", order, " with mean" if include_mean else "", exc)
        return CandidateResult(order=order, include_mean=include_mean, error=str(exc))
    return CandidateResult(order=order, include_mean=include_mean, model=model)


def _evaluate(
    series: SeriesLike,
    batch: List[Tuple[Order, bool]],
    fit_kwargs: Dict,
    *,
    n_jobs: int,
    backend: str,
) -> List[CandidateResult]:
    if n_jobs == 1 or len(batch) == 1:
        return [_fit_candidate(series, order, mean, fit_kwargs) for order, mean in batch]
    with Parallel(n_jobs=n_jobs, backend=backend) as parallel:
        return list(
            parallel(delayed(_fit_candidate)(series, order, mean, fit_kwargs) for order, mean in batch)
        )


# ---------------------------------------------------------------------------
# Stepwise search at fixed differencing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Bounds:
    max_p: int
    max_q: int
    max_P: int
    max_Q: int
    max_order: int
    seasonal: bool
    allow_mean: bool

    def admits(self, c: Candidate) -> bool:
        if min(c.p, c.q, c.P, c.Q) < 0:
            return False
        if c.p > self.max_p or c.q > self.max_q:
            return False
        if c.P > self.max_P or c.Q > self.max_Q:
            return False
        if not self.seasonal and (c.P or c.Q):
            return False
        if c.include_mean and not self.allow_mean:
            return False
        return c.p + c.q + c.P + c.Q <= self.max_order


def _clip(c: Candidate, bounds: _Bounds) -> Candidate:
    return Candidate(
        p=min(c.p, bounds.max_p),
        q=min(c.q, bounds.max_q),
        P=min(c.P, bounds.max_P) if bounds.seasonal else 0,
        Q=min(c.Q, bounds.max_Q) if bounds.seasonal else 0,
        include_mean=c.include_mean and bounds.allow_mean,
    )


def _starting_candidates(bounds: _Bounds) -> List[Candidate]:
    mean = bounds.allow_mean
    starts = [
        Candidate(2, 2, 1, 1, mean),
        Candidate(0, 0, 0, 0, mean),
        Candidate(1, 0, 1, 0, mean),
        Candidate(0, 1, 0, 1, mean),
    ]
    if mean:
        starts.append(Candidate(0, 0, 0, 0, False))
    out: List[Candidate] = []
    for c in starts:
        c = _clip(c, bounds)
        while not bounds.admits(c) and c.p + c.q + c.P + c.Q > 0:
            # shrink the largest term until the total order fits
            terms = {"p": c.p, "q": c.q, "P": c.P, "Q": c.Q}
            name = max(terms, key=lambda k: terms[k])
            terms[name] -= 1
            c = Candidate(include_mean=c.include_mean, **terms)
        if bounds.admits(c) and c not in out:
            out.append(c)
    return out


def _neighbours(c: Candidate, bounds: _Bounds) -> List[Candidate]:
    moves = []
    for field_name in ("p", "q", "P", "Q"):
        for step in (-1, 1):
            terms = {"p": c.p, "q": c.q, "P": c.P, "Q": c.Q}
            terms[field_name] += step
            moves.append(Candidate(include_mean=c.include_mean, **terms))
    if bounds.allow_mean:
        moves.append(Candidate(c.p, c.q, c.P, c.Q, not c.include_mean))
    return [m for m in moves if bounds.admits(m)]


def _stepwise(
    series: SeriesLike,
    d: int,
    D: int,
    s: int,
    bounds: _Bounds,
    budget: int,
    fit_kwargs: Dict,
    *,
    n_jobs: int,
    backend: str,
) -> Tuple[Optional[CandidateResult], List[CandidateResult]]:
    """Greedy descent on the rank key; stops at a local optimum or the budget."""
    evaluated: Dict[Candidate, CandidateResult] = {}
    history: List[CandidateResult] = []
    best: Optional[Tuple[Candidate, CandidateResult]] = None
    pending = _starting_candidates(bounds)

    while pending and len(history) < budget:
        batch = [c for c in pending if c not in evaluated][: budget - len(history)]
        if not batch:
            break
        results = _evaluate(
            series,
            [(c.order(d, D, s), c.include_mean) for c in batch],
            fit_kwargs,
            n_jobs=n_jobs,
            backend=backend,
        )
        for c, r in zip(batch, results):
            evaluated[c] = r
            history.append(r)

        converged = [(c, r) for c, r in zip(batch, results) if r.converged]
        if best is None and not converged:
            # nothing fitted yet: widen the search around the failed candidates
            pending = []
            for c in batch:
                pending.extend(n for n in _neighbours(c, bounds) if n not in evaluated and n not in pending)
            continue

        round_best = min(converged, key=lambda cr: cr[1].rank_key(), default=None)
        if round_best is None or (best is not None and round_best[1].rank_key() >= best[1].rank_key()):
            break
        best = round_best
        logger.debug("stepwise: current best %s AICc=%.3f", best[1].model.label(), best[1].aicc)
        pending = _neighbours(best[0], bounds)

    return (best[1] if best is not None else None), history


def _differencing_options(
    d: int, D: int, n: int, s: int, *, seasonal: bool, max_d: int, max_D: int
) -> List[Tuple[int, int]]:
    """Admissible differencing orders: the diagnosed one first, then its neighbours."""
    options = [(d, D), (d - 1, D), (d + 1, D)]
    if seasonal:
        options.append((d, 1 - D))
    valid: List[Tuple[int, int]] = []
    for dd, DD in options:
        if dd < 0 or DD < 0 or dd > max_d or DD > max_D or dd + DD > 2:
            continue
        if DD > 0 and n < 2 * s:
            continue
        if n - dd - DD * s < MIN_DIFFERENCED_OBS:
            continue
        if (dd, DD) not in valid:
            valid.append((dd, DD))
    return valid


def _common_sample_aicc(result: CandidateResult, last: int) -> float:
    """AICc of the one-step forecast errors over the final ``last`` observations."""
    model = result.model
    k = model.n_params
    if last - k - 1 <= 0:
        return np.inf
    loglik = model.predictive_loglik(last)
    return -2.0 * loglik + 2.0 * k + 2.0 * k * (k + 1) / (last - k - 1)


def _select_differencing(winners: List[CandidateResult], n: int) -> CandidateResult:
    """Pick among stepwise winners fitted at different differencing orders."""
    if len(winners) == 1:
        return winners[0]
    last = n - max(w.order.n_diff for w in winners)
    scored = []
    for rank, winner in enumerate(winners):
        score = _common_sample_aicc(winner, last)
        logger.info(
            "%s: AICc over the last %d observations=%.3f", winner.model.label(), last, score
        )
        scored.append((score, winner.model.n_params, rank, winner))
    return min(scored, key=lambda item: item[:3])[3]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def search_models(
    series: SeriesLike,
    s: int = 12,
    *,
    max_p: int = 5,
    max_q: int = 5,
    max_P: int = 2,
    max_Q: int = 2,
    max_order: int = 5,
    seasonal: bool = True,
    max_d: int = 2,
    max_D: int = 1,
    alpha: float = 0.05,
    seasonal_threshold: float = 0.64,
    max_models: int = 94,
    n_jobs: int = 1,
    backend: str = "loky",
    max_iter: int = 200,
    tol: float = 1e-9,
) -> SearchResult:
    """Select and fit the best seasonal ARIMA model for ``series``.

    The stepwise search runs at the differencing orders suggested by the
    diagnostics and, since the unit-root test often keeps a difference the
    data do not need, also with one regular difference less.  AICc values
    of differently differenced data are not comparable, so the winners are
    compared on their one-step forecast errors over the observations both
    of them cover.  Further neighbours (``d+1``, toggled ``D``) are only
    tried when nothing converged.

    Raises
    ------
    InsufficientDataError
        Seasonal modelling was requested on fewer than ``2*s`` observations,
        or the series is too short for any differencing order.
    NoConvergingModelError
        No candidate at any admissible differencing order could be fitted.
    """
    values = np.asarray(series, dtype=float).ravel()
    n = values.size
    seasonal = bool(seasonal) and s > 1
    if seasonal and n < 2 * s:
        raise InsufficientDataError(
            f"seasonal modelling with period {s} needs at least {2 * s} observations, got {n}"
        )
    if max_models < 1:
        raise ValueError("max_models must be at least 1")

    D = estimate_seasonal_differences(values, s, threshold=seasonal_threshold, max_D=max_D) if seasonal else 0
    adjusted = difference(values, 0, D, s) if D else values
    d = estimate_differences(adjusted, max_d=min(max_d, 2 - D), alpha=alpha)
    logger.info("Differencing chosen from diagnostics: d=%d, D=%d", d, D)

    options = _differencing_options(d, D, n, s, seasonal=seasonal, max_d=max_d, max_D=max_D)
    if not options:
        raise InsufficientDataError(
            f"{n} observations leave fewer than {MIN_DIFFERENCED_OBS} points at every differencing order"
        )
    compared = [o for o in options if o in ((d, D), (d - 1, D))]
    fallbacks = [o for o in options if o not in compared]

    fit_kwargs = {"max_iter": max_iter, "tol": tol}
    history: List[CandidateResult] = []

    def run(dd: int, DD: int) -> Optional[CandidateResult]:
        bounds = _Bounds(
            max_p=max_p,
            max_q=max_q,
            max_P=max_P if seasonal else 0,
            max_Q=max_Q if seasonal else 0,
            max_order=max_order,
            seasonal=seasonal,
            allow_mean=dd + DD <= 1,
        )
        best, tried = _stepwise(
            series,
            dd,
            DD,
            s,
            bounds,
            max_models - len(history),
            fit_kwargs,
            n_jobs=n_jobs,
            backend=backend,
        )
        history.extend(tried)
        return best

    winners: List[CandidateResult] = []
    for dd, DD in compared:
        if len(history) >= max_models:
            break
        best = run(dd, DD)
        if best is not None:
            winners.append(best)
    if not winners:
        for dd, DD in fallbacks:
            if len(history) >= max_models:
                break
            logger.warning("No converging model with d=%d, D=%d; trying d=%d, D=%d", d, D, dd, DD)
            best = run(dd, DD)
            if best is not None:
                winners.append(best)
                break
    if not winners:
        raise NoConvergingModelError(
            f"none of the {len(history)} candidate models converged"
        )

    chosen = _select_differencing(winners, n)
    logger.info(
        "Selected %s: AICc=%.3f after %d candidates (%d failed)",
        chosen.model.label(),
        chosen.aicc,
        len(history),
        sum(not c.converged for c in history),
    )
    return SearchResult(model=chosen.model, candidates=tuple(history))


def search_order(series: SeriesLike, s: int = 12, **kwargs) -> Order:
    """Return the order selected by :func:`search_models`."""
    return search_models(series, s, **kwargs).order


__all__ = [
    "Candidate",
    "CandidateResult",
    "SearchResult",
    "search_models",
    "search_order",
]

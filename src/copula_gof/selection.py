"""
Information-criterion ranking of fitted copula families.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import AllFamiliesFailedError
from .families import CopulaFamily
from .fitting import FitOutcome, FittedCopula

logger = logging.getLogger(__name__)

CRITERIA = ("aic", "bic")
RANKING_COLUMNS = [
    "family", "n_params", "loglik", "aic", "bic",
    "delta_aic", "delta_bic", "aic_weight", "bic_weight", "rank",
]


@dataclass
class SelectionResult:
    """Ranked successful fits; row 0 of `ranking` is the selected family."""
    ranking: pd.DataFrame
    best_family: CopulaFamily
    criterion: str = "aic"

    def rank_of(self, family) -> Optional[int]:
        fam = CopulaFamily.parse(family)
        rows = self.ranking.loc[self.ranking["family"] == fam.value, "rank"]
        return int(rows.iloc[0]) if len(rows) else None


def _criterion_value(fit: FittedCopula, criterion: str) -> float:
    value = getattr(fit, criterion)
    # No likelihood (comonotonic): ranks after every family that has one.
    return float("inf") if value is None else float(value)


def _deltas(values: np.ndarray) -> np.ndarray:
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return np.full(values.shape, np.nan)
    return values - finite.min()


def _weights(deltas: np.ndarray) -> np.ndarray:
    """Akaike-type weights exp(-delta/2) / sum; zero for infinite deltas."""
    finite = np.isfinite(deltas)
    w = np.zeros(deltas.shape)
    if not finite.any():
        return np.full(deltas.shape, np.nan)
    w[finite] = np.exp(-0.5 * deltas[finite])
    return w / w.sum()


def _order(fits: List[FittedCopula], criterion: str, tie_tolerance: float) -> List[FittedCopula]:
    """
    Ascending criterion; fits whose criterion lies within tie_tolerance of the
    head of their group are ordered by fewer free parameters first.
    """
    by_value = sorted(fits, key=lambda f: (_criterion_value(f, criterion), f.n_params))
    ordered: List[FittedCopula] = []
    group: List[FittedCopula] = []
    head = None
    for fit in by_value:
        value = _criterion_value(fit, criterion)
        if group and (np.isinf(value) or np.isinf(head) or value - head > tie_tolerance):
            ordered.extend(sorted(group, key=lambda f: f.n_params))
            group = []
        if not group:
            head = value
        group.append(fit)
    ordered.extend(sorted(group, key=lambda f: f.n_params))
    return ordered


def select_family(
    fits: Sequence[FitOutcome],
    criterion: str = "aic",
    tie_tolerance: float = 1e-6,
) -> SelectionResult:
    """
    Rank successful fits by information criterion.

    Args:
        fits: Fit outcomes; FitFailure entries are ignored
        criterion: 'aic' (default) or 'bic'
        tie_tolerance: Criterion difference below which the simpler family wins

    Returns:
        SelectionResult with the ranking table and the best family

    Raises:
        AllFamiliesFailedError: If no entry is a successful fit
        ValueError: If the criterion is unknown
    """
    criterion = criterion.lower()
    if criterion not in CRITERIA:
        raise ValueError(f"criterion must be one of {CRITERIA}, got '{criterion}'")

    successes = [f for f in fits if f.fit_success]
    if not successes:
        raise AllFamiliesFailedError("no copula family could be fit to this sample")

    ordered = _order(successes, criterion, tie_tolerance)
    aic = np.array([_criterion_value(f, "aic") for f in ordered])
    bic = np.array([_criterion_value(f, "bic") for f in ordered])
    delta_aic = _deltas(aic)
    delta_bic = _deltas(bic)

    ranking = pd.DataFrame({
        "family": [f.family.value for f in ordered],
        "n_params": [f.n_params for f in ordered],
        "loglik": [np.nan if f.loglik is None else f.loglik for f in ordered],
        "aic": [np.nan if f.aic is None else f.aic for f in ordered],
        "bic": [np.nan if f.bic is None else f.bic for f in ordered],
        "delta_aic": delta_aic,
        "delta_bic": delta_bic,
        "aic_weight": _weights(delta_aic),
        "bic_weight": _weights(delta_bic),
        "rank": np.arange(1, len(ordered) + 1),
    }, columns=RANKING_COLUMNS)

    best = ordered[0].family
    logger.info("Selected %s by %s among %d fitted families", best.value, criterion.upper(), len(ordered))
    return SelectionResult(ranking=ranking, best_family=best, criterion=criterion)

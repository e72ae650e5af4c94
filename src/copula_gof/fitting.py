"""
Per-family estimation with captured failures.

`fit_copula` never raises for family-level problems: an optimizer that does
not converge, an estimate pinned to its search bound or a non-finite
likelihood comes back as a `FitFailure` record so the remaining families
still get fitted and ranked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import FitError
from .families import CopulaFamily, get_copula, parse_families

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FittedCopula:
    """Successful fit of one family to one set of pseudo-observations."""
    family: CopulaFamily
    params: Tuple[float, ...]
    param_names: Tuple[str, ...]
    n_params: int
    n_obs: int
    loglik: Optional[float]
    aic: Optional[float]
    bic: Optional[float]
    kendall_tau: float
    tail_lower: Optional[float]
    tail_upper: Optional[float]
    note: Optional[str] = None
    fit_success: bool = field(default=True, init=False)

    @property
    def param_dict(self) -> Dict[str, float]:
        return dict(zip(self.param_names, self.params))


@dataclass(frozen=True)
class FitFailure:
    """A family that could not be fit; carries only the reason."""
    family: CopulaFamily
    error_message: str
    fit_success: bool = field(default=False, init=False)


FitOutcome = Union[FittedCopula, FitFailure]


def information_criteria(loglik: Optional[float], k: int, n: int) -> Tuple[Optional[float], Optional[float]]:
    """AIC = -2 logL + 2k and BIC = -2 logL + k log n; None without a likelihood."""
    if loglik is None:
        return None, None
    return -2.0 * loglik + 2.0 * k, -2.0 * loglik + k * float(np.log(n))


def fit_copula(family, u, v) -> FitOutcome:
    """
    Fit one copula family to pseudo-observations.

    Args:
        family: CopulaFamily or its name
        u: Pseudo-observations of the first margin, in (0, 1)
        v: Pseudo-observations of the second margin, same length

    Returns:
        FittedCopula on success, FitFailure otherwise
    """
    fam = CopulaFamily.parse(family)
    model = get_copula(fam)
    u_arr = np.asarray(u, dtype=float)
    v_arr = np.asarray(v, dtype=float)
    n = u_arr.size

    try:
        estimate = model.fit(u_arr, v_arr)
        if estimate.loglik is not None and not np.isfinite(estimate.loglik):
            raise FitError(f"{fam.value}: log-likelihood is not finite")
        tau = model.kendall_tau(estimate.params)
        if not np.isfinite(tau):
            raise FitError(f"{fam.value}: Kendall's tau is not finite at the estimate")
        lower, upper = model.tail_dependence(estimate.params)
    except (FitError, ArithmeticError, ValueError) as e:
        logger.debug("Fit failed for %s (n=%d): %s", fam.value, n, e)
        return FitFailure(family=fam, error_message=str(e))

    k = model.n_free_params
    aic, bic = information_criteria(estimate.loglik, k, n)
    logger.debug("Fitted %s: params=%s loglik=%s", fam.value, estimate.params, estimate.loglik)
    return FittedCopula(
        family=fam,
        params=tuple(float(p) for p in estimate.params),
        param_names=model.param_names,
        n_params=k,
        n_obs=n,
        loglik=estimate.loglik,
        aic=aic,
        bic=bic,
        kendall_tau=float(tau),
        tail_lower=lower,
        tail_upper=upper,
        note=estimate.note,
    )


def fit_families(u, v, families: Optional[Sequence] = None) -> List[FitOutcome]:
    """Fit each requested family; results come back in request order."""
    outcomes = []
    for fam in parse_families(families):
        outcome = fit_copula(fam, u, v)
        if not outcome.fit_success:
            logger.warning("Family %s failed to fit: %s", fam.value, outcome.error_message)
        outcomes.append(outcome)
    return outcomes

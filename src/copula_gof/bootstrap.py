"""
Parametric-bootstrap goodness-of-fit test.

For a fitted family the observed discrepancy is compared with its null
distribution, built by repeating: draw n points from the fitted copula ->
map them onto the observed tie structure -> refit the same family ->
recompute the statistic. The p-value counts the observation itself:

    p = (1 + #{boot_i >= observed}) / (N_valid + 1)

so it lies in [1 / (N_valid + 1), 1] and is never 0. Replicates whose refit
fails (or whose statistic is not finite) are dropped from both the numerator
and the denominator.

Randomness: replicate i of family f uses its own generator built from
SeedSequence(root_entropy, spawn_key=(f, i)). Results are therefore identical
for any worker count and any completion order, and two families never share
a stream.
"""

from __future__ import annotations

import logging
import threading
import time
import warnings
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from .errors import BootstrapCancelled
from .families import DEFAULT_REFERENCE_SIZE, CopulaFamily, get_copula
from .fitting import FittedCopula, fit_copula
from .gof import gof_statistic, statistic_name
from .pseudo_obs import match_ties

logger = logging.getLogger(__name__)

COMONOTONIC_METHOD = "comonotonic_observed_only"


@dataclass
class GoFResult:
    """Outcome of one family's goodness-of-fit test."""
    family: CopulaFamily
    statistic: float
    statistic_name: str
    p_value: Optional[float]
    method: str
    n_requested: int
    n_valid: int
    bootstrap_statistics: np.ndarray = field(default_factory=lambda: np.empty(0))
    warning: Optional[str] = None

    @property
    def n_dropped(self) -> int:
        if self.method == COMONOTONIC_METHOD:
            return 0
        return self.n_requested - self.n_valid


def bootstrap_p_value(observed: float, boot_stats: Sequence[float]) -> Optional[float]:
    """(1 + count(boot >= observed)) / (N_valid + 1); None with no valid replicates."""
    boot = np.asarray(boot_stats, dtype=float)
    boot = boot[np.isfinite(boot)]
    if boot.size == 0:
        return None
    return float((1 + np.count_nonzero(boot >= observed)) / (boot.size + 1))


def root_entropy(seed=None) -> int:
    """Entropy of the root SeedSequence; fresh OS entropy when seed is None."""
    if isinstance(seed, np.random.SeedSequence):
        return seed.entropy
    return np.random.SeedSequence(seed).entropy


def replicate_generator(entropy: int, family, index: int) -> np.random.Generator:
    fam = CopulaFamily.parse(family)
    return np.random.default_rng(np.random.SeedSequence(entropy, spawn_key=(fam.index, int(index))))


def _run_replicate(
    fitted: FittedCopula,
    u_sorted: np.ndarray,
    v_sorted: np.ndarray,
    entropy: int,
    index: int,
    method: str,
    reference_size: int,
) -> Tuple[int, Optional[float]]:
    rng = replicate_generator(entropy, fitted.family, index)
    model = get_copula(fitted.family)
    try:
        with np.errstate(all="ignore"):
            su, sv = model.sample(fitted.params, u_sorted.size, rng)
            bu = match_ties(su, u_sorted)
            bv = match_ties(sv, v_sorted)
            refit = fit_copula(fitted.family, bu, bv)
            if not refit.fit_success:
                return index, None
            stat = gof_statistic(refit, bu, bv, method=method, reference_size=reference_size)
    except (ArithmeticError, ValueError) as e:
        logger.debug("Replicate %d of %s dropped: %s", index, fitted.family.value, e)
        return index, None
    if not np.isfinite(stat):
        return index, None
    return index, float(stat)


def bootstrap_gof(
    fitted: FittedCopula,
    u,
    v,
    n_bootstrap: int,
    statistic: str = "kendall_cvm",
    seed=None,
    n_jobs: int = 1,
    max_drop_rate: float = 0.10,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    reference_size: int = DEFAULT_REFERENCE_SIZE,
) -> GoFResult:
    """
    Bootstrap p-value for one fitted family.

    Args:
        fitted: Successful fit on (u, v)
        u: Observed pseudo-observations, first margin
        v: Observed pseudo-observations, second margin
        n_bootstrap: Number of replicates requested (N >= 1)
        statistic: 'kendall_cvm' or 'rosenblatt_cvm'
        seed: Root seed (int or SeedSequence); None draws fresh entropy
        n_jobs: joblib worker count for replicates
        max_drop_rate: Drop fraction above which the result carries a warning
        timeout: Seconds after which the run is cancelled
        cancel_event: Set to request cancellation
        reference_size: Minimum reference points behind the model Kendall distribution

    Returns:
        GoFResult

    Raises:
        BootstrapCancelled: If cancelled or timed out; partial counts are discarded
        ValueError: If n_bootstrap < 1 or the observed statistic is not finite
    """
    if n_bootstrap < 1:
        raise ValueError(f"n_bootstrap must be >= 1, got {n_bootstrap}")
    u_arr = np.asarray(u, dtype=float)
    v_arr = np.asarray(v, dtype=float)
    fam = fitted.family
    name = statistic_name(fam, statistic)
    observed = gof_statistic(fitted, u_arr, v_arr, method=statistic, reference_size=reference_size)

    if fam is CopulaFamily.COMONOTONIC:
        return GoFResult(
            family=fam,
            statistic=observed,
            statistic_name=name,
            p_value=None,
            method=COMONOTONIC_METHOD,
            n_requested=n_bootstrap,
            n_valid=0,
        )

    if not np.isfinite(observed):
        raise ValueError(f"{fam.value}: observed {name} is not finite")

    entropy = root_entropy(seed)
    u_sorted = np.sort(u_arr)
    v_sorted = np.sort(v_arr)
    deadline = None if timeout is None else time.monotonic() + timeout

    def check_cancelled() -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise BootstrapCancelled(f"{fam.value}: bootstrap cancelled")
        if deadline is not None and time.monotonic() > deadline:
            raise BootstrapCancelled(f"{fam.value}: bootstrap exceeded timeout of {timeout}s")

    check_cancelled()
    logger.info("Bootstrap GoF for %s: N=%d, n_jobs=%d", fam.value, n_bootstrap, n_jobs)

    boot = np.full(n_bootstrap, np.nan)
    results = Parallel(n_jobs=n_jobs, return_as="generator_unordered")(
        delayed(_run_replicate)(fitted, u_sorted, v_sorted, entropy, i, statistic, reference_size)
        for i in range(n_bootstrap)
    )
    done = 0
    try:
        for index, stat in results:
            done += 1
            if stat is not None:
                boot[index] = stat
            if done < n_bootstrap:
                check_cancelled()
    finally:
        results.close()

    valid = boot[np.isfinite(boot)]
    n_valid = int(valid.size)
    p_value = bootstrap_p_value(observed, valid)

    warning = None
    drop_rate = 1.0 - n_valid / n_bootstrap
    if n_valid == 0:
        warning = f"all {n_bootstrap} bootstrap replicates failed; p-value unavailable"
    elif drop_rate > max_drop_rate:
        warning = (
            f"{n_bootstrap - n_valid} of {n_bootstrap} bootstrap replicates dropped "
            f"({drop_rate:.1%} > {max_drop_rate:.0%})"
        )
    if warning is not None:
        logger.warning("%s: %s", fam.value, warning)
        warnings.warn(f"{fam.value}: {warning}", RuntimeWarning)

    logger.info("Bootstrap GoF for %s done: statistic=%.6g p=%s valid=%d/%d",
                fam.value, observed, p_value, n_valid, n_bootstrap)
    return GoFResult(
        family=fam,
        statistic=observed,
        statistic_name=name,
        p_value=p_value,
        method=f"bootstrap_N={n_bootstrap}",
        n_requested=n_bootstrap,
        n_valid=n_valid,
        bootstrap_statistics=valid,
        warning=warning,
    )

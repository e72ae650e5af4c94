"""
Copula Selection Analyzer for Paired Scores

Takes two correlated score vectors (e.g. prior and current assessment scores),
ranks them into pseudo-observations, fits every requested copula family,
ranks the fits by AIC and tests each one with a parametric-bootstrap
goodness-of-fit procedure.

Ties are expected (discretized score scales). They are kept in the ranks, and
both the GoF statistic and the bootstrap reproduce them instead of jittering
them away.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from joblib import Parallel, cpu_count, delayed

from .bootstrap import GoFResult, bootstrap_gof, root_entropy
from .errors import BootstrapCancelled, InsufficientSampleSizeError
from .families import DEFAULT_REFERENCE_SIZE, CopulaFamily, parse_families
from .fitting import FitOutcome, fit_copula, fit_families
from .gof import validate_statistic
from .pseudo_obs import dependence_measures, pseudo_observations, tail_concentration, tie_summary
from .selection import SelectionResult, select_family

logger = logging.getLogger(__name__)


@dataclass
class FamilyReport:
    """Fit and GoF outcome for one requested family."""
    fit: FitOutcome
    gof: Optional[GoFResult] = None
    gof_error: Optional[str] = None

    @property
    def family(self) -> CopulaFamily:
        return self.fit.family

    def to_record(self) -> Dict[str, Any]:
        """Flat per-family output record."""
        fit = self.fit
        record: Dict[str, Any] = {
            "family": fit.family.value,
            "parameters": {},
            "loglik": None,
            "aic": None,
            "bic": None,
            "tau": None,
            "tail_dependence_lower": None,
            "tail_dependence_upper": None,
            "gof_statistic": None,
            "gof_p_value": None,
            "gof_method": None,
            "fit_success": fit.fit_success,
            "error_message": None,
            "note": None,
            "gof_warning": None,
        }
        if not fit.fit_success:
            record["error_message"] = fit.error_message
            return record

        record.update({
            "parameters": fit.param_dict,
            "loglik": fit.loglik,
            "aic": fit.aic,
            "bic": fit.bic,
            "tau": fit.kendall_tau,
            "tail_dependence_lower": fit.tail_lower,
            "tail_dependence_upper": fit.tail_upper,
            "note": fit.note,
        })
        if self.gof is not None:
            record.update({
                "gof_statistic": self.gof.statistic,
                "gof_p_value": self.gof.p_value,
                "gof_method": self.gof.method,
                "gof_warning": self.gof.warning,
            })
        elif self.gof_error is not None:
            record["error_message"] = self.gof_error
        return record


@dataclass
class AnalysisResults:
    """Container for one condition's analysis"""
    n_obs: int
    ties: Dict[str, Any]
    dependence: Dict[str, float]
    tail_concentration: Dict[str, Optional[float]]
    reports: List[FamilyReport]
    selection: SelectionResult
    best_family: CopulaFamily
    settings: Dict[str, Any] = field(default_factory=dict)

    def report(self, family) -> FamilyReport:
        fam = CopulaFamily.parse(family)
        for rep in self.reports:
            if rep.family is fam:
                return rep
        raise KeyError(f"family '{fam.value}' was not requested")

    def records(self) -> List[Dict[str, Any]]:
        return [rep.to_record() for rep in self.reports]


def split_workers(workers: int, family_workers: int) -> tuple:
    """
    Split a worker budget between the family level (outer) and the replicate
    level (inner) so that outer * inner stays close to `workers`.
    """
    total = cpu_count() if workers == -1 else max(1, int(workers))
    outer = max(1, min(int(family_workers), total))
    inner = max(1, total // outer)
    return outer, inner


class CopulaSelectionAnalyzer:
    """
    Select and test bivariate copula families for paired scores.

    Features:
    - Rank-based pseudo-observations with ties kept
    - Bounded maximum-likelihood fits, AIC/BIC ranking with parsimony tie-break
    - Parametric-bootstrap GoF p-values with per-replicate random substreams
    - Failures captured per family; the condition continues
    """

    def __init__(
        self,
        families: Optional[Sequence] = None,
        n_bootstrap: int = 1000,
        statistic: str = "kendall_cvm",
        workers: int = 1,
        family_workers: int = 1,
        seed: Optional[int] = None,
        min_sample_size: int = 100,
        max_drop_rate: float = 0.10,
        timeout: Optional[float] = None,
        criterion: str = "aic",
        tie_tolerance: float = 1e-6,
        kendall_reference_size: int = DEFAULT_REFERENCE_SIZE,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize analyzer.

        Args:
            families: Families to fit, in report order (default family set when None)
            n_bootstrap: Bootstrap replicates per family; 0 skips GoF
            statistic: GoF statistic, 'kendall_cvm' or 'rosenblatt_cvm'
            workers: Total worker budget (-1 for all cores)
            family_workers: Families tested concurrently (outer level)
            seed: Root seed for the bootstrap; None draws fresh entropy per analysis
            min_sample_size: Smallest n analyzed
            max_drop_rate: Dropped-replicate fraction that triggers a warning
            timeout: Per-family bootstrap timeout in seconds
            criterion: Selection criterion, 'aic' or 'bic'
            tie_tolerance: Criterion gap under which the simpler family wins
            kendall_reference_size: Minimum reference points behind the model Kendall distribution
            cancel_event: Set from another thread to cancel running bootstraps
        """
        self.families = parse_families(families)
        if n_bootstrap < 0:
            raise ValueError(f"n_bootstrap must be >= 0, got {n_bootstrap}")
        self.n_bootstrap = int(n_bootstrap)
        self.statistic = validate_statistic(statistic)
        self.workers = workers
        self.family_workers = family_workers
        self.seed = seed
        self.min_sample_size = int(min_sample_size)
        self.max_drop_rate = max_drop_rate
        self.timeout = timeout
        self.criterion = criterion
        self.tie_tolerance = tie_tolerance
        self.kendall_reference_size = int(kendall_reference_size)
        self.cancel_event = cancel_event

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], **kwargs) -> "CopulaSelectionAnalyzer":
        """Build an analyzer from a resolved configuration dict."""
        gof = cfg.get("gof", {})
        selection = cfg.get("selection", {})
        parallel = cfg.get("parallel", {})
        params = dict(
            families=cfg.get("families"),
            n_bootstrap=gof.get("n_bootstrap", 1000),
            statistic=gof.get("statistic", "kendall_cvm"),
            workers=parallel.get("workers", 1),
            family_workers=parallel.get("family_workers", 1),
            seed=cfg.get("seed"),
            min_sample_size=cfg.get("min_sample_size", 100),
            max_drop_rate=gof.get("max_drop_rate", 0.10),
            timeout=gof.get("timeout"),
            criterion=selection.get("criterion", "aic"),
            tie_tolerance=selection.get("tie_tolerance", 1e-6),
            kendall_reference_size=gof.get("kendall_reference_size", DEFAULT_REFERENCE_SIZE),
        )
        params.update(kwargs)
        return cls(**params)

    def settings(self) -> Dict[str, Any]:
        return {
            "families": [f.value for f in self.families],
            "n_bootstrap": self.n_bootstrap,
            "statistic": self.statistic,
            "workers": self.workers,
            "family_workers": self.family_workers,
            "seed": self.seed,
            "min_sample_size": self.min_sample_size,
            "max_drop_rate": self.max_drop_rate,
            "timeout": self.timeout,
            "criterion": self.criterion,
            "tie_tolerance": self.tie_tolerance,
            "kendall_reference_size": self.kendall_reference_size,
        }

    def fit_all(self, u: np.ndarray, v: np.ndarray) -> List[FitOutcome]:
        """Fit every requested family; request order is kept."""
        outer, _ = split_workers(self.workers, self.family_workers)
        if outer == 1:
            return fit_families(u, v, self.families)
        fits = Parallel(n_jobs=outer)(delayed(fit_copula)(fam, u, v) for fam in self.families)
        for fit in fits:
            if not fit.fit_success:
                logger.warning("Family %s failed to fit: %s", fit.family.value, fit.error_message)
        return list(fits)

    def _test_family(self, fit: FitOutcome, u, v, entropy: int, n_jobs: int) -> FamilyReport:
        if not fit.fit_success:
            return FamilyReport(fit=fit)
        try:
            gof = bootstrap_gof(
                fit, u, v,
                n_bootstrap=self.n_bootstrap,
                statistic=self.statistic,
                seed=entropy,
                n_jobs=n_jobs,
                max_drop_rate=self.max_drop_rate,
                timeout=self.timeout,
                cancel_event=self.cancel_event,
                reference_size=self.kendall_reference_size,
            )
        except BootstrapCancelled as e:
            logger.warning("GoF for %s cancelled: %s", fit.family.value, e)
            return FamilyReport(fit=fit, gof_error=str(e))
        except (ValueError, ArithmeticError) as e:
            logger.warning("GoF for %s failed: %s", fit.family.value, e)
            return FamilyReport(fit=fit, gof_error=f"GoF failed: {e}")
        return FamilyReport(fit=fit, gof=gof)

    def test_all(self, fits: Sequence[FitOutcome], u, v, entropy: int) -> List[FamilyReport]:
        """Run the bootstrap GoF for each successful fit."""
        outer, inner = split_workers(self.workers, self.family_workers)
        if outer == 1:
            return [self._test_family(fit, u, v, entropy, inner) for fit in fits]
        # Threads at the family level; replicate workers do the heavy lifting.
        reports = Parallel(n_jobs=outer, prefer="threads")(
            delayed(self._test_family)(fit, u, v, entropy, inner) for fit in fits
        )
        return list(reports)

    def analyze(self, x, y) -> AnalysisResults:
        """
        Complete analysis pipeline for one condition.

        Args:
            x: Prior scores
            y: Current scores (same length)

        Returns:
            AnalysisResults with one report per requested family

        Raises:
            InsufficientSampleSizeError: If n < min_sample_size
            AllFamiliesFailedError: If no family could be fit
        """
        n = int(np.asarray(x).size)
        if n < self.min_sample_size:
            raise InsufficientSampleSizeError(n, self.min_sample_size)

        u, v = pseudo_observations(x, y)
        ties = tie_summary(x, y)
        logger.info("Analyzing n=%d pairs (%s scale), families=%s",
                    n, ties["scale_type"], [f.value for f in self.families])

        fits = self.fit_all(u, v)
        selection = select_family(fits, criterion=self.criterion, tie_tolerance=self.tie_tolerance)

        settings = self.settings()
        if self.n_bootstrap > 0:
            entropy = root_entropy(self.seed)
            settings["seed_entropy"] = entropy
            reports = self.test_all(fits, u, v, entropy)
        else:
            reports = [FamilyReport(fit=fit) for fit in fits]

        return AnalysisResults(
            n_obs=n,
            ties=ties,
            dependence=dependence_measures(u, v),
            tail_concentration=tail_concentration(u, v),
            reports=reports,
            selection=selection,
            best_family=selection.best_family,
            settings=settings,
        )


def _fmt(value, spec: str = ".4f") -> str:
    if value is None:
        return "NA"
    if isinstance(value, float) and not np.isfinite(value):
        return "inf" if value > 0 else "NA"
    return format(value, spec)


def format_results(results: AnalysisResults) -> str:
    """
    Format results for display.

    Args:
        results: AnalysisResults dataclass

    Returns:
        Formatted string for printing
    """
    output = []
    output.append("=" * 78)
    output.append("COPULA SELECTION & GOODNESS-OF-FIT RESULTS")
    output.append("=" * 78)

    output.append(f"\nPairs: {results.n_obs}  ({results.ties['scale_type']}; "
                  f"unique x={results.ties['n_unique_x']}, unique y={results.ties['n_unique_y']})")
    output.append(f"Best family ({results.selection.criterion.upper()}): {results.best_family.value}")

    output.append("\nEmpirical dependence:")
    for key, val in results.dependence.items():
        output.append(f"  {key:15s}: {val:.4f}")

    output.append("\nFamilies:")
    output.append(f"  {'family':12s} {'params':26s} {'AIC':>11s} {'tau':>7s} "
                  f"{'lamL':>6s} {'lamU':>6s} {'stat':>9s} {'p':>7s}")
    for rep in results.reports:
        rec = rep.to_record()
        if not rec["fit_success"]:
            output.append(f"  {rec['family']:12s} FAILED: {rec['error_message']}")
            continue
        params = ", ".join(f"{k}={v:.3f}" for k, v in rec["parameters"].items()) or "-"
        output.append(
            f"  {rec['family']:12s} {params:26s} {_fmt(rec['aic'], '.2f'):>11s} "
            f"{_fmt(rec['tau'], '.3f'):>7s} {_fmt(rec['tail_dependence_lower'], '.3f'):>6s} "
            f"{_fmt(rec['tail_dependence_upper'], '.3f'):>6s} {_fmt(rec['gof_statistic']):>9s} "
            f"{_fmt(rec['gof_p_value'], '.3f'):>7s}"
        )
        if rec["note"]:
            output.append(f"  {'':12s} note: {rec['note']}")
        if rec["gof_warning"]:
            output.append(f"  {'':12s} warning: {rec['gof_warning']}")
        if rep.gof_error:
            output.append(f"  {'':12s} GoF error: {rep.gof_error}")

    output.append("\nRanking:")
    output.append(results.selection.ranking[["family", "n_params", "aic", "delta_aic", "aic_weight"]]
                  .to_string(index=False))
    return "\n".join(output)

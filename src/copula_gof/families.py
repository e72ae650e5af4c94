"""
Bivariate copula families behind one interface.

Every family in the closed `CopulaFamily` set is served by a `BivariateCopula`
object exposing the same operations: fit, log_density / loglik,
conditional_cdf (the h-function used by the Rosenblatt transform), sample,
kendall_tau, tail_dependence and kendall_distribution. The comonotonic copula
implements the same interface with degenerate behaviour (no parameters, no
likelihood) so calling code never branches on family names.

Parameterizations:
    gaussian        rho in (-1, 1)
    t               rho in (-1, 1), df > 0 (free)
    t_df5/10/15     rho in (-1, 1), df fixed at 5/10/15
    clayton         theta > 0        (lower tail dependence)
    gumbel          theta >= 1       (upper tail dependence)
    frank           theta != 0       (no tail dependence)
    comonotonic     none             (upper Frechet-Hoeffding bound)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import integrate
from scipy.optimize import minimize_scalar
from scipy.special import gammaln, ndtr, ndtri
from scipy.stats import kendalltau, qmc
from scipy.stats import t as student_t

from .errors import FitError
from .pseudo_obs import kendall_transform

logger = logging.getLogger(__name__)

Params = Tuple[float, ...]

RHO_MAX = 0.9999
DF_BOUNDS = (1.0, 1000.0)
CLAYTON_BOUNDS = (1e-6, 60.0)
GUMBEL_BOUNDS = (1.0, 60.0)
FRANK_BOUNDS = (-80.0, 80.0)

DEFAULT_REFERENCE_SIZE = 2048
_REFERENCE_SEED = 20240611
_BOUNDARY_FRAC = 1e-4
_PENALTY = 1e12
_UNIT_EPS = 1e-12
_BISECT_STEPS = 60


class CopulaFamily(str, Enum):
    """Closed set of supported copula families."""

    GAUSSIAN = "gaussian"
    T = "t"
    T_DF5 = "t_df5"
    T_DF10 = "t_df10"
    T_DF15 = "t_df15"
    CLAYTON = "clayton"
    GUMBEL = "gumbel"
    FRANK = "frank"
    COMONOTONIC = "comonotonic"

    @classmethod
    def parse(cls, value) -> "CopulaFamily":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        try:
            return cls(key)
        except ValueError:
            available = ", ".join(f.value for f in cls)
            raise ValueError(f"Unknown copula family '{value}'. Available: {available}") from None

    @property
    def index(self) -> int:
        """Stable position of the family, used to derive random substreams."""
        return list(type(self)).index(self)


DEFAULT_FAMILIES: Tuple[CopulaFamily, ...] = (
    CopulaFamily.GAUSSIAN,
    CopulaFamily.T,
    CopulaFamily.CLAYTON,
    CopulaFamily.GUMBEL,
    CopulaFamily.FRANK,
    CopulaFamily.COMONOTONIC,
)


@dataclass(frozen=True)
class FitEstimate:
    """Raw output of a family's estimator."""

    params: Params
    loglik: Optional[float]
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Shared numerics
# ---------------------------------------------------------------------------

def _clip_unit(x: np.ndarray) -> np.ndarray:
    return np.clip(x, _UNIT_EPS, 1.0 - _UNIT_EPS)


def _near_bound(x: float, bounds: Tuple[float, float]) -> bool:
    lo, hi = bounds
    tol = _BOUNDARY_FRAC * (hi - lo)
    return x <= lo + tol or x >= hi - tol


def _safe_nll(loglik_fn: Callable[[float], float]) -> Callable[[float], float]:
    def nll(x: float) -> float:
        with np.errstate(all="ignore"):
            ll = loglik_fn(x)
        if not np.isfinite(ll):
            return _PENALTY
        return -ll

    return nll


def _bounded_mle(
    loglik_fn: Callable[[float], float],
    bounds: Tuple[float, float],
    label: str,
) -> Tuple[float, float]:
    """Maximize a one-dimensional log-likelihood on a bounded interval."""
    res = minimize_scalar(
        _safe_nll(loglik_fn),
        bounds=bounds,
        method="bounded",
        options={"xatol": 1e-7, "maxiter": 500},
    )
    if not res.success:
        raise FitError(f"{label}: optimizer did not converge ({res.message})")
    x = float(res.x)
    if not np.isfinite(res.fun) or res.fun >= _PENALTY:
        raise FitError(f"{label}: log-likelihood is not finite at the optimum")
    if _near_bound(x, bounds):
        raise FitError(f"{label}: estimate {x:.6g} is at the search boundary {bounds}")
    return x, -float(res.fun)


def _empirical_tau(u: np.ndarray, v: np.ndarray) -> float:
    tau, _ = kendalltau(u, v)
    return float(tau)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class BivariateCopula(ABC):
    """Uniform interface implemented by every family."""

    family: CopulaFamily
    param_names: Tuple[str, ...] = ()

    @property
    def n_free_params(self) -> int:
        return len(self.param_names)

    @property
    def has_likelihood(self) -> bool:
        return True

    @abstractmethod
    def fit(self, u: np.ndarray, v: np.ndarray) -> FitEstimate:
        """Estimate parameters on pseudo-observations; raise FitError on failure."""

    @abstractmethod
    def log_density(self, params: Params, u: np.ndarray, v: np.ndarray) -> np.ndarray:
        ...

    def loglik(self, params: Params, u: np.ndarray, v: np.ndarray) -> Optional[float]:
        with np.errstate(all="ignore"):
            return float(np.sum(self.log_density(params, u, v)))

    @abstractmethod
    def conditional_cdf(self, params: Params, u: np.ndarray, v: np.ndarray) -> np.ndarray:
        """h(v | u) = dC(u, v) / du."""

    @abstractmethod
    def sample(self, params: Params, n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
        ...

    @abstractmethod
    def kendall_tau(self, params: Params) -> float:
        ...

    @abstractmethod
    def tail_dependence(self, params: Params) -> Tuple[Optional[float], Optional[float]]:
        """(lower, upper) tail-dependence coefficients; None when not computable."""

    @abstractmethod
    def kendall_distribution(
        self, params: Params, t: np.ndarray, reference_size: int = DEFAULT_REFERENCE_SIZE
    ) -> np.ndarray:
        """K(t) = P(C(U, V) <= t)."""

    @abstractmethod
    def conditional_ppf(self, params: Params, u: np.ndarray, w: np.ndarray) -> np.ndarray:
        """
        Inverse of h(. | u) in its second argument.

        Maps uniform w to v with h(v | u) = w, which turns (u, w) uniforms into
        a sample of the copula. Every family implements it; deterministic
        reference samples are built from it.
        """


# ---------------------------------------------------------------------------
# Deterministic reference samples
# ---------------------------------------------------------------------------

@lru_cache(maxsize=32)
def _reference_points(family_value: str, params: Params, size: int) -> Tuple[np.ndarray, np.ndarray]:
    model = get_copula(CopulaFamily(family_value))
    m = int(np.ceil(np.log2(max(size, 2))))
    points = _clip_unit(qmc.Sobol(d=2, scramble=True, seed=_REFERENCE_SEED).random_base2(m))[:size]
    u = points[:, 0]
    with np.errstate(all="ignore"):
        v = _clip_unit(model.conditional_ppf(params, u, points[:, 1]))
    u.setflags(write=False)
    v.setflags(write=False)
    return u, v


def reference_sample(family, params: Sequence[float], size: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Deterministic sample of `size` points from a copula.

    Scrambled Sobol points (fixed seed) pushed through the conditional
    inverse, so the same (family, params, size) always gives the same
    points. The returned arrays are cached and read-only.
    """
    fam = CopulaFamily.parse(family)
    return _reference_points(fam.value, tuple(float(p) for p in params), int(size))


# ---------------------------------------------------------------------------
# Elliptical families
# ---------------------------------------------------------------------------

@lru_cache(maxsize=64)
def _elliptical_reference(family_value: str, params: Params, size: int) -> np.ndarray:
    """Sorted Kendall transform of a scrambled-Sobol sample from the copula."""
    m = int(np.ceil(np.log2(max(size, 2))))
    u, v = _reference_points(family_value, params, 2 ** m)
    return np.sort(kendall_transform(u, v))


def _reference_kendall_distribution(
    family: CopulaFamily, params: Params, t: np.ndarray, reference_size: int
) -> np.ndarray:
    ref = _elliptical_reference(family.value, tuple(float(p) for p in params), int(reference_size))
    return np.searchsorted(ref, np.asarray(t, dtype=float), side="right") / ref.size


class GaussianCopula(BivariateCopula):
    family = CopulaFamily.GAUSSIAN
    param_names = ("rho",)

    def fit(self, u, v) -> FitEstimate:
        x = ndtri(u)
        y = ndtri(v)

        def loglik(rho: float) -> float:
            return float(np.sum(_gaussian_log_density_xy(x, y, rho)))

        rho, ll = _bounded_mle(loglik, (-RHO_MAX, RHO_MAX), "gaussian")
        return FitEstimate((rho,), ll)

    def log_density(self, params, u, v):
        return _gaussian_log_density_xy(ndtri(u), ndtri(v), params[0])

    def conditional_cdf(self, params, u, v):
        rho = params[0]
        return ndtr((ndtri(v) - rho * ndtri(u)) / np.sqrt(1.0 - rho * rho))

    def conditional_ppf(self, params, u, w):
        rho = params[0]
        return ndtr(rho * ndtri(u) + np.sqrt(1.0 - rho * rho) * ndtri(w))

    def sample(self, params, n, rng):
        rho = params[0]
        z1 = rng.standard_normal(n)
        z2 = rho * z1 + np.sqrt(max(0.0, 1.0 - rho * rho)) * rng.standard_normal(n)
        return ndtr(z1), ndtr(z2)

    def kendall_tau(self, params):
        return float(2.0 / np.pi * np.arcsin(params[0]))

    def tail_dependence(self, params):
        rho = params[0]
        if not np.isfinite(rho):
            return None, None
        if rho >= 1.0:
            return 1.0, 1.0
        return 0.0, 0.0

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        return _reference_kendall_distribution(self.family, params, t, reference_size)


def _gaussian_log_density_xy(x: np.ndarray, y: np.ndarray, rho: float) -> np.ndarray:
    one_m = 1.0 - rho * rho
    return -0.5 * np.log(one_m) - (rho * rho * (x * x + y * y) - 2.0 * rho * x * y) / (2.0 * one_m)


def _t_log_density_xy(x: np.ndarray, y: np.ndarray, rho: float, df: float) -> np.ndarray:
    one_m = 1.0 - rho * rho
    const = gammaln((df + 2.0) / 2.0) + gammaln(df / 2.0) - 2.0 * gammaln((df + 1.0) / 2.0)
    quad = (x * x + y * y - 2.0 * rho * x * y) / (df * one_m)
    return (
        const
        - 0.5 * np.log(one_m)
        - (df + 2.0) / 2.0 * np.log1p(quad)
        + (df + 1.0) / 2.0 * (np.log1p(x * x / df) + np.log1p(y * y / df))
    )


def t_tail_dependence(rho: float, df: float) -> Optional[float]:
    """
    Symmetric tail dependence of the t copula,
    lambda = 2 * t_{df+1}(-sqrt((df + 1)(1 - rho) / (1 + rho))).

    The closed form turns into 0/0 or inf*0 at rho = +-1 and degenerates as
    df -> inf, so those limits are returned explicitly. None when the value
    still cannot be made finite.
    """
    if rho is None or df is None or np.isnan(rho) or np.isnan(df) or df <= 0:
        return None
    if rho >= 1.0 - 1e-12:
        return 1.0
    if rho <= -1.0 + 1e-12:
        return 0.0
    if np.isinf(df):
        return 0.0
    with np.errstate(all="ignore"):
        arg = -np.sqrt((df + 1.0) * (1.0 - rho) / (1.0 + rho))
        lam = 2.0 * student_t.cdf(arg, df + 1.0)
    if not np.isfinite(lam):
        return None
    return float(min(max(lam, 0.0), 1.0))


class StudentTCopula(BivariateCopula):
    """
    Student t copula.

    With a free df the fit is maximum pseudo-likelihood in the itau-mpl form:
    rho = sin(pi * tau / 2) from the empirical Kendall's tau, then df maximizes
    the pseudo-likelihood with rho held. Joint (rho, df) optimization is flat
    and unstable in df at assessment-sized samples. With a fixed df only rho
    is estimated, by bounded maximum likelihood.
    """

    param_names = ("rho", "df")

    def __init__(self, family: CopulaFamily, fixed_df: Optional[float] = None):
        self.family = family
        self.fixed_df = fixed_df

    @property
    def n_free_params(self) -> int:
        return 1 if self.fixed_df is not None else 2

    def fit(self, u, v) -> FitEstimate:
        label = self.family.value
        if self.fixed_df is not None:
            df = float(self.fixed_df)
            x = student_t.ppf(u, df)
            y = student_t.ppf(v, df)

            def loglik_rho(rho: float) -> float:
                return float(np.sum(_t_log_density_xy(x, y, rho, df)))

            rho, ll = _bounded_mle(loglik_rho, (-RHO_MAX, RHO_MAX), label)
            return FitEstimate((rho, df), ll)

        tau = _empirical_tau(u, v)
        if not np.isfinite(tau):
            raise FitError(f"{label}: Kendall's tau is undefined for this sample")
        rho = float(np.sin(np.pi * tau / 2.0))
        if abs(rho) >= RHO_MAX:
            raise FitError(f"{label}: rho={rho:.6g} from Kendall's tau is at the boundary")

        def loglik_df(log_df: float) -> float:
            df = float(np.exp(log_df))
            x = student_t.ppf(u, df)
            y = student_t.ppf(v, df)
            return float(np.sum(_t_log_density_xy(x, y, rho, df)))

        log_bounds = (float(np.log(DF_BOUNDS[0])), float(np.log(DF_BOUNDS[1])))
        res = minimize_scalar(
            _safe_nll(loglik_df),
            bounds=log_bounds,
            method="bounded",
            options={"xatol": 1e-6, "maxiter": 500},
        )
        if not res.success:
            raise FitError(f"{label}: df optimizer did not converge ({res.message})")
        if not np.isfinite(res.fun) or res.fun >= _PENALTY:
            raise FitError(f"{label}: pseudo-likelihood is not finite at the optimum")
        log_df = float(res.x)
        tol = _BOUNDARY_FRAC * (log_bounds[1] - log_bounds[0])
        if log_df <= log_bounds[0] + tol:
            raise FitError(f"{label}: df estimate is at the lower search boundary {DF_BOUNDS[0]}")
        note = None
        if log_df >= log_bounds[1] - tol:
            note = f"df reached the upper search bound {DF_BOUNDS[1]:g}; the fit is effectively gaussian"
        return FitEstimate((rho, float(np.exp(log_df))), -float(res.fun), note)

    def log_density(self, params, u, v):
        rho, df = params
        return _t_log_density_xy(student_t.ppf(u, df), student_t.ppf(v, df), rho, df)

    def conditional_cdf(self, params, u, v):
        rho, df = params
        x = student_t.ppf(u, df)
        y = student_t.ppf(v, df)
        scale = np.sqrt((df + x * x) * (1.0 - rho * rho) / (df + 1.0))
        return student_t.cdf((y - rho * x) / scale, df + 1.0)

    def conditional_ppf(self, params, u, w):
        rho, df = params
        x = student_t.ppf(u, df)
        scale = np.sqrt((df + x * x) * (1.0 - rho * rho) / (df + 1.0))
        return student_t.cdf(rho * x + scale * student_t.ppf(w, df + 1.0), df)

    def sample(self, params, n, rng):
        rho, df = params
        z1 = rng.standard_normal(n)
        z2 = rho * z1 + np.sqrt(max(0.0, 1.0 - rho * rho)) * rng.standard_normal(n)
        s = np.sqrt(rng.chisquare(df, size=n) / df)
        return student_t.cdf(z1 / s, df), student_t.cdf(z2 / s, df)

    def kendall_tau(self, params):
        return float(2.0 / np.pi * np.arcsin(params[0]))

    def tail_dependence(self, params):
        lam = t_tail_dependence(params[0], params[1])
        return lam, lam

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        return _reference_kendall_distribution(self.family, params, t, reference_size)


# ---------------------------------------------------------------------------
# Archimedean families
# ---------------------------------------------------------------------------

class ClaytonCopula(BivariateCopula):
    family = CopulaFamily.CLAYTON
    param_names = ("theta",)

    def fit(self, u, v) -> FitEstimate:
        lu = np.log(u)
        lv = np.log(v)

        def loglik(theta: float) -> float:
            return float(np.sum(_clayton_log_density(lu, lv, theta)))

        theta, ll = _bounded_mle(loglik, CLAYTON_BOUNDS, "clayton")
        return FitEstimate((theta,), ll)

    def log_density(self, params, u, v):
        return _clayton_log_density(np.log(u), np.log(v), params[0])

    def conditional_cdf(self, params, u, v):
        theta = params[0]
        lu = np.log(u)
        s = np.logaddexp(-theta * lu, -theta * np.log(v))
        log_sum = s + np.log1p(-np.exp(-s))
        return np.exp((-theta - 1.0) * lu + (-1.0 / theta - 1.0) * log_sum)

    def conditional_ppf(self, params, u, w):
        theta = params[0]
        a = -theta * np.log(u) + np.log(np.expm1(-theta / (1.0 + theta) * np.log(w)))
        return np.exp(-np.logaddexp(0.0, a) / theta)

    def sample(self, params, n, rng):
        u = _clip_unit(rng.random(n))
        w = _clip_unit(rng.random(n))
        with np.errstate(all="ignore"):
            v = _clip_unit(self.conditional_ppf(params, u, w))
        return u, v

    def kendall_tau(self, params):
        theta = params[0]
        return float(theta / (theta + 2.0))

    def tail_dependence(self, params):
        theta = params[0]
        if not np.isfinite(theta) or theta <= 0:
            return None, 0.0
        return float(2.0 ** (-1.0 / theta)), 0.0

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        theta = params[0]
        t_arr = np.asarray(t, dtype=float)
        safe = np.clip(t_arr, _UNIT_EPS, 1.0)
        k = safe + safe * (1.0 - safe ** theta) / theta
        return np.where(t_arr <= 0.0, 0.0, np.clip(k, 0.0, 1.0))


def _clayton_log_density(lu: np.ndarray, lv: np.ndarray, theta: float) -> np.ndarray:
    s = np.logaddexp(-theta * lu, -theta * lv)
    log_sum = s + np.log1p(-np.exp(-s))
    return np.log1p(theta) - (1.0 + theta) * (lu + lv) - (2.0 + 1.0 / theta) * log_sum


class GumbelCopula(BivariateCopula):
    family = CopulaFamily.GUMBEL
    param_names = ("theta",)

    def fit(self, u, v) -> FitEstimate:
        lu = np.log(u)
        lv = np.log(v)

        def loglik(theta: float) -> float:
            return float(np.sum(_gumbel_log_density(lu, lv, theta)))

        theta, ll = _bounded_mle(loglik, GUMBEL_BOUNDS, "gumbel")
        return FitEstimate((theta,), ll)

    def log_density(self, params, u, v):
        return _gumbel_log_density(np.log(u), np.log(v), params[0])

    def conditional_cdf(self, params, u, v):
        theta = params[0]
        lu = np.log(u)
        lx = np.log(-lu)
        log_a = np.logaddexp(theta * lx, theta * np.log(-np.log(v)))
        return np.exp(-np.exp(log_a / theta) - lu + (theta - 1.0) * lx + (1.0 / theta - 1.0) * log_a)

    def conditional_ppf(self, params, u, w):
        # No closed form; h(. | u) is increasing in v, so bisect.
        u_arr, w_arr = np.broadcast_arrays(np.asarray(u, dtype=float), np.asarray(w, dtype=float))
        lo = np.zeros(u_arr.shape)
        hi = np.ones(u_arr.shape)
        for _ in range(_BISECT_STEPS):
            mid = 0.5 * (lo + hi)
            with np.errstate(all="ignore"):
                below = self.conditional_cdf(params, u_arr, _clip_unit(mid)) < w_arr
            lo = np.where(below, mid, lo)
            hi = np.where(below, hi, mid)
        return 0.5 * (lo + hi)

    def sample(self, params, n, rng):
        # Marshall-Olkin: positive stable frailty (Kanter's representation).
        alpha = 1.0 / params[0]
        angle = rng.uniform(0.0, np.pi, size=n)
        e0 = rng.exponential(size=n)
        with np.errstate(all="ignore"):
            frailty = (
                np.sin(alpha * angle) / np.sin(angle) ** (1.0 / alpha)
                * (np.sin((1.0 - alpha) * angle) / e0) ** ((1.0 - alpha) / alpha)
            )
            u = np.exp(-(rng.exponential(size=n) / frailty) ** alpha)
            v = np.exp(-(rng.exponential(size=n) / frailty) ** alpha)
        return _clip_unit(np.nan_to_num(u, nan=0.5)), _clip_unit(np.nan_to_num(v, nan=0.5))

    def kendall_tau(self, params):
        return float(1.0 - 1.0 / params[0])

    def tail_dependence(self, params):
        theta = params[0]
        if not np.isfinite(theta) or theta < 1.0:
            return 0.0, None
        return 0.0, float(2.0 - 2.0 ** (1.0 / theta))

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        theta = params[0]
        t_arr = np.asarray(t, dtype=float)
        safe = np.clip(t_arr, _UNIT_EPS, 1.0)
        k = safe - safe * np.log(safe) / theta
        return np.where(t_arr <= 0.0, 0.0, np.clip(k, 0.0, 1.0))


def _gumbel_log_density(lu: np.ndarray, lv: np.ndarray, theta: float) -> np.ndarray:
    lx = np.log(-lu)
    ly = np.log(-lv)
    log_a = np.logaddexp(theta * lx, theta * ly)
    m = np.exp(log_a / theta)
    return (
        -m
        + (theta - 1.0) * (lx + ly)
        - lu
        - lv
        + (1.0 / theta - 2.0) * log_a
        + np.log(m + theta - 1.0)
    )


def _debye1(theta: float) -> float:
    def integrand(s: float) -> float:
        return 1.0 if s == 0.0 else s / np.expm1(s)

    value, _ = integrate.quad(integrand, 0.0, theta)
    return value / theta


class FrankCopula(BivariateCopula):
    family = CopulaFamily.FRANK
    param_names = ("theta",)

    def fit(self, u, v) -> FitEstimate:
        def loglik(theta: float) -> float:
            return float(np.sum(_frank_log_density(u, v, theta)))

        theta, ll = _bounded_mle(loglik, FRANK_BOUNDS, "frank")
        return FitEstimate((theta,), ll)

    def log_density(self, params, u, v):
        return _frank_log_density(u, v, params[0])

    def conditional_cdf(self, params, u, v):
        theta = params[0]
        if abs(theta) < 1e-8:
            return np.asarray(v, dtype=float)
        num = np.exp(-theta * u) * np.expm1(-theta * v)
        den = np.expm1(-theta) + np.expm1(-theta * u) * np.expm1(-theta * v)
        return num / den

    def conditional_ppf(self, params, u, w):
        theta = params[0]
        if abs(theta) < 1e-8:
            return np.asarray(w, dtype=float)
        return -np.log1p(w * np.expm1(-theta) / (w + (1.0 - w) * np.exp(-theta * u))) / theta

    def sample(self, params, n, rng):
        u = _clip_unit(rng.random(n))
        w = _clip_unit(rng.random(n))
        with np.errstate(all="ignore"):
            v = _clip_unit(self.conditional_ppf(params, u, w))
        return u, v

    def kendall_tau(self, params):
        theta = params[0]
        if abs(theta) < 1e-8:
            return 0.0
        return float(1.0 - 4.0 / theta * (1.0 - _debye1(theta)))

    def tail_dependence(self, params):
        return 0.0, 0.0

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        theta = params[0]
        t_arr = np.asarray(t, dtype=float)
        safe = np.clip(t_arr, _UNIT_EPS, 1.0)
        if abs(theta) < 1e-8:
            k = safe - safe * np.log(safe)
        else:
            with np.errstate(all="ignore"):
                ratio = np.expm1(-theta * safe) / np.expm1(-theta)
                k = safe - np.log(ratio) * np.expm1(theta * safe) / theta
        return np.where(t_arr <= 0.0, 0.0, np.clip(k, 0.0, 1.0))


def _frank_log_density(u: np.ndarray, v: np.ndarray, theta: float) -> np.ndarray:
    if abs(theta) < 1e-8:
        return np.zeros_like(np.asarray(u, dtype=float))
    den = -np.expm1(-theta) - np.expm1(-theta * u) * np.expm1(-theta * v)
    return np.log(theta * -np.expm1(-theta)) - theta * (u + v) - 2.0 * np.log(np.abs(den))


# ---------------------------------------------------------------------------
# Comonotonic (upper Frechet-Hoeffding bound)
# ---------------------------------------------------------------------------

class ComonotonicCopula(BivariateCopula):
    """
    M(u, v) = min(u, v). No free parameters and no density, so there is
    nothing to estimate and no likelihood; tau and both tail coefficients
    are exactly 1.
    """

    family = CopulaFamily.COMONOTONIC
    param_names = ()

    @property
    def has_likelihood(self) -> bool:
        return False

    def fit(self, u, v) -> FitEstimate:
        return FitEstimate((), None)

    def log_density(self, params, u, v):
        raise NotImplementedError("the comonotonic copula has no density")

    def loglik(self, params, u, v) -> Optional[float]:
        return None

    def conditional_cdf(self, params, u, v):
        return (np.asarray(v) >= np.asarray(u)).astype(float)

    def conditional_ppf(self, params, u, w):
        # All mass sits on the diagonal: v = u whatever w is.
        u_arr, _ = np.broadcast_arrays(np.asarray(u, dtype=float), np.asarray(w, dtype=float))
        return u_arr.copy()

    def sample(self, params, n, rng):
        u = _clip_unit(rng.random(n))
        return u, u.copy()

    def kendall_tau(self, params):
        return 1.0

    def tail_dependence(self, params):
        return 1.0, 1.0

    def kendall_distribution(self, params, t, reference_size=DEFAULT_REFERENCE_SIZE):
        return np.clip(np.asarray(t, dtype=float), 0.0, 1.0)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[CopulaFamily, BivariateCopula] = {
    CopulaFamily.GAUSSIAN: GaussianCopula(),
    CopulaFamily.T: StudentTCopula(CopulaFamily.T),
    CopulaFamily.T_DF5: StudentTCopula(CopulaFamily.T_DF5, fixed_df=5.0),
    CopulaFamily.T_DF10: StudentTCopula(CopulaFamily.T_DF10, fixed_df=10.0),
    CopulaFamily.T_DF15: StudentTCopula(CopulaFamily.T_DF15, fixed_df=15.0),
    CopulaFamily.CLAYTON: ClaytonCopula(),
    CopulaFamily.GUMBEL: GumbelCopula(),
    CopulaFamily.FRANK: FrankCopula(),
    CopulaFamily.COMONOTONIC: ComonotonicCopula(),
}


def get_copula(family) -> BivariateCopula:
    """Return the interface object for a family tag or name."""
    return _REGISTRY[CopulaFamily.parse(family)]


def parse_families(families: Optional[Sequence]) -> Tuple[CopulaFamily, ...]:
    """Normalize a family list, keeping request order and dropping duplicates."""
    if families is None:
        return DEFAULT_FAMILIES
    out = []
    for f in families:
        fam = CopulaFamily.parse(f)
        if fam not in out:
            out.append(fam)
    if not out:
        raise ValueError("at least one copula family is required")
    return tuple(out)

"""
Rank transform and empirical diagnostics for paired scores.

Pseudo-observations use average ranks for ties and the n+1 denominator:

    u_i = rank(x_i) / (n + 1),   v_i = rank(y_i) / (n + 1)

so every value lies strictly inside (0, 1). Ties are kept as they are.
Discretized score scales produce heavy ties; breaking them with random
jitter only manufactures uniqueness, so it is not offered here. The
GoF statistic and the bootstrap are responsible for staying valid under ties.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np
from scipy.stats import kendalltau, pearsonr, rankdata, spearmanr


def _as_pair(x, y) -> Tuple[np.ndarray, np.ndarray]:
    x_arr = np.asarray(x, dtype=float).ravel()
    y_arr = np.asarray(y, dtype=float).ravel()
    if x_arr.size != y_arr.size:
        raise ValueError(f"x and y must have equal length (got {x_arr.size} and {y_arr.size})")
    if x_arr.size < 2:
        raise ValueError("at least 2 score pairs are required")
    if not (np.all(np.isfinite(x_arr)) and np.all(np.isfinite(y_arr))):
        raise ValueError("scores must be finite (drop missing values before ranking)")
    return x_arr, y_arr


def pseudo_observations(x, y) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert two raw score vectors into pseudo-observations in (0, 1)^2.

    Args:
        x: Prior scores (length n >= 2, ties allowed)
        y: Current scores (same length as x)

    Returns:
        Tuple (u, v) of float arrays

    Raises:
        ValueError: If lengths differ, n < 2, or any score is not finite
    """
    x_arr, y_arr = _as_pair(x, y)
    n = x_arr.size
    u = rankdata(x_arr, method="average") / (n + 1.0)
    v = rankdata(y_arr, method="average") / (n + 1.0)
    return u, v


def tie_summary(x, y) -> Dict[str, object]:
    """
    Describe how heavily tied the two margins are.

    Returns:
        Dict with unique counts, tie fractions and a 'scale_type' label:
        'continuous' when neither margin has ties, otherwise 'discretized'.
    """
    x_arr, y_arr = _as_pair(x, y)
    n = x_arr.size
    n_unique_x = int(np.unique(x_arr).size)
    n_unique_y = int(np.unique(y_arr).size)
    has_ties = n_unique_x < n or n_unique_y < n
    return {
        "n_obs": n,
        "n_unique_x": n_unique_x,
        "n_unique_y": n_unique_y,
        "tie_fraction_x": round(1.0 - n_unique_x / n, 6),
        "tie_fraction_y": round(1.0 - n_unique_y / n, 6),
        "scale_type": "discretized" if has_ties else "continuous",
    }


def dependence_measures(u, v) -> Dict[str, float]:
    """Empirical Kendall's tau (tau-b), Spearman's rho and Pearson r."""
    u_arr = np.asarray(u, dtype=float)
    v_arr = np.asarray(v, dtype=float)
    tau, _ = kendalltau(u_arr, v_arr)
    rho, _ = spearmanr(u_arr, v_arr)
    r, _ = pearsonr(u_arr, v_arr)
    return {
        "kendall_tau": float(tau),
        "spearman_rho": float(rho),
        "pearson_r": float(r),
    }


def _exceedance_chi(u: np.ndarray, v: np.ndarray, q: float, min_joint: int = 10) -> Optional[float]:
    above_u = u > q
    joint = above_u & (v > q)
    if int(joint.sum()) < min_joint:
        return None
    return float(joint.sum() / above_u.sum())


def tail_concentration(u, v) -> Dict[str, Optional[float]]:
    """
    Joint tail rates and conditional exceedance probabilities.

    lower_q = P(U < q, V < q) for q in {0.01, 0.05, 0.10};
    upper_q = P(U > q, V > q) for q in {0.90, 0.95, 0.99};
    chi_q = P(V > q | U > q), None when fewer than 10 joint exceedances.
    """
    u_arr = np.asarray(u, dtype=float)
    v_arr = np.asarray(v, dtype=float)
    out: Dict[str, Optional[float]] = {}
    for q in (0.01, 0.05, 0.10):
        out[f"lower_{int(round(q * 100)):02d}"] = float(np.mean((u_arr < q) & (v_arr < q)))
    for q in (0.90, 0.95, 0.99):
        out[f"upper_{int(round(q * 100))}"] = float(np.mean((u_arr > q) & (v_arr > q)))
    for q in (0.90, 0.95, 0.99):
        out[f"chi_{int(round(q * 100))}"] = _exceedance_chi(u_arr, v_arr, q)
    return out


def kendall_transform(u, v, chunk_size: int = 2048) -> np.ndarray:
    """
    Empirical copula evaluated at each observation, excluding the point itself:

        W_i = #{j != i : u_j < u_i and v_j < v_i} / (n - 1)

    Strict inequalities keep tied points from counting each other.
    Computed in row chunks so memory stays at chunk_size * n booleans.
    """
    u_arr = np.asarray(u, dtype=float).ravel()
    v_arr = np.asarray(v, dtype=float).ravel()
    n = u_arr.size
    if n < 2:
        raise ValueError("at least 2 observations are required")
    counts = np.empty(n, dtype=float)
    for start in range(0, n, chunk_size):
        stop = min(start + chunk_size, n)
        below = (u_arr[None, :] < u_arr[start:stop, None]) & (v_arr[None, :] < v_arr[start:stop, None])
        counts[start:stop] = below.sum(axis=1)
    return counts / (n - 1.0)


def match_ties(synthetic: np.ndarray, observed_sorted: np.ndarray) -> np.ndarray:
    """
    Replace a synthetic margin by the observed values at the same ranks.

    The synthetic sample is treated as the latent continuous scores and the
    observed sorted pseudo-observations as their reported (possibly tied)
    values, so the result carries exactly the observed tie structure.
    """
    ranks = rankdata(synthetic, method="ordinal").astype(int)
    return np.asarray(observed_sorted)[ranks - 1]

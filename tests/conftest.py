import numpy as np
import pytest

from copula_gof.families import get_copula
from copula_gof.pseudo_obs import pseudo_observations


def draw_pseudo(family, params, n, seed=0):
    """Pseudo-observations of a sample drawn from a known copula."""
    u, v = get_copula(family).sample(tuple(params), n, np.random.default_rng(seed))
    return pseudo_observations(u, v)


@pytest.fixture
def gaussian_sample():
    return draw_pseudo("gaussian", (0.5,), 300, seed=11)


@pytest.fixture
def clayton_sample():
    return draw_pseudo("clayton", (3.0,), 400, seed=12)

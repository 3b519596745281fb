"""
conftest.py - Pytest Configuration and Shared Fixtures

Fixtures are organized by category:
- Random number generators (for reproducibility)
- Return data (small literal matrices and simulated samples)
- Moment sets
"""

import numpy as np
import pandas as pd
import pytest

from pyes import MomentSet, estimate_moments


# =============================================================================
# RANDOM NUMBER GENERATORS
# =============================================================================

@pytest.fixture
def rng():
    """Seeded random number generator; all simulated data derives from it."""
    return np.random.default_rng(seed=42)


# =============================================================================
# RETURN DATA
# =============================================================================

@pytest.fixture
def two_asset_returns():
    """
    Five periods of returns for two assets.

    Sorted, asset A is [-0.10, -0.05, 0.01, 0.02, 0.03], so its 5% quantile
    under linear interpolation is -0.10 + 0.2 * 0.05 = -0.09.
    """
    return pd.DataFrame({
        "A": [-0.05, 0.01, 0.02, -0.10, 0.03],
        "B": [-0.02, 0.00, 0.015, -0.03, 0.01],
    })


@pytest.fixture
def normal_returns(rng):
    """1000 periods of correlated normal returns for three assets."""
    mean = np.array([0.0005, 0.0003, 0.0008])
    vols = np.array([0.010, 0.015, 0.020])
    corr = np.array([
        [1.0, 0.3, 0.1],
        [0.3, 1.0, 0.4],
        [0.1, 0.4, 1.0],
    ])
    cov = corr * np.outer(vols, vols)
    data = rng.multivariate_normal(mean, cov, size=1000)
    return pd.DataFrame(data, columns=["Equity", "Credit", "Commodity"])


@pytest.fixture
def skewed_returns(rng):
    """
    500 periods of fat-tailed, skewed returns for three assets
    (Student-t noise plus occasional negative jumps).
    """
    base = 0.01 * rng.standard_t(df=5, size=(500, 3))
    jumps = -0.04 * (rng.random((500, 3)) < 0.02)
    return pd.DataFrame(base + jumps, columns=["X", "Y", "Z"])


@pytest.fixture
def portfolio_weights():
    return np.array([0.5, 0.3, 0.2])


# =============================================================================
# MOMENT SETS
# =============================================================================

@pytest.fixture
def skewed_moments(skewed_returns):
    """Sample moments (with co-moments) of the skewed returns."""
    return estimate_moments(skewed_returns, higher=True)


@pytest.fixture
def gaussian_comoment_set():
    """
    Three-asset moments whose co-moments are those of a normal distribution:
    zero coskewness and the Isserlis cokurtosis, so every portfolio has
    S = 0 and K = 0.
    """
    mu = np.array([0.001, 0.0005, 0.0002])
    vols = np.array([0.02, 0.01, 0.015])
    corr = np.array([
        [1.0, 0.2, -0.1],
        [0.2, 1.0, 0.3],
        [-0.1, 0.3, 1.0],
    ])
    sigma = corr * np.outer(vols, vols)
    n = len(mu)

    m3 = np.zeros((n, n * n))
    m4 = (
        np.einsum("ij,kl->ijkl", sigma, sigma)
        + np.einsum("ik,jl->ijkl", sigma, sigma)
        + np.einsum("il,jk->ijkl", sigma, sigma)
    ).reshape(n, n ** 3)
    return MomentSet(mu=mu, sigma=sigma, m3=m3, m4=m4)


@pytest.fixture
def pathological_moments():
    """
    One asset with zero mean, 1% volatility, no skew and excess kurtosis 30.
    At alpha = 0.05 the Edgeworth tail expectation turns negative, so
    modified ES drops below modified VaR.
    """
    variance = 1e-4
    return MomentSet(
        mu=np.array([0.0]),
        sigma=np.array([[variance]]),
        m3=np.array([[0.0]]),
        m4=np.array([[(30.0 + 3.0) * variance ** 2]]),
    )

"""
Tests for quantile.py: probability convention, empirical / Gaussian /
Cornish-Fisher quantiles and the Edgeworth tail expectation.
"""

import numpy as np
import pytest
from scipy.integrate import quad
from scipy.stats import norm

from pyes import InvalidMoments
from pyes.quantile import (
    cornish_fisher_quantile,
    cornish_fisher_z,
    edgeworth_density_factor,
    edgeworth_tail_expectation,
    edgeworth_tail_partials,
    empirical_quantile,
    gaussian_quantile,
    partial_moment,
    tail_probability,
)


# =============================================================================
# PROBABILITY CONVENTION
# =============================================================================

@pytest.mark.parametrize("p, expected", [
    (0.95, 0.05),
    (0.99, 0.01),
    (0.01, 0.01),
    (0.05, 0.05),
])
def test_tail_probability(p, expected):
    assert tail_probability(p) == pytest.approx(expected)


@pytest.mark.parametrize("p", [-0.1, 1.5])
def test_tail_probability_rejects_out_of_range(p):
    with pytest.raises(ValueError):
        tail_probability(p)


# =============================================================================
# QUANTILES
# =============================================================================

def test_empirical_quantile_interpolates_linearly(two_asset_returns):
    """(n - 1) * 0.05 = 0.2 of the way from the 1st to the 2nd order statistic."""
    assert empirical_quantile(two_asset_returns["A"], 0.05) == pytest.approx(-0.09)
    assert empirical_quantile(two_asset_returns["B"], 0.05) == pytest.approx(-0.028)


def test_gaussian_quantile_scales_and_shifts():
    assert gaussian_quantile(0.05, mean=0.01, std=0.02) == pytest.approx(0.01 + 0.02 * norm.ppf(0.05))


@pytest.mark.parametrize("alpha", [0.01, 0.05, 0.1])
def test_cornish_fisher_reduces_to_gaussian(alpha):
    assert cornish_fisher_z(alpha, 0.0, 0.0) == pytest.approx(norm.ppf(alpha))
    assert cornish_fisher_quantile(alpha, 0.001, 0.02, 0.0, 0.0) == pytest.approx(
        gaussian_quantile(alpha, 0.001, 0.02)
    )


def test_cornish_fisher_negative_skew_deepens_quantile():
    assert cornish_fisher_z(0.05, -0.8, 0.0) < norm.ppf(0.05)


@pytest.mark.parametrize("skew, exkurt", [(None, 1.0), (0.5, None), (np.nan, 0.0)])
def test_cornish_fisher_requires_higher_moments(skew, exkurt):
    with pytest.raises(InvalidMoments):
        cornish_fisher_quantile(0.05, 0.0, 0.01, skew, exkurt)


# =============================================================================
# EDGEWORTH TAIL EXPECTATION
# =============================================================================

@pytest.mark.parametrize("n", range(8))
def test_partial_moment_matches_quadrature(n):
    h = -1.3
    expected, _ = quad(lambda u: u ** n * norm.pdf(u), -np.inf, h)
    assert partial_moment(n, h) == pytest.approx(expected, abs=1e-10)


def test_edgeworth_tail_is_phi_for_normal():
    h = norm.ppf(0.05)
    assert edgeworth_tail_expectation(h, 0.0, 0.0) == pytest.approx(norm.pdf(h))


@pytest.mark.parametrize("skew, exkurt", [(-0.5, 1.2), (0.3, 4.0), (-1.0, 0.0)])
def test_edgeworth_tail_matches_integral_of_density(skew, exkurt):
    """-E[X; X <= h] integrated numerically under the Edgeworth density."""
    h = cornish_fisher_z(0.05, skew, exkurt)

    def integrand(x):
        return x * norm.pdf(x) * edgeworth_density_factor(x, skew, exkurt)

    expected, _ = quad(integrand, -np.inf, h)
    assert edgeworth_tail_expectation(h, skew, exkurt) == pytest.approx(-expected, abs=1e-9)


def test_edgeworth_tail_partials_match_finite_differences():
    h, skew, exkurt = -1.8, -0.4, 2.5
    eps = 1e-6
    d_h, d_skew, d_exkurt = edgeworth_tail_partials(h, skew, exkurt)

    def f(a, b, c):
        return edgeworth_tail_expectation(a, b, c)

    assert d_h == pytest.approx((f(h + eps, skew, exkurt) - f(h - eps, skew, exkurt)) / (2 * eps), abs=1e-7)
    assert d_skew == pytest.approx((f(h, skew + eps, exkurt) - f(h, skew - eps, exkurt)) / (2 * eps), abs=1e-7)
    assert d_exkurt == pytest.approx((f(h, skew, exkurt + eps) - f(h, skew, exkurt - eps)) / (2 * eps), abs=1e-7)

"""
Quantile Module
---------------

Provides the risk quantiles used by every Expected Shortfall method:
empirical, Gaussian and Cornish-Fisher adjusted, together with the
Edgeworth tail expectation behind modified ES.

Conventions
-----------
- `alpha` always denotes the tail probability (e.g. 0.05), never the
  confidence level. Use `tail_probability` to convert a user-facing `p`.
- Quantiles are returned on the return scale (a left-tail quantile of a
  typical return series is negative).
- The empirical quantile interpolates linearly between order statistics
  (numpy's "linear" method, i.e. Hyndman-Fan type 7).

Contents
--------
- tail_probability: Map a confidence level (or tail probability) to alpha
- empirical_quantile: Interpolated sample quantile
- gaussian_quantile: Normal quantile scaled by mean and standard deviation
- cornish_fisher_z / cornish_fisher_quantile: Second-order Cornish-Fisher expansion
- partial_moment: Truncated moments of the standard normal
- edgeworth_density_factor / edgeworth_tail_expectation: Edgeworth tail terms
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
import numpy as np
from scipy.stats import norm

from .exceptions import InvalidMoments


#----------------------------------------------------------
# Probability Convention
#----------------------------------------------------------
def tail_probability(p: float) -> float:
    """
    Main
    ----
    Convert `p` into a tail probability.

    Values of at least 0.51 are confidence levels (0.95 -> 0.05); smaller
    values are taken to be the tail probability itself (0.01 -> 0.01).

    Raises
    ------
    ValueError
        If `p` is not a number in [0, 1].
    """
    p = float(p)
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"p must lie in [0, 1], got {p}")
    return 1.0 - p if p >= 0.51 else p


#----------------------------------------------------------
# Quantiles
#----------------------------------------------------------
def empirical_quantile(series, alpha: float) -> float:
    """Sample alpha-quantile with linear interpolation between order statistics."""
    values = np.asarray(series, dtype=float).reshape(-1)
    return float(np.quantile(values, alpha, method="linear"))


def gaussian_quantile(alpha: float, mean: float = 0.0, std: float = 1.0) -> float:
    """Normal alpha-quantile: mean + std * Phi^-1(alpha)."""
    return mean + std * norm.ppf(alpha)


def _check_higher_moments(skew, exkurt):
    if skew is None or exkurt is None:
        raise InvalidMoments("Skewness and excess kurtosis are required for the Cornish-Fisher expansion.")
    if not (np.isfinite(skew) and np.isfinite(exkurt)):
        raise InvalidMoments(f"Non-finite higher moments: skew={skew}, exkurt={exkurt}")


def cornish_fisher_z(alpha: float, skew: float, exkurt: float) -> float:
    """
    Main
    ----
    Standardised Cornish-Fisher quantile.

    q = z + (z^2 - 1) S/6 + (z^3 - 3z) K/24 - (2z^3 - 5z) S^2/36

    with z = Phi^-1(alpha), S the skewness and K the excess kurtosis.
    Collapses to z when S = K = 0.
    """
    _check_higher_moments(skew, exkurt)
    z = norm.ppf(alpha)
    return (
        z
        + (z ** 2 - 1) * skew / 6
        + (z ** 3 - 3 * z) * exkurt / 24
        - (2 * z ** 3 - 5 * z) * skew ** 2 / 36
    )


def cornish_fisher_quantile(alpha: float, mean: float, std: float, skew: float, exkurt: float) -> float:
    """Cornish-Fisher alpha-quantile rescaled by mean and standard deviation."""
    return mean + std * cornish_fisher_z(alpha, skew, exkurt)


#----------------------------------------------------------
# Edgeworth Tail Expectation
#----------------------------------------------------------
def partial_moment(n: int, h: float) -> float:
    """
    Truncated moment of the standard normal: integral of u^n phi(u) over (-inf, h].

    Uses M_0 = Phi(h), M_1 = -phi(h) and M_n = -h^(n-1) phi(h) + (n-1) M_(n-2).
    """
    if n == 0:
        return norm.cdf(h)
    if n == 1:
        return -norm.pdf(h)
    return -h ** (n - 1) * norm.pdf(h) + (n - 1) * partial_moment(n - 2, h)


def _hermite(h: float):
    he3 = h ** 3 - 3 * h
    he4 = h ** 4 - 6 * h ** 2 + 3
    he6 = h ** 6 - 15 * h ** 4 + 45 * h ** 2 - 15
    return he3, he4, he6


def edgeworth_density_factor(h: float, skew: float, exkurt: float) -> float:
    """Ratio of the second-order Edgeworth density to phi at h."""
    he3, he4, he6 = _hermite(h)
    return 1 + skew * he3 / 6 + exkurt * he4 / 24 + skew ** 2 * he6 / 72


def _tail_terms(h: float):
    # J_q = -M_(q+1): the truncated moments that enter -E[X; X <= h]
    j = {q: -partial_moment(q + 1, h) for q in (0, 1, 2, 3, 4, 6)}
    skew_term = j[3] - 3 * j[1]
    kurt_term = j[4] - 6 * j[2] + 3 * j[0]
    skew2_term = j[6] - 15 * j[4] + 45 * j[2] - 15 * j[0]
    return j[0], skew_term, kurt_term, skew2_term


def edgeworth_tail_expectation(h: float, skew: float, exkurt: float) -> float:
    """
    Main
    ----
    Compute -E[X; X <= h] for a standardised variable X whose density is the
    second-order Edgeworth expansion

        f(x) = phi(x) [1 + S He3(x)/6 + K He4(x)/24 + S^2 He6(x)/72].

    Dividing by the tail probability gives the standardised modified ES.
    For S = K = 0 the result is phi(h).
    """
    _check_higher_moments(skew, exkurt)
    base, skew_term, kurt_term, skew2_term = _tail_terms(h)
    return base + skew * skew_term / 6 + exkurt * kurt_term / 24 + skew ** 2 * skew2_term / 72


def edgeworth_tail_partials(h: float, skew: float, exkurt: float):
    """
    Partial derivatives of `edgeworth_tail_expectation` with respect to h,
    the skewness and the excess kurtosis, in that order.
    """
    _, skew_term, kurt_term, skew2_term = _tail_terms(h)
    d_h = -h * norm.pdf(h) * edgeworth_density_factor(h, skew, exkurt)
    d_skew = skew_term / 6 + skew * skew2_term / 36
    d_exkurt = kurt_term / 24
    return d_h, d_skew, d_exkurt

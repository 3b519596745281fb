"""
Moments Module
--------------

Provides the sample moments consumed by the Expected Shortfall estimators:
mean vector, covariance matrix and the coskewness / cokurtosis matrices,
together with the weight-dependent moments of a portfolio and their gradients.

All moments are central (computed about the mean). The covariance matrix uses
the unbiased T-1 denominator (as pandas and numpy do by default), while the
higher co-moments are plain averages over T observations.

Co-moment layout
----------------
For N assets the coskewness matrix is N x N^2 and the cokurtosis matrix is
N x N^3, both in Kronecker order:

    M3[i, j*N + k]           = E[(r_i - mu_i)(r_j - mu_j)(r_k - mu_k)]
    M4[i, (j*N + k)*N + l]   = E[(r_i - mu_i) ... (r_l - mu_l)]

Because these tensors are symmetric, they can also be passed as the vector
of their unique values, ordered lexicographically over i <= j <= k (<= l).

Authors
-------
Alessandro Dodon, Niccolò Lecce, Marco Gasparetti

Contents
--------
- MomentSet: Validated container for mu, sigma, m3, m4
- SeriesMoments: Mean, standard deviation, skewness and excess kurtosis of one series
- PortfolioMoments: Portfolio moments with gradients w.r.t. the weights
- sample_mean / sample_covariance / coskewness / cokurtosis: Sample estimators
- estimate_moments: Build a MomentSet from a return matrix
- expand_comoment / compress_comoment: Full matrix <-> unique-value conversion
- portfolio_moments: Moments of the weighted portfolio return
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations_with_replacement, permutations
from math import comb
from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from .exceptions import DimensionMismatch, InvalidMoments


#----------------------------------------------------------
# Sample Moment Estimators
#----------------------------------------------------------
def _as_array(returns) -> np.ndarray:
    data = np.asarray(returns, dtype=float)
    if data.ndim == 1:
        data = data.reshape(-1, 1)
    if data.ndim != 2:
        raise DimensionMismatch(f"Returns must be 1D or 2D, got shape {data.shape}")
    return data


def sample_mean(returns) -> np.ndarray:
    """Column means of a (T x N) return matrix."""
    return _as_array(returns).mean(axis=0)


def sample_covariance(returns) -> np.ndarray:
    """Unbiased (T-1) covariance matrix of a (T x N) return matrix."""
    data = _as_array(returns)
    if data.shape[0] < 2:
        raise InvalidMoments("At least two observations are required for a covariance.")
    return np.atleast_2d(np.cov(data, rowvar=False, ddof=1))


def coskewness(returns, mu=None) -> np.ndarray:
    """
    Main
    ----
    Estimate the N x N^2 coskewness matrix of a return matrix.

    Parameters
    ----------
    returns : array-like
        Return matrix (T x N).
    mu : array-like, optional
        Mean vector to center on. Defaults to the sample mean.

    Returns
    -------
    np.ndarray
        Coskewness matrix in Kronecker order (N x N^2).
    """
    data = _as_array(returns)
    center = sample_mean(data) if mu is None else np.asarray(mu, dtype=float).reshape(-1)
    x = data - center
    n_obs, n_assets = x.shape
    tensor = np.einsum("ti,tj,tk->ijk", x, x, x) / n_obs
    return tensor.reshape(n_assets, n_assets ** 2)


def cokurtosis(returns, mu=None) -> np.ndarray:
    """
    Main
    ----
    Estimate the N x N^3 cokurtosis matrix of a return matrix.

    Parameters
    ----------
    returns : array-like
        Return matrix (T x N).
    mu : array-like, optional
        Mean vector to center on. Defaults to the sample mean.

    Returns
    -------
    np.ndarray
        Cokurtosis matrix in Kronecker order (N x N^3).
    """
    data = _as_array(returns)
    center = sample_mean(data) if mu is None else np.asarray(mu, dtype=float).reshape(-1)
    x = data - center
    n_obs, n_assets = x.shape
    tensor = np.einsum("ti,tj,tk,tl->ijkl", x, x, x, x, optimize=True) / n_obs
    return tensor.reshape(n_assets, n_assets ** 3)


#----------------------------------------------------------
# Full Matrix <-> Unique Values
#----------------------------------------------------------
def _n_unique(n_assets: int, order: int) -> int:
    return comb(n_assets + order - 1, order)


def expand_comoment(values, n_assets: int, order: int) -> np.ndarray:
    """
    Main
    ----
    Convert a co-moment given in any accepted layout to the full
    N x N^(order-1) matrix.

    Accepted layouts are the full matrix, the full tensor with `order`
    axes of length N, or the vector of unique values ordered over
    i <= j <= k (<= l).

    Parameters
    ----------
    values : array-like
        Co-moment in one of the accepted layouts.
    n_assets : int
        Number of assets N.
    order : int
        3 for coskewness, 4 for cokurtosis.

    Returns
    -------
    np.ndarray
        Full co-moment matrix (N x N^(order-1)).

    Raises
    ------
    DimensionMismatch
        If the size of `values` fits none of the layouts for N assets.
    """
    array = np.asarray(values, dtype=float)
    full_shape = (n_assets, n_assets ** (order - 1))

    if array.shape == full_shape:
        return array
    if array.shape == (n_assets,) * order:
        return array.reshape(full_shape)

    flat = array.reshape(-1)
    if flat.size == _n_unique(n_assets, order):
        tensor = np.empty((n_assets,) * order)
        for value, index in zip(flat, combinations_with_replacement(range(n_assets), order)):
            for permuted in set(permutations(index)):
                tensor[permuted] = value
        return tensor.reshape(full_shape)
    if flat.size == full_shape[0] * full_shape[1]:
        return flat.reshape(full_shape)

    raise DimensionMismatch(
        f"Order-{order} co-moment of size {flat.size} is inconsistent with {n_assets} assets: "
        f"expected shape {full_shape} or {_n_unique(n_assets, order)} unique values."
    )


def compress_comoment(matrix, order: int) -> np.ndarray:
    """Return the unique values of a full co-moment matrix (i <= j <= k ordering)."""
    array = np.asarray(matrix, dtype=float)
    n_assets = array.shape[0]
    tensor = array.reshape((n_assets,) * order)
    return np.array([
        tensor[index] for index in combinations_with_replacement(range(n_assets), order)
    ])


#----------------------------------------------------------
# Moment Containers
#----------------------------------------------------------
@dataclass(frozen=True)
class MomentSet:
    """
    Validated set of portfolio moments for N assets.

    Parameters
    ----------
    mu : np.ndarray
        Mean vector (N,).
    sigma : np.ndarray
        Covariance matrix (N x N).
    m3 : np.ndarray, optional
        Coskewness in any layout accepted by `expand_comoment`.
    m4 : np.ndarray, optional
        Cokurtosis in any layout accepted by `expand_comoment`.

    Notes
    -----
    Inputs are normalised on construction: m3 and m4 are always stored as
    full matrices, so downstream code never checks the layout again.
    """
    mu: np.ndarray
    sigma: np.ndarray
    m3: Optional[np.ndarray] = None
    m4: Optional[np.ndarray] = None

    def __post_init__(self):
        mu = np.atleast_1d(np.asarray(self.mu, dtype=float)).reshape(-1)
        n_assets = mu.shape[0]

        sigma = np.atleast_2d(np.asarray(self.sigma, dtype=float))
        if sigma.shape != (n_assets, n_assets):
            raise DimensionMismatch(
                f"sigma shape mismatch: expected ({n_assets}, {n_assets}), got {sigma.shape}"
            )

        object.__setattr__(self, "mu", mu)
        object.__setattr__(self, "sigma", sigma)
        if self.m3 is not None:
            object.__setattr__(self, "m3", expand_comoment(self.m3, n_assets, 3))
        if self.m4 is not None:
            object.__setattr__(self, "m4", expand_comoment(self.m4, n_assets, 4))

    @property
    def n_assets(self) -> int:
        return self.mu.shape[0]

    @property
    def has_higher(self) -> bool:
        """True when both coskewness and cokurtosis are available."""
        return self.m3 is not None and self.m4 is not None

    def asset(self, index: int) -> "SeriesMoments":
        """Univariate moments of asset `index`, taken from the diagonals."""
        n = self.n_assets
        variance = self.sigma[index, index]
        std = np.sqrt(variance) if variance >= 0 else np.nan
        # Shape measures are undefined without dispersion
        degenerate = not variance > 0
        skew = exkurt = None
        if self.m3 is not None:
            skew = np.nan if degenerate else self.m3[index, index * n + index] / std ** 3
        if self.m4 is not None:
            exkurt = np.nan if degenerate else self.m4[index, (index * n + index) * n + index] / variance ** 2 - 3.0
        return SeriesMoments(mean=self.mu[index], std=std, skew=skew, exkurt=exkurt)


@dataclass(frozen=True)
class SeriesMoments:
    """
    Moments of a single return series.

    `skew` is the standardised third moment and `exkurt` the excess
    kurtosis; both are optional and only needed by the modified method.
    """
    mean: float
    std: float
    skew: Optional[float] = None
    exkurt: Optional[float] = None

    @classmethod
    def from_series(cls, series, higher: bool = True) -> "SeriesMoments":
        """Estimate from a 1D series with the same estimators as `estimate_moments`."""
        moments = estimate_moments(np.asarray(series, dtype=float).reshape(-1, 1), higher=higher)
        return moments.asset(0)


def estimate_moments(returns, higher: bool = True, mu=None) -> MomentSet:
    """
    Main
    ----
    Build a MomentSet from a return matrix.

    Parameters
    ----------
    returns : pd.DataFrame or array-like
        Return matrix (T x N), without missing values.
    higher : bool, optional
        Whether to estimate coskewness and cokurtosis. Default is True.
    mu : array-like, optional
        Mean vector to center the higher moments on.

    Returns
    -------
    MomentSet
    """
    data = _as_array(returns.values if isinstance(returns, pd.DataFrame) else returns)
    center = sample_mean(data) if mu is None else np.asarray(mu, dtype=float).reshape(-1)
    sigma = sample_covariance(data)

    m3 = m4 = None
    if higher:
        logger.debug(f"Estimating co-moments for {data.shape[1]} assets over {data.shape[0]} periods")
        m3 = coskewness(data, center)
        m4 = cokurtosis(data, center)

    return MomentSet(mu=center, sigma=sigma, m3=m3, m4=m4)


#----------------------------------------------------------
# Portfolio Moments and Gradients
#----------------------------------------------------------
@dataclass(frozen=True)
class PortfolioMoments:
    """
    Moments of the portfolio return w'r and their gradients w.r.t. w.

    Every m_k is homogeneous of degree k in the weights, so
    w @ d_mk == k * m_k. The Euler decompositions rely on this identity.
    """
    m1: float
    m2: float
    d_m1: np.ndarray
    d_m2: np.ndarray
    m3: Optional[float] = None
    m4: Optional[float] = None
    d_m3: Optional[np.ndarray] = None
    d_m4: Optional[np.ndarray] = None

    @property
    def std(self) -> float:
        return float(np.sqrt(self.m2))

    @property
    def skew(self) -> float:
        return self.m3 / self.m2 ** 1.5

    @property
    def exkurt(self) -> float:
        return self.m4 / self.m2 ** 2 - 3.0

    @property
    def d_skew(self) -> np.ndarray:
        return self.d_m3 / self.m2 ** 1.5 - 1.5 * self.m3 * self.d_m2 / self.m2 ** 2.5

    @property
    def d_exkurt(self) -> np.ndarray:
        return (self.m2 * self.d_m4 - 2.0 * self.m4 * self.d_m2) / self.m2 ** 3


def portfolio_moments(weights, moments: MomentSet, higher: bool = False) -> PortfolioMoments:
    """
    Main
    ----
    Compute the moments of the portfolio return and their gradients.

    Parameters
    ----------
    weights : array-like
        Portfolio weights (N,).
    moments : MomentSet
        Asset moments.
    higher : bool, optional
        Also compute third and fourth portfolio moments. Requires m3 and m4.

    Returns
    -------
    PortfolioMoments

    Raises
    ------
    DimensionMismatch
        If the weights do not match the number of assets.
    InvalidMoments
        If higher moments are requested but not available.
    """
    w = np.asarray(weights, dtype=float).reshape(-1)
    if w.shape[0] != moments.n_assets:
        raise DimensionMismatch(
            f"Number of weights ({w.shape[0]}) does not match number of assets ({moments.n_assets})."
        )

    sigma_w = moments.sigma @ w
    values = dict(
        m1=float(w @ moments.mu),
        m2=float(w @ sigma_w),
        d_m1=moments.mu.copy(),
        d_m2=2.0 * sigma_w,
    )

    if higher:
        if not moments.has_higher:
            raise InvalidMoments("Coskewness and cokurtosis are required for the modified method.")
        ww = np.kron(w, w)
        m3_ww = moments.m3 @ ww
        m4_www = moments.m4 @ np.kron(ww, w)
        values.update(
            m3=float(w @ m3_ww),
            m4=float(w @ m4_www),
            d_m3=3.0 * m3_ww,
            d_m4=4.0 * m4_www,
        )

    return PortfolioMoments(**values)

"""
Component Expected Shortfall Module
-----------------------------------

Provides the decomposition of portfolio Expected Shortfall into additive
per-asset contributions, for the same three methods as univariate.py.

Portfolio ES is homogeneous of degree one in the weights, so by Euler's theorem

    ES(w) = sum_i w_i * dES/dw_i

and the component contribution of asset i is C_i = w_i * dES/dw_i.
Following Scaillet (2002), C_i also equals the negative expected weighted
return of asset i given that the portfolio return is at or below its VaR
quantile, -E[w_i r_i | r_p <= q_p]. The historical decomposer uses that
conditional-expectation form directly; the Gaussian and modified
decomposers use the closed-form gradients.

A negative contribution marks a diversifier: raising that weight lowers ES.

Authors
-------
Alessandro Dodon, Niccolò Lecce, Marco Gasparetti

Contents
--------
- PortfolioESDecomposer: Common interface
- HistoricalDecomposer: Conditional tail averages on realised portfolio returns
- GaussianDecomposer: Closed-form Gaussian ES gradient
- ModifiedDecomposer: Closed-form Cornish-Fisher / Edgeworth ES gradient,
  with the operational VaR override
- modified_var_decomposition: Euler decomposition of modified VaR
- DECOMPOSERS / decomposer_strategy: Method registry
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
from loguru import logger
from scipy.stats import norm

from .exceptions import DimensionMismatch, InvalidMoments, MissingInput
from .moments import MomentSet, PortfolioMoments, portfolio_moments
from .quantile import cornish_fisher_z, edgeworth_tail_expectation, edgeworth_tail_partials
from .types import Decomposition, Method
from .univariate import historical_tail


#----------------------------------------------------------
# Interface
#----------------------------------------------------------
class PortfolioESDecomposer(ABC):
    """
    Total portfolio ES and its Euler decomposition.

    Moment-based subclasses read `moments`; the historical subclass reads the
    (T x N) `returns` matrix. Results are positive loss numbers.
    """
    method: Method
    needs_returns = False
    needs_higher_moments = False

    @abstractmethod
    def decompose(
        self,
        weights,
        alpha: float,
        moments: Optional[MomentSet] = None,
        returns=None,
    ) -> Decomposition:
        """Return the Decomposition of portfolio ES for `weights`."""

    def _portfolio_moments(self, weights, moments: Optional[MomentSet]) -> PortfolioMoments:
        if moments is None:
            raise MissingInput(f"{self.method.value} decomposition requires the asset moments.")
        pm = portfolio_moments(weights, moments, higher=self.needs_higher_moments)
        if not np.isfinite(pm.m2) or pm.m2 <= 0:
            raise InvalidMoments(f"Portfolio variance must be positive, got {pm.m2}")
        return pm


def _euler(weights, gradient, total: float, diagnostics: dict) -> Decomposition:
    contribution = np.asarray(weights, dtype=float) * gradient
    return Decomposition(
        total=float(total),
        contribution=contribution,
        pct_contribution=contribution / total,
        diagnostics=diagnostics,
    )


#----------------------------------------------------------
# Historical Component ES
#----------------------------------------------------------
class HistoricalDecomposer(PortfolioESDecomposer):
    """
    Decomposition on the realised portfolio series r_p = R w.

    ES is the negative mean of r_p over the dates where r_p is at or below
    its empirical alpha-quantile; C_i is the negative mean of w_i r_i over the
    same dates, so the contributions add up to ES exactly.
    """
    method = Method.HISTORICAL
    needs_returns = True

    def decompose(self, weights, alpha, moments=None, returns=None):
        if returns is None:
            raise MissingInput("Historical decomposition requires the return matrix.")
        data = np.asarray(returns, dtype=float)
        w = np.asarray(weights, dtype=float).reshape(-1)
        if data.ndim != 2 or data.shape[1] != w.shape[0]:
            raise DimensionMismatch(
                f"Number of weights ({w.shape[0]}) does not match return matrix shape {data.shape}."
            )

        portfolio_returns = data @ w
        quantile, in_tail = historical_tail(portfolio_returns, alpha)

        contribution = -(data[in_tail] * w).mean(axis=0)
        total = -portfolio_returns[in_tail].mean()
        return Decomposition(
            total=float(total),
            contribution=contribution,
            pct_contribution=contribution / total,
            diagnostics={"var": -quantile, "tail_size": int(in_tail.sum())},
        )


#----------------------------------------------------------
# Gaussian Component ES
#----------------------------------------------------------
class GaussianDecomposer(PortfolioESDecomposer):
    """
    ES = -w'mu + sqrt(w'Sigma w) * phi(z) / alpha

    dES/dw = -mu + Sigma w * phi(z) / (alpha * sqrt(w'Sigma w))
    """
    method = Method.GAUSSIAN

    def decompose(self, weights, alpha, moments=None, returns=None):
        pm = self._portfolio_moments(weights, moments)
        z = norm.ppf(alpha)
        scale = norm.pdf(z) / alpha

        total = -pm.m1 + pm.std * scale
        gradient = -pm.d_m1 + pm.d_m2 / (2 * pm.std) * scale
        return _euler(weights, gradient, total, {"var": -(pm.m1 + pm.std * z)})


#----------------------------------------------------------
# Modified Component ES
#----------------------------------------------------------
def _cornish_fisher_gradient(alpha: float, pm: PortfolioMoments):
    """Cornish-Fisher z of the portfolio and its gradient w.r.t. the weights."""
    skew, exkurt = pm.skew, pm.exkurt
    d_skew, d_exkurt = pm.d_skew, pm.d_exkurt
    z = norm.ppf(alpha)

    h = cornish_fisher_z(alpha, skew, exkurt)
    d_h = (
        (z ** 2 - 1) * d_skew / 6
        + (z ** 3 - 3 * z) * d_exkurt / 24
        - (2 * z ** 3 - 5 * z) * skew * d_skew / 18
    )
    return h, d_h


def modified_var_decomposition(weights, alpha: float, pm: PortfolioMoments) -> Decomposition:
    """
    Euler decomposition of modified VaR, -(m1 + sqrt(m2) * h), as a positive loss.
    """
    h, d_h = _cornish_fisher_gradient(alpha, pm)
    d_std = pm.d_m2 / (2 * pm.std)

    total = -(pm.m1 + pm.std * h)
    gradient = -(pm.d_m1 + d_std * h + pm.std * d_h)
    return _euler(weights, gradient, total, {})


class ModifiedDecomposer(PortfolioESDecomposer):
    """
    Decomposition of modified ES (Boudt, Peterson and Croux, 2008).

    The portfolio skewness S(w), excess kurtosis K(w) and Cornish-Fisher
    quantile h(w) are homogeneous of degree zero, and

        ES(w) = -m1(w) + sqrt(m2(w)) * E(h, S, K) / alpha

    with E the Edgeworth tail expectation. The gradient is taken in closed
    form through m1, m2, S, K and h.

    Parameters
    ----------
    operational : bool, optional
        If True (default) and total modified ES is below modified VaR, the
        whole modified VaR decomposition is returned instead. The raw ES
        decomposition is kept in `diagnostics["raw"]` either way.
    """
    method = Method.MODIFIED
    needs_higher_moments = True

    def __init__(self, operational: bool = True):
        self.operational = operational

    def decompose(self, weights, alpha, moments=None, returns=None):
        pm = self._portfolio_moments(weights, moments)
        skew, exkurt = pm.skew, pm.exkurt
        h, d_h = _cornish_fisher_gradient(alpha, pm)

        tail = edgeworth_tail_expectation(h, skew, exkurt)
        e_h, e_skew, e_exkurt = edgeworth_tail_partials(h, skew, exkurt)
        d_tail = e_h * d_h + e_skew * pm.d_skew + e_exkurt * pm.d_exkurt
        d_std = pm.d_m2 / (2 * pm.std)

        total = -pm.m1 + pm.std * tail / alpha
        gradient = -pm.d_m1 + (d_std * tail + pm.std * d_tail) / alpha
        es_decomposition = _euler(weights, gradient, total, {})
        var_decomposition = modified_var_decomposition(weights, alpha, pm)

        override = bool(self.operational and es_decomposition.total < var_decomposition.total)
        if override:
            logger.warning(
                f"Portfolio modified ES {es_decomposition.total:.6f} below modified VaR "
                f"{var_decomposition.total:.6f}; reporting the VaR decomposition"
            )

        chosen = var_decomposition if override else es_decomposition
        diagnostics = {
            "raw_es": es_decomposition.total,
            "var": var_decomposition.total,
            "skew": skew,
            "exkurt": exkurt,
            "cornish_fisher_z": h,
            "override": override,
            "raw": es_decomposition,
            "var_decomposition": var_decomposition,
        }
        return Decomposition(
            total=chosen.total,
            contribution=chosen.contribution,
            pct_contribution=chosen.pct_contribution,
            diagnostics=diagnostics,
        )


#----------------------------------------------------------
# Registry
#----------------------------------------------------------
DECOMPOSERS = {
    Method.HISTORICAL: HistoricalDecomposer,
    Method.GAUSSIAN: GaussianDecomposer,
    Method.MODIFIED: ModifiedDecomposer,
}


def decomposer_strategy(method: Method, operational: bool = True) -> PortfolioESDecomposer:
    """Instantiate the PortfolioESDecomposer for `method`."""
    if method is Method.MODIFIED:
        return ModifiedDecomposer(operational=operational)
    return DECOMPOSERS[method]()

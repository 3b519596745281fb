"""
Univariate Expected Shortfall Module
------------------------------------

Provides Expected Shortfall (ES) for a single return series under three
methods, each implemented as a strategy object sharing the SingleSeriesES
interface:

- HistoricalES: negative mean of the observations at or below the empirical quantile
- GaussianES: closed form under normality, -mu + sigma * phi(z) / alpha
- ModifiedES: tail expectation under the second-order Edgeworth expansion,
  cut at the Cornish-Fisher quantile (Boudt, Peterson and Croux, 2008)

All strategies return ES as a positive loss number. The sign convention
requested by the caller is applied later by the dispatcher.

Authors
-------
Alessandro Dodon, Niccolò Lecce, Marco Gasparetti

Contents
--------
- SingleSeriesES: Common interface
- HistoricalES / GaussianES / ModifiedES: Concrete strategies
- modified_var: Cornish-Fisher VaR used by the operational override
- SINGLE_SERIES_METHODS / single_series_strategy: Method registry
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np
from loguru import logger
from scipy.stats import norm

from .exceptions import InsufficientTailData, InvalidMoments, MissingInput
from .moments import SeriesMoments
from .quantile import cornish_fisher_z, edgeworth_tail_expectation, empirical_quantile
from .types import Method


#----------------------------------------------------------
# Interface
#----------------------------------------------------------
class SingleSeriesES(ABC):
    """
    Expected Shortfall of one return series.

    Subclasses implement `estimate`, which accepts either the raw series or
    its moments and returns the ES together with a diagnostics dict.
    """
    method: Method
    needs_returns = False
    needs_higher_moments = False

    @abstractmethod
    def estimate(
        self,
        alpha: float,
        series: Optional[np.ndarray] = None,
        moments: Optional[SeriesMoments] = None,
    ) -> Tuple[float, Dict[str, Any]]:
        """Return (ES as a positive loss, diagnostics)."""

    def es(self, alpha: float, series=None, moments: Optional[SeriesMoments] = None) -> float:
        return self.estimate(alpha, series=series, moments=moments)[0]

    def _resolve_moments(self, series, moments: Optional[SeriesMoments]) -> SeriesMoments:
        # Caller-supplied moments win over the series
        if moments is not None:
            return moments
        if series is None:
            raise MissingInput(f"{self.method.value} ES needs a return series or its moments.")
        return SeriesMoments.from_series(series, higher=self.needs_higher_moments)


#----------------------------------------------------------
# Historical ES (Tail Mean)
#----------------------------------------------------------
def historical_tail(series, alpha: float) -> Tuple[float, np.ndarray]:
    """
    Empirical alpha-quantile of a series and the boolean mask of observations
    at or below it.

    Raises
    ------
    InsufficientTailData
        If the series is empty or alpha is zero (the tail carries no probability).
    """
    values = np.asarray(series, dtype=float).reshape(-1)
    if values.size == 0:
        raise InsufficientTailData("No observations available for historical ES.")
    if alpha <= 0:
        raise InsufficientTailData(
            f"Tail probability {alpha} leaves no observation in the tail of {values.size} returns."
        )

    quantile = empirical_quantile(values, alpha)
    in_tail = values <= quantile
    if not in_tail.any():
        raise InsufficientTailData(f"No observation at or below the {alpha:.4f}-quantile {quantile}.")
    return quantile, in_tail


class HistoricalES(SingleSeriesES):
    """Negative sample mean of all returns at or below the empirical alpha-quantile."""
    method = Method.HISTORICAL
    needs_returns = True

    def estimate(self, alpha, series=None, moments=None):
        if series is None:
            raise MissingInput("Historical ES requires the return series itself, not its moments.")
        values = np.asarray(series, dtype=float).reshape(-1)
        quantile, in_tail = historical_tail(values, alpha)
        es_value = -values[in_tail].mean()
        return es_value, {"var": -quantile, "tail_size": int(in_tail.sum())}


#----------------------------------------------------------
# Gaussian ES (Parametric)
#----------------------------------------------------------
def gaussian_es(alpha: float, mean: float, std: float) -> float:
    """ES = -mu + sigma * phi(z_alpha) / alpha."""
    if not np.isfinite(std) or std < 0:
        raise InvalidMoments(f"Standard deviation must be finite and non-negative, got {std}")
    z = norm.ppf(alpha)
    return -mean + std * norm.pdf(z) / alpha


class GaussianES(SingleSeriesES):
    """Closed-form ES of a normal distribution with the series' mean and volatility."""
    method = Method.GAUSSIAN

    def estimate(self, alpha, series=None, moments=None):
        resolved = self._resolve_moments(series, moments)
        es_value = gaussian_es(alpha, resolved.mean, resolved.std)
        return es_value, {"var": -(resolved.mean + resolved.std * norm.ppf(alpha))}


#----------------------------------------------------------
# Modified ES (Cornish-Fisher / Edgeworth)
#----------------------------------------------------------
def modified_var(alpha: float, mean: float, std: float, skew: float, exkurt: float) -> float:
    """Cornish-Fisher VaR as a positive loss: -(mu + sigma * z_cf)."""
    return -(mean + std * cornish_fisher_z(alpha, skew, exkurt))


def modified_es(alpha: float, mean: float, std: float, skew: float, exkurt: float) -> float:
    """
    Main
    ----
    Modified ES as a positive loss.

    The returns are standardised, the tail is cut at the Cornish-Fisher
    quantile h and the expectation below h is taken under the second-order
    Edgeworth density:

        ES = -mu + sigma * E_edgeworth(h) / alpha

    For zero skewness and excess kurtosis this is exactly Gaussian ES.
    """
    if not np.isfinite(std) or std < 0:
        raise InvalidMoments(f"Standard deviation must be finite and non-negative, got {std}")
    h = cornish_fisher_z(alpha, skew, exkurt)
    return -mean + std * edgeworth_tail_expectation(h, skew, exkurt) / alpha


class ModifiedES(SingleSeriesES):
    """
    Modified (Cornish-Fisher) ES.

    Parameters
    ----------
    operational : bool, optional
        If True (default), return the modified VaR whenever the modified ES
        falls below it, a known artefact of the expansion under extreme
        skewness or kurtosis. Both numbers are kept in the diagnostics.
    """
    method = Method.MODIFIED
    needs_higher_moments = True

    def __init__(self, operational: bool = True):
        self.operational = operational

    def estimate(self, alpha, series=None, moments=None):
        resolved = self._resolve_moments(series, moments)
        raw_es = modified_es(alpha, resolved.mean, resolved.std, resolved.skew, resolved.exkurt)
        var_value = modified_var(alpha, resolved.mean, resolved.std, resolved.skew, resolved.exkurt)

        override = bool(self.operational and raw_es < var_value)
        if override:
            logger.warning(f"Modified ES {raw_es:.6f} below modified VaR {var_value:.6f}; reporting VaR")

        diagnostics = {
            "raw_es": raw_es,
            "var": var_value,
            "skew": resolved.skew,
            "exkurt": resolved.exkurt,
            "override": override,
        }
        return (var_value if override else raw_es), diagnostics


#----------------------------------------------------------
# Registry
#----------------------------------------------------------
SINGLE_SERIES_METHODS = {
    Method.HISTORICAL: HistoricalES,
    Method.GAUSSIAN: GaussianES,
    Method.MODIFIED: ModifiedES,
}


def single_series_strategy(method: Method, operational: bool = True) -> SingleSeriesES:
    """Instantiate the SingleSeriesES strategy for `method`."""
    if method is Method.MODIFIED:
        return ModifiedES(operational=operational)
    return SINGLE_SERIES_METHODS[method]()

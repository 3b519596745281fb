"""
Standard Errors Module
----------------------

Pluggable standard-error estimators for historical Expected Shortfall.

The ES engine treats these as opaque collaborators behind the narrow
StandardErrorEstimator interface. Four estimators are registered:

- IFiid: influence-function standard error assuming iid returns
- IFcor: influence-function standard error with a Newey-West (HAC) correction
- BOOTiid: iid bootstrap (arch.bootstrap.IIDBootstrap)
- BOOTcor: stationary block bootstrap (arch.bootstrap.StationaryBootstrap)

A requested estimator that is unknown, or a bootstrap estimator whose
arch.bootstrap backend cannot be imported, raises UnavailableCollaborator;
it is never silently skipped.

Contents
--------
- SEControl: Settings for the standard-error computation
- StandardErrorEstimator: Interface
- InfluenceFunctionSE / BootstrapSE: Concrete estimators
- es_influence_function: Influence function of historical ES
- get_standard_error_estimator / standard_errors: Registry access
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from loguru import logger

from .exceptions import UnavailableCollaborator
from .univariate import HistoricalES, historical_tail


#----------------------------------------------------------
# Settings
#----------------------------------------------------------
@dataclass(frozen=True)
class SEControl:
    """
    Settings for standard-error estimation.

    Parameters
    ----------
    se_methods : Tuple[str, ...]
        Names of the registered estimators to run. Default ("IFiid", "IFcor").
    clean_outliers : bool
        If True, returns are cleaned with "locScaleRob" before estimation.
    n_boot : int
        Bootstrap replications for the BOOT* estimators.
    block_length : float, optional
        Expected block length for BOOTcor. Estimated from the data if None.
    seed : int, optional
        Seed for the bootstrap generators.
    """
    se_methods: Tuple[str, ...] = ("IFiid", "IFcor")
    clean_outliers: bool = False
    n_boot: int = 1000
    block_length: Optional[float] = None
    seed: Optional[int] = None

    @property
    def clean_method(self) -> str:
        return "locScaleRob" if self.clean_outliers else "none"


def _require(module_name: str):
    try:
        return importlib.import_module(module_name)
    except ImportError as error:
        raise UnavailableCollaborator(
            f"Package '{module_name.split('.')[0]}' is needed for standard errors. Please install it."
        ) from error


#----------------------------------------------------------
# Interface
#----------------------------------------------------------
class StandardErrorEstimator(ABC):
    """Standard error of historical ES for one return series."""
    name: str

    @abstractmethod
    def standard_error(self, series, alpha: float) -> float:
        """Return the standard error of historical ES at tail probability `alpha`."""


#----------------------------------------------------------
# Influence Function Estimators
#----------------------------------------------------------
def es_influence_function(series, alpha: float) -> np.ndarray:
    """
    Main
    ----
    Evaluate the influence function of historical ES at every observation.

    With q the alpha-quantile and mu_a the tail mean, the tail mean has
    influence (r - q) 1{r <= q} / alpha + q - mu_a; ES is its negative.
    """
    values = np.asarray(series, dtype=float).reshape(-1)
    quantile, in_tail = historical_tail(values, alpha)
    tail_mean = values[in_tail].mean()
    return -((values - quantile) * in_tail / alpha + quantile - tail_mean)


class InfluenceFunctionSE(StandardErrorEstimator):
    """
    Standard error of the mean of the influence function, from a
    statsmodels OLS on a constant (plain or Newey-West HAC covariance).
    """

    def __init__(self, name: str, hac: bool = False):
        self.name = name
        self.hac = hac

    def standard_error(self, series, alpha):
        influence = es_influence_function(series, alpha)
        n_obs = influence.shape[0]
        model = sm.OLS(influence, np.ones(n_obs))

        if self.hac:
            max_lags = int(np.floor(4 * (n_obs / 100) ** (2 / 9)))
            fitted = model.fit(cov_type="HAC", cov_kwds={"maxlags": max_lags})
        else:
            fitted = model.fit()
        return float(fitted.bse[0])


#----------------------------------------------------------
# Bootstrap Estimators
#----------------------------------------------------------
class BootstrapSE(StandardErrorEstimator):
    """Bootstrap standard error of historical ES with arch.bootstrap."""

    def __init__(self, name: str, control: SEControl, dependent: bool = False):
        self.name = name
        self.control = control
        self.dependent = dependent

    def standard_error(self, series, alpha):
        bootstrap_module = _require("arch.bootstrap")
        values = np.asarray(series, dtype=float).reshape(-1)
        estimator = HistoricalES()

        def statistic(sample):
            return estimator.es(alpha, series=sample)

        if self.dependent:
            block_length = self.control.block_length
            if block_length is None:
                block_length = float(bootstrap_module.optimal_block_length(values)["stationary"].iloc[0])
            logger.debug(f"Stationary bootstrap with expected block length {block_length:.2f}")
            bootstrap = bootstrap_module.StationaryBootstrap(block_length, values, seed=self.control.seed)
        else:
            bootstrap = bootstrap_module.IIDBootstrap(values, seed=self.control.seed)

        covariance = bootstrap.cov(statistic, reps=self.control.n_boot)
        return float(np.sqrt(np.squeeze(covariance)))


#----------------------------------------------------------
# Registry
#----------------------------------------------------------
def get_standard_error_estimator(name: str, control: Optional[SEControl] = None) -> StandardErrorEstimator:
    """
    Look up a registered standard-error estimator by name.

    Raises
    ------
    UnavailableCollaborator
        If no estimator is registered under `name`.
    """
    control = control or SEControl()
    registry = {
        "IFiid": lambda: InfluenceFunctionSE("IFiid"),
        "IFcor": lambda: InfluenceFunctionSE("IFcor", hac=True),
        "BOOTiid": lambda: BootstrapSE("BOOTiid", control),
        "BOOTcor": lambda: BootstrapSE("BOOTcor", control, dependent=True),
    }
    if name not in registry:
        raise UnavailableCollaborator(
            f"Unknown standard-error method '{name}'. Available: {sorted(registry)}"
        )
    return registry[name]()


def standard_errors(returns: pd.DataFrame, alpha: float, control: Optional[SEControl] = None,
                    estimators=None) -> pd.DataFrame:
    """
    Main
    ----
    Standard errors of historical ES for every column of `returns`.

    Parameters
    ----------
    returns : pd.DataFrame
        Return matrix (T x N).
    alpha : float
        Tail probability.
    control : SEControl, optional
        Which registered estimators to run and how.
    estimators : list of StandardErrorEstimator, optional
        Explicit estimators, used instead of the registry lookup.

    Returns
    -------
    pd.DataFrame
        One row per estimator (indexed by name), one column per series.
    """
    control = control or SEControl()
    if estimators is None:
        estimators = [get_standard_error_estimator(name, control) for name in control.se_methods]

    rows = {}
    for estimator in estimators:
        logger.info(f"Computing {estimator.name} standard errors for {returns.shape[1]} series")
        rows[estimator.name] = {
            column: estimator.standard_error(returns[column].dropna().to_numpy(), alpha)
            for column in returns.columns
        }
    return pd.DataFrame.from_dict(rows, orient="index", columns=returns.columns)

"""
Expected Shortfall Dispatcher
-----------------------------

Public entry point of pyes. `estimate_es` (aliased ES, CVaR and ETL)
validates the inputs, optionally cleans the returns, resolves the moments,
routes to a single-series or component strategy, applies the
reasonableness checks and the sign convention, and returns an annotated
result.

Moment precedence
-----------------
Every moment (mu, sigma, m3, m4) is resolved by the same rule, in
`resolve_moments`: a value supplied by the caller wins; otherwise it is
estimated from the (cleaned) returns; otherwise the call fails. Passing any
moment also switches cleaning off, since the caller's moments already
describe the data they want used.

Sign convention
---------------
With invert=True (default) ES is reported as a positive loss (0.03 = a 3%
expected loss in the tail). With invert=False the raw, quantile-consistent
number is returned, i.e. the same magnitude with a negative sign.

Authors
-------
Alessandro Dodon, Niccolò Lecce, Marco Gasparetti

Contents
--------
- estimate_es (ES, CVaR, ETL): Main entry point
- as_return_frame: Normalise any return input to a DataFrame
- resolve_weights: Validate weights or default to equal weighting
- resolve_moments: Apply the moment precedence rule
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from .checks import check_estimate, check_estimates
from .cleaning import clean_returns
from .component import decomposer_strategy
from .exceptions import DimensionMismatch, InvalidMoments, MissingInput
from .moments import MomentSet, coskewness, cokurtosis, sample_covariance, sample_mean
from .quantile import tail_probability
from .standard_errors import SEControl, standard_errors
from .types import (
    CleanMethod,
    ComponentES,
    ESEstimate,
    Method,
    PortfolioMode,
    parse_option,
)
from .univariate import single_series_strategy


#----------------------------------------------------------
# Input Normalisation
#----------------------------------------------------------
def as_return_frame(returns) -> pd.DataFrame:
    """
    Convert a return series or matrix to a float DataFrame (columns = assets).

    A Series keeps its name ("Series" if unnamed); a 1D array becomes a
    single column "Series"; a 2D array gets columns "Asset_1" ... "Asset_N".
    """
    if isinstance(returns, pd.DataFrame):
        return returns.astype(float)
    if isinstance(returns, pd.Series):
        return returns.astype(float).to_frame(name=returns.name if returns.name is not None else "Series")

    data = np.asarray(returns, dtype=float)
    if data.ndim == 1:
        return pd.DataFrame({"Series": data})
    if data.ndim == 2:
        return pd.DataFrame(data, columns=[f"Asset_{i + 1}" for i in range(data.shape[1])])
    raise DimensionMismatch(f"Returns must be 1D or 2D, got shape {data.shape}")


def resolve_weights(weights, n_assets: int, mode: PortfolioMode) -> Optional[np.ndarray]:
    """
    Validate the weight vector, or default to 1/N in component mode.

    Raises
    ------
    DimensionMismatch
        If the number of weights differs from the number of assets.
    """
    if weights is None:
        if mode is PortfolioMode.COMPONENT:
            logger.info("No weights passed in, assuming equal weighted portfolio")
            return np.full(n_assets, 1.0 / n_assets)
        return None

    w = np.asarray(weights, dtype=float).reshape(-1)
    if w.shape[0] != n_assets:
        raise DimensionMismatch(
            f"Number of items in weights ({w.shape[0]}) not equal to number of assets ({n_assets})"
        )
    return w


def resolve_moments(frame: Optional[pd.DataFrame], higher: bool, mu=None, sigma=None,
                    m3=None, m4=None) -> MomentSet:
    """
    Main
    ----
    Build the MomentSet used by moment-based methods.

    Caller-supplied values win; missing values are estimated from `frame`;
    anything still missing is an error.

    Parameters
    ----------
    frame : pd.DataFrame, optional
        Return matrix without missing values.
    higher : bool
        Whether coskewness and cokurtosis are required.
    mu, sigma, m3, m4 : array-like, optional
        Caller-supplied moments.

    Raises
    ------
    MissingInput
        If mu or sigma is neither supplied nor derivable.
    InvalidMoments
        If higher moments are required but neither supplied nor derivable.
    DimensionMismatch
        If supplied moments do not match the number of return columns.
    """
    data = None if frame is None else frame.to_numpy(dtype=float)

    def derive(name, supplied, estimator, error=MissingInput):
        if supplied is not None:
            return supplied
        if data is None:
            raise error(f"'{name}' was not supplied and no returns are available to estimate it.")
        return estimator()

    mu = derive("mu", mu, lambda: sample_mean(data))
    mu_vector = np.atleast_1d(np.asarray(mu, dtype=float)).reshape(-1)
    if data is not None and mu_vector.shape[0] != data.shape[1]:
        raise DimensionMismatch(
            f"Number of items in mu ({mu_vector.shape[0]}) not equal to number of columns ({data.shape[1]})"
        )
    sigma = derive("sigma", sigma, lambda: sample_covariance(data))

    if higher:
        m3 = derive("m3", m3, lambda: coskewness(data, mu_vector), error=InvalidMoments)
        m4 = derive("m4", m4, lambda: cokurtosis(data, mu_vector), error=InvalidMoments)

    return MomentSet(mu=mu_vector, sigma=sigma, m3=m3 if higher else None, m4=m4 if higher else None)


#----------------------------------------------------------
# Code Paths
#----------------------------------------------------------
def _single_series(frame, names, method, alpha, operational, moment_set):
    strategy = single_series_strategy(method, operational=operational)
    if strategy.needs_returns and frame is None:
        raise MissingInput("Historical ES requires returns; moments alone are not enough.")

    values, diagnostics = {}, {}
    for index, name in enumerate(names):
        if moment_set is not None and not strategy.needs_returns:
            es_value, details = strategy.estimate(alpha, moments=moment_set.asset(index))
        else:
            # Moments estimated from the column itself: a degenerate column only loses its own entry
            try:
                es_value, details = strategy.estimate(alpha, series=frame[name].dropna().to_numpy())
            except InvalidMoments as error:
                logger.warning(f"Moments of {name} are unusable, reporting NaN: {error}")
                es_value, details = np.nan, {"error": str(error)}
        values[name] = es_value
        diagnostics[name] = details

    return pd.Series(values, dtype=float).reindex(names), diagnostics


def _decompose(frame, weights, method, alpha, operational, mu, sigma, m3, m4):
    decomposer = decomposer_strategy(method, operational=operational)
    if decomposer.needs_returns:
        if frame is None:
            raise MissingInput("Historical decomposition requires returns; moments alone are not enough.")
        return decomposer.decompose(weights, alpha, returns=frame.to_numpy(dtype=float))

    moment_set = resolve_moments(frame, decomposer.needs_higher_moments, mu, sigma, m3, m4)
    return decomposer.decompose(weights, alpha, moments=moment_set)


#----------------------------------------------------------
# Main Entry Point
#----------------------------------------------------------
def estimate_es(returns=None, p=0.95, method="modified", clean="none", mode="single",
                weights=None, mu=None, sigma=None, m3=None, m4=None,
                invert=True, operational=True, compute_se=False,
                se_control: Optional[SEControl] = None, se_estimators=None):
    """
    Main
    ----
    Estimate Expected Shortfall (ES / CVaR / ETL) of return series or a portfolio.

    Parameters
    ----------
    returns : pd.DataFrame, pd.Series or array-like, optional
        Periodic returns in decimal format (T x N). Required for the historical
        method; otherwise the moments may be supplied instead.
    p : float, optional
        Confidence level (e.g. 0.95). Values below 0.51 are read as the tail
        probability itself. Default is 0.95.
    method : {"modified", "gaussian", "historical"}, optional
        Estimation method. Default is "modified".
    clean : {"none", "boudt", "geltner", "locScaleRob"}, optional
        Cleaning applied to `returns` when no moments are supplied. Default is "none".
    mode : {"single", "component"}, optional
        "single" gives one ES per column, or the portfolio ES when `weights`
        is given; "component" gives the Euler decomposition. Default is "single".
    weights : array-like, optional
        Portfolio weights (length N). Equal weights in component mode if None.
    mu, sigma, m3, m4 : array-like, optional
        Mean vector, covariance matrix, coskewness and cokurtosis (any layout
        accepted by `expand_comoment`). Estimated from returns when absent.
    invert : bool, optional
        Report ES as a positive loss (True, default) or as a negative,
        quantile-consistent number (False).
    operational : bool, optional
        Replace modified ES by modified VaR when it falls below it. Default is True.
    compute_se : bool, optional
        Attach standard errors. Forces historical, single mode, invert=False.
    se_control : SEControl, optional
        Standard-error settings. Defaults to SEControl().
    se_estimators : list of StandardErrorEstimator, optional
        Custom estimators used instead of those named in `se_control`.

    Returns
    -------
    ESEstimate or ComponentES
        Annotated estimate. Quality problems are flagged, never raised.

    Raises
    ------
    MissingInput
        If neither returns nor moments are supplied.
    DimensionMismatch
        If weights or moments do not match the number of assets.
    InvalidMoments
        If the modified method has no usable higher moments.
    InsufficientTailData
        If the historical tail is empty.
    UnavailableCollaborator
        If standard errors are requested but cannot be computed.
    ValueError
        If an option is not recognised or p lies outside [0, 1].
    """
    method = parse_option(Method, method)
    mode = parse_option(PortfolioMode, mode)
    clean = parse_option(CleanMethod, clean)

    if compute_se:
        se_control = se_control or SEControl()
        method, mode, invert = Method.HISTORICAL, PortfolioMode.SINGLE, False
        clean = parse_option(CleanMethod, se_control.clean_method)
        if weights is not None:
            logger.info("Standard errors are computed per series; ignoring weights")
            weights = None

    alpha = tail_probability(p)
    supplied_moments = any(moment is not None for moment in (mu, sigma, m3, m4))

    if returns is None and mu is None:
        raise MissingInput("Nothing to do! You must pass either returns or the moments mu, sigma, etc.")

    frame = None
    if returns is not None:
        frame = as_return_frame(returns)
        if mode is PortfolioMode.COMPONENT or weights is not None or clean is not CleanMethod.NONE:
            frame = frame.dropna()
        if clean is not CleanMethod.NONE and not supplied_moments:
            frame = clean_returns(frame, clean)

    if frame is not None:
        names = list(frame.columns)
    else:
        names = [f"Asset_{i + 1}" for i in range(np.atleast_1d(mu).shape[0])]

    w = resolve_weights(weights, len(names), mode)
    sign = 1.0 if invert else -1.0

    if mode is PortfolioMode.COMPONENT:
        logger.info(f"Component {method.value} ES for {len(names)} assets at alpha={alpha:.4f}")
        result = _decompose(frame, w, method, alpha, operational, mu, sigma, m3, m4)
        checked = check_estimate(result.total, label="portfolio")
        return ComponentES(
            total=sign * checked.value,
            contribution=pd.Series(sign * result.contribution, index=names),
            pct_contribution=pd.Series(result.pct_contribution, index=names),
            method=method,
            alpha=alpha,
            weights=pd.Series(w, index=names),
            flag=checked.flag,
            raw_total=sign * result.total,
            diagnostics=result.diagnostics,
        )

    if w is not None:
        logger.info(f"Portfolio {method.value} ES at alpha={alpha:.4f}")
        result = _decompose(frame, w, method, alpha, operational, mu, sigma, m3, m4)
        raw = pd.Series({"Portfolio": result.total}, dtype=float)
        diagnostics = {"Portfolio": result.diagnostics}
    else:
        logger.info(f"Univariate {method.value} ES for {len(names)} series at alpha={alpha:.4f}")
        moment_set = None
        if supplied_moments:
            moment_set = resolve_moments(
                None if frame is None else frame.dropna(),
                method is Method.MODIFIED, mu, sigma, m3, m4,
            )
        raw, diagnostics = _single_series(frame, names, method, alpha, operational, moment_set)

    corrected, flags = check_estimates(raw)

    se_table = None
    if compute_se:
        se_table = standard_errors(frame, alpha, control=se_control, estimators=se_estimators)

    return ESEstimate(
        values=sign * corrected,
        raw=sign * raw,
        flags=flags,
        method=method,
        alpha=alpha,
        standard_errors=se_table,
        diagnostics=diagnostics,
    )


# Synonyms used in the literature
ES = CVaR = ETL = estimate_es

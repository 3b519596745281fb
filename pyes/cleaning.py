"""
Data Cleaning Module
--------------------

Outlier treatment applied to raw returns before moments are estimated.
Higher-moment estimators such as modified ES are especially sensitive to a
single extreme observation, so the dispatcher can route returns through one
of these cleaners first.

The cleaners only run on raw returns: when the caller passes moments
directly, the returns are left untouched.

Contents
--------
- clean_returns: Entry point, dispatches on CleanMethod
- clean_boudt: Multivariate winsorisation of extreme rows (Boudt, Peterson and Croux, 2008)
- clean_geltner: Geltner unsmoothing for autocorrelated (illiquid) returns
- clean_loc_scale_robust: Per-column winsorisation around a robust location and scale
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
import numpy as np
import pandas as pd
from loguru import logger
from scipy.stats import chi2
from statsmodels.robust.scale import mad
from statsmodels.tsa.stattools import acf

from .types import CleanMethod, parse_option


#----------------------------------------------------------
# Boudt Cleaning (Multivariate Winsorisation)
#----------------------------------------------------------
def _squared_mahalanobis(data, center, scatter):
    deviations = data - center
    precision = np.linalg.pinv(np.atleast_2d(scatter))
    return np.einsum("ti,ij,tj->t", deviations, precision, deviations)


def clean_boudt(returns: pd.DataFrame, alpha: float = 0.01, trim: float = 1e-3) -> pd.DataFrame:
    """
    Main
    ----
    Shrink the most extreme rows of a return matrix towards its center.

    Location and scatter come from a one-step reweighted estimator: the
    sample estimates are recomputed on the rows whose squared Mahalanobis
    distance is below the 97.5% chi-square quantile. Among the floor(alpha*T)
    rows with the largest distance, those beyond the (1 - trim) chi-square
    quantile are pulled back onto that boundary.

    Parameters
    ----------
    returns : pd.DataFrame
        Return matrix (T x N) without missing values.
    alpha : float, optional
        Maximum fraction of rows that may be cleaned. Default is 0.01.
    trim : float, optional
        Tail probability of the chi-square cut-off. Default is 0.001.

    Returns
    -------
    pd.DataFrame
        Cleaned returns with the same shape, index and columns.
    """
    data = returns.to_numpy(dtype=float)
    n_obs, n_assets = data.shape

    center = data.mean(axis=0)
    scatter = np.cov(data, rowvar=False)
    distances = _squared_mahalanobis(data, center, scatter)

    inliers = distances <= chi2.ppf(0.975, n_assets)
    if inliers.sum() > n_assets + 1:
        center = data[inliers].mean(axis=0)
        scatter = np.cov(data[inliers], rowvar=False)
        distances = _squared_mahalanobis(data, center, scatter)

    threshold = chi2.ppf(1 - trim, n_assets)
    n_extreme = int(np.floor(alpha * n_obs))
    candidates = np.argsort(distances)[::-1][:n_extreme]
    outliers = candidates[distances[candidates] > threshold]

    cleaned = data.copy()
    for row in outliers:
        shrink = np.sqrt(threshold / distances[row])
        cleaned[row] = center + shrink * (data[row] - center)

    logger.debug(f"Boudt cleaning winsorised {len(outliers)} of {n_obs} rows")
    return pd.DataFrame(cleaned, index=returns.index, columns=returns.columns)


#----------------------------------------------------------
# Geltner Unsmoothing
#----------------------------------------------------------
def clean_geltner(returns: pd.DataFrame) -> pd.DataFrame:
    """
    Main
    ----
    Remove first-order autocorrelation from each column:

        r*_t = (r_t - rho * r_(t-1)) / (1 - rho)

    with rho the lag-1 autocorrelation of the column. The first row has no
    predecessor and is dropped.
    """
    columns = {}
    for name in returns.columns:
        series = returns[name]
        rho = acf(series.to_numpy(dtype=float), nlags=1, fft=False)[1]
        columns[name] = (series - rho * series.shift(1)) / (1 - rho)
        logger.debug(f"Geltner unsmoothing {name}: rho = {rho:.4f}")

    return pd.DataFrame(columns, index=returns.index).iloc[1:]


#----------------------------------------------------------
# Robust Location/Scale Winsorisation
#----------------------------------------------------------
def clean_loc_scale_robust(returns: pd.DataFrame, cutoff: float = 3.0) -> pd.DataFrame:
    """
    Winsorise each column at median +/- cutoff * MAD.

    The MAD is the normal-consistent median absolute deviation from
    statsmodels. Columns with zero MAD are left unchanged.
    """
    cleaned = returns.copy()
    for name in returns.columns:
        values = returns[name].to_numpy(dtype=float)
        location = np.median(values)
        scale = mad(values)
        if scale > 0:
            cleaned[name] = np.clip(values, location - cutoff * scale, location + cutoff * scale)
    return cleaned


#----------------------------------------------------------
# Entry Point
#----------------------------------------------------------
def clean_returns(returns: pd.DataFrame, method="none", alpha: float = 0.01) -> pd.DataFrame:
    """
    Main
    ----
    Clean a return matrix with the requested method.

    Parameters
    ----------
    returns : pd.DataFrame
        Return matrix (T x N).
    method : CleanMethod or str, optional
        One of "none", "boudt", "geltner", "locScaleRob". Default is "none".
    alpha : float, optional
        Fraction of observations the Boudt method may clean. Default is 0.01.

    Returns
    -------
    pd.DataFrame
        Cleaned returns (a copy; the input is never modified).

    Raises
    ------
    ValueError
        If the method is not supported.
    """
    method = parse_option(CleanMethod, method)

    if method is CleanMethod.NONE:
        return returns.copy()

    logger.info(f"Cleaning returns with method '{method.value}'")
    if method is CleanMethod.BOUDT:
        return clean_boudt(returns, alpha=alpha)
    if method is CleanMethod.GELTNER:
        return clean_geltner(returns)
    return clean_loc_scale_robust(returns)

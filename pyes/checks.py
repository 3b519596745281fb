"""
Reasonableness Checks Module
----------------------------

Post-processing applied to every Expected Shortfall estimate, expressed as a
pure transform from a raw value to a CheckedValue (corrected value + flag).

Policy, with ES expressed as a positive loss fraction of capital:
- non-finite estimate   -> NaN, flagged NON_FINITE
- negative estimate     -> NaN, flagged INVERTED_RISK (a gain is not a risk)
- estimate above 1      -> 1.0, flagged OVER_CAPITAL (loss capped at 100%)

Flags are logged as warnings and returned; they never raise.
"""

#----------------------------------------------------------
# Packages
#----------------------------------------------------------
import numpy as np
import pandas as pd
from loguru import logger

from .types import CheckedValue, QualityFlag


#----------------------------------------------------------
# Single Value
#----------------------------------------------------------
def check_estimate(value, label: str = "") -> CheckedValue:
    """
    Main
    ----
    Apply the reasonableness policy to a single ES estimate.

    Parameters
    ----------
    value : float
        Raw ES as a positive loss.
    label : str, optional
        Column or portfolio name used in the log message.

    Returns
    -------
    CheckedValue
        Corrected value, original value and quality flag.
    """
    raw = float(value)
    where = f" for {label}" if label else ""

    if not np.isfinite(raw):
        logger.warning(f"ES calculation returned non-finite result{where}: {raw}")
        return CheckedValue(value=np.nan, raw=raw, flag=QualityFlag.NON_FINITE)

    if raw < 0:
        logger.warning(f"ES calculation produces unreliable result (inverse risk){where}: {raw}")
        return CheckedValue(value=np.nan, raw=raw, flag=QualityFlag.INVERTED_RISK)

    if raw > 1:
        logger.warning(f"ES calculation produces unreliable result (risk over 100%){where}: {raw}")
        return CheckedValue(value=1.0, raw=raw, flag=QualityFlag.OVER_CAPITAL)

    return CheckedValue(value=raw, raw=raw)


#----------------------------------------------------------
# Series of Values
#----------------------------------------------------------
def check_estimates(values: pd.Series):
    """
    Apply `check_estimate` to every entry of a Series.

    Returns
    -------
    Tuple[pd.Series, pd.Series]
        Corrected values and flags, indexed like `values`.
    """
    checked = {name: check_estimate(value, label=str(name)) for name, value in values.items()}
    corrected = pd.Series({name: item.value for name, item in checked.items()}, dtype=float)
    flags = pd.Series({name: item.flag for name, item in checked.items()}, dtype=object)
    return corrected.reindex(values.index), flags.reindex(values.index)

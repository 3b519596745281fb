"""
Types Module
------------

Core data structures shared across pyes:

- Method / PortfolioMode / CleanMethod: closed sets of string options
- QualityFlag / CheckedValue: outcome of the reasonableness pass
- Decomposition: raw output of a portfolio decomposer
- ESEstimate: result of single-series mode (one value per column)
- ComponentES: result of component mode (total, contributions, percentages)

Enums subclass `str`, so `Method("historical")` and `Method.HISTORICAL`
are interchangeable and compare equal to the plain string.
"""

#----------------------------------------------------------
# Packages
#----------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd


#----------------------------------------------------------
# Options
#----------------------------------------------------------
class Method(str, Enum):
    """Estimation method for ES."""
    HISTORICAL = "historical"
    GAUSSIAN = "gaussian"
    MODIFIED = "modified"


class PortfolioMode(str, Enum):
    """Univariate (per column or weighted total) vs. component decomposition."""
    SINGLE = "single"
    COMPONENT = "component"


class CleanMethod(str, Enum):
    """Data cleaning applied to raw returns before estimation."""
    NONE = "none"
    BOUDT = "boudt"
    GELTNER = "geltner"
    LOC_SCALE_ROB = "locScaleRob"


def parse_option(enum_cls, value):
    """Coerce `value` into a member of `enum_cls`, with a readable error."""
    try:
        return enum_cls(value)
    except ValueError:
        valid = [member.value for member in enum_cls]
        raise ValueError(f"{enum_cls.__name__} must be one of {valid}, got {value!r}") from None


#----------------------------------------------------------
# Reasonableness Annotations
#----------------------------------------------------------
class QualityFlag(str, Enum):
    """
    Result-quality annotation attached to every estimate.

    OK: value passed all checks.
    NON_FINITE: value was inf/NaN and has been replaced by NaN.
    INVERTED_RISK: value was negative (a gain, not a loss) and replaced by NaN.
    OVER_CAPITAL: value exceeded 1 (100% of capital) and was clamped to 1.
    """
    OK = "ok"
    NON_FINITE = "non_finite"
    INVERTED_RISK = "inverted_risk"
    OVER_CAPITAL = "over_capital"


@dataclass(frozen=True)
class CheckedValue:
    """A corrected value together with the raw value and its flag."""
    value: float
    raw: float
    flag: QualityFlag = QualityFlag.OK

    @property
    def ok(self) -> bool:
        return self.flag is QualityFlag.OK


#----------------------------------------------------------
# Decomposer Output
#----------------------------------------------------------
@dataclass(frozen=True)
class Decomposition:
    """
    Euler decomposition of a portfolio risk measure, as a positive loss.

    Parameters
    ----------
    total : float
        Portfolio ES.
    contribution : np.ndarray
        w_i * dES/dw_i for every asset; sums to `total`.
    pct_contribution : np.ndarray
        contribution / total; sums to 1.
    diagnostics : Dict[str, Any]
        Method-specific details (VaR, raw ES before override, ...).
    """
    total: float
    contribution: np.ndarray
    pct_contribution: np.ndarray
    diagnostics: Dict[str, Any] = field(default_factory=dict)


#----------------------------------------------------------
# Public Results
#----------------------------------------------------------
@dataclass(frozen=True)
class ESEstimate:
    """
    Single-series Expected Shortfall, one entry per column.

    Parameters
    ----------
    values : pd.Series
        ES after the reasonableness pass and sign convention.
    raw : pd.Series
        ES before the reasonableness pass (same sign convention).
    flags : pd.Series
        QualityFlag per column.
    method : Method
    alpha : float
        Tail probability used.
    standard_errors : pd.DataFrame, optional
        One row per standard-error method, one column per series.
    diagnostics : Dict[str, Dict[str, Any]]
        Per-column details (modified method: raw ES, VaR, override).
    """
    values: pd.Series
    raw: pd.Series
    flags: pd.Series
    method: Method
    alpha: float
    standard_errors: Optional[pd.DataFrame] = None
    diagnostics: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def value(self) -> float:
        """Scalar ES when exactly one column was estimated."""
        if len(self.values) != 1:
            raise ValueError(f"ESEstimate holds {len(self.values)} values; use .values instead.")
        return float(self.values.iloc[0])

    def to_frame(self) -> pd.DataFrame:
        """Tabular view: ES row, optional standard-error rows and the flag row."""
        frame = pd.DataFrame([self.values], index=["ES"])
        if self.standard_errors is not None:
            frame = pd.concat([frame, self.standard_errors])
        flags = pd.DataFrame([self.flags.map(lambda flag: flag.value)], index=["flag"])
        return pd.concat([frame.astype(object), flags])


@dataclass(frozen=True)
class ComponentES:
    """
    Component (Euler) decomposition of portfolio Expected Shortfall.

    `contribution` sums to `raw_total`; `total` equals `raw_total` unless the
    reasonableness pass replaced or clamped it (see `flag`).
    """
    total: float
    contribution: pd.Series
    pct_contribution: pd.Series
    method: Method
    alpha: float
    weights: pd.Series
    flag: QualityFlag = QualityFlag.OK
    raw_total: float = np.nan
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def to_frame(self) -> pd.DataFrame:
        """Per-asset table of weights, contributions and percentage contributions."""
        return pd.DataFrame({
            "weight": self.weights,
            "contribution": self.contribution,
            "pct_contribution": self.pct_contribution,
        })

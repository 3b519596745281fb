"""
pyes: Expected Shortfall Estimation and Decomposition

pyes estimates Expected Shortfall (ES), also known as Conditional
Value-at-Risk (CVaR) or Expected Tail Loss (ETL), for single return series and
for portfolios, and decomposes portfolio ES into additive per-asset
contributions.

Main Features
-------------
Three estimation methods are supported: historical (tail mean of observed
returns), Gaussian (closed form under normality) and modified (Cornish-Fisher
quantile with an Edgeworth tail expectation, accounting for skewness and
kurtosis). For portfolios, component ES is obtained by Euler decomposition,
so the contributions always add up to total ES.

Returns can be cleaned before estimation (Boudt winsorisation, Geltner
unsmoothing, robust location/scale winsorisation), moments can be supplied
directly, and standard errors of historical ES can be attached through
influence-function or bootstrap estimators.

Authors
-------
- Alessandro Dodon
- Niccolò Lecce
- Marco Gasparetti

Version
-------
0.1
"""
from .exceptions import (
    ESError,
    MissingInput,
    DimensionMismatch,
    InvalidMoments,
    InsufficientTailData,
    UnavailableCollaborator
)

from .types import (
    Method,
    PortfolioMode,
    CleanMethod,
    QualityFlag,
    CheckedValue,
    Decomposition,
    ESEstimate,
    ComponentES
)

from .moments import (
    MomentSet,
    SeriesMoments,
    PortfolioMoments,
    sample_mean,
    sample_covariance,
    coskewness,
    cokurtosis,
    estimate_moments,
    expand_comoment,
    compress_comoment,
    portfolio_moments
)

from .quantile import (
    tail_probability,
    empirical_quantile,
    gaussian_quantile,
    cornish_fisher_z,
    cornish_fisher_quantile,
    edgeworth_tail_expectation
)

from .univariate import (
    SingleSeriesES,
    HistoricalES,
    GaussianES,
    ModifiedES,
    gaussian_es,
    modified_es,
    modified_var
)

from .component import (
    PortfolioESDecomposer,
    HistoricalDecomposer,
    GaussianDecomposer,
    ModifiedDecomposer,
    modified_var_decomposition
)

from .checks import (
    check_estimate,
    check_estimates
)

from .cleaning import (
    clean_returns,
    clean_boudt,
    clean_geltner,
    clean_loc_scale_robust
)

from .standard_errors import (
    SEControl,
    StandardErrorEstimator,
    InfluenceFunctionSE,
    BootstrapSE,
    es_influence_function,
    get_standard_error_estimator,
    standard_errors
)

from .dispatch import (
    estimate_es,
    ES,
    CVaR,
    ETL,
    resolve_moments,
    resolve_weights
)

from .plots import (
    get_asset_color_map,
    plot_es_contributions,
    plot_es_estimates
)

__version__ = "0.1"

"""
Tests for dispatch.py: the estimate_es entry point, input validation, moment
precedence, sign convention and result annotations.
"""

import numpy as np
import pandas as pd
import pytest

from pyes import (
    CVaR,
    ES,
    ETL,
    ComponentES,
    DimensionMismatch,
    ESEstimate,
    InsufficientTailData,
    InvalidMoments,
    Method,
    MissingInput,
    QualityFlag,
    estimate_es,
    estimate_moments,
)


# =============================================================================
# CONCRETE SCENARIO
# =============================================================================

def test_historical_single_mode_concrete_scenario(two_asset_returns):
    result = estimate_es(two_asset_returns, p=0.95, method="historical")

    assert isinstance(result, ESEstimate)
    assert result.values["A"] == pytest.approx(0.10)
    assert result.values["B"] == pytest.approx(0.03)
    assert all(flag is QualityFlag.OK for flag in result.flags)


def test_single_series_value(two_asset_returns):
    result = estimate_es(two_asset_returns["A"], p=0.95, method="historical")
    assert result.value == pytest.approx(0.10)

    with pytest.raises(ValueError):
        estimate_es(two_asset_returns, p=0.95, method="historical").value


def test_aliases_point_to_estimate_es():
    assert ES is estimate_es
    assert CVaR is estimate_es
    assert ETL is estimate_es


def test_historical_p_of_one_raises(two_asset_returns):
    with pytest.raises(InsufficientTailData):
        estimate_es(two_asset_returns, p=1.0, method="historical")


def test_historical_p_near_one_keeps_the_worst_return(two_asset_returns):
    """Any alpha > 0 leaves the minimum at or below the interpolated quantile."""
    result = estimate_es(two_asset_returns, p=0.9999, method="historical")

    assert result.values["A"] == pytest.approx(0.10)
    assert result.values["B"] == pytest.approx(0.03)
    assert all(flag is QualityFlag.OK for flag in result.flags)


# =============================================================================
# VALIDATION
# =============================================================================

def test_missing_input():
    with pytest.raises(MissingInput):
        estimate_es(method="gaussian")


def test_historical_needs_returns():
    with pytest.raises(MissingInput):
        estimate_es(mu=[0.0], sigma=[[1e-4]], method="historical")


def test_weight_length_mismatch(normal_returns):
    with pytest.raises(DimensionMismatch):
        estimate_es(normal_returns, method="gaussian", mode="component", weights=[0.5, 0.5])


def test_mu_length_mismatch(normal_returns):
    with pytest.raises(DimensionMismatch):
        estimate_es(normal_returns, method="gaussian", mode="component", mu=[0.0, 0.0])


def test_sigma_shape_mismatch():
    with pytest.raises(DimensionMismatch):
        estimate_es(mu=[0.0, 0.0], sigma=np.eye(3) * 1e-4, method="gaussian", mode="component")


def test_modified_without_higher_moments():
    with pytest.raises(InvalidMoments):
        estimate_es(mu=[0.0], sigma=[[1e-4]], method="modified")


@pytest.mark.parametrize("option", [
    {"method": "kernel"},
    {"mode": "marginal"},
    {"clean": "winsor"},
])
def test_unknown_options_raise(normal_returns, option):
    with pytest.raises(ValueError):
        estimate_es(normal_returns, **option)


# =============================================================================
# SIGN CONVENTION
# =============================================================================

@pytest.mark.parametrize("method", ["historical", "gaussian", "modified"])
def test_invert_flips_sign(rng, method):
    returns = pd.Series(rng.normal(-0.02, 0.01, size=250), name="Losing")

    inverted = estimate_es(returns, method=method)
    raw = estimate_es(returns, method=method, invert=False)

    assert inverted.value > 0
    assert raw.value == pytest.approx(-inverted.value)


def test_invert_applies_to_components(normal_returns):
    inverted = estimate_es(normal_returns, method="gaussian", mode="component")
    raw = estimate_es(normal_returns, method="gaussian", mode="component", invert=False)

    assert raw.total == pytest.approx(-inverted.total)
    assert np.allclose(raw.contribution, -inverted.contribution)
    assert np.allclose(raw.pct_contribution, inverted.pct_contribution)


# =============================================================================
# COMPONENT MODE
# =============================================================================

@pytest.mark.parametrize("method", ["historical", "gaussian", "modified"])
def test_equal_weight_default(skewed_returns, method):
    default = estimate_es(skewed_returns, method=method, mode="component")
    explicit = estimate_es(skewed_returns, method=method, mode="component", weights=[1 / 3] * 3)

    assert isinstance(default, ComponentES)
    assert default.total == explicit.total
    pd.testing.assert_series_equal(default.contribution, explicit.contribution)
    pd.testing.assert_series_equal(default.pct_contribution, explicit.pct_contribution)


@pytest.mark.parametrize("method", ["historical", "gaussian", "modified"])
def test_component_result_is_consistent(skewed_returns, portfolio_weights, method):
    result = estimate_es(skewed_returns, method=method, mode="component", weights=portfolio_weights)

    assert result.method is Method(method)
    assert list(result.contribution.index) == ["X", "Y", "Z"]
    assert result.contribution.sum() == pytest.approx(result.total)
    assert result.pct_contribution.sum() == pytest.approx(1.0)
    assert result.flag is QualityFlag.OK

    table = result.to_frame()
    assert list(table.columns) == ["weight", "contribution", "pct_contribution"]


def test_component_from_moments_only(skewed_returns, portfolio_weights):
    moments = estimate_moments(skewed_returns, higher=True)

    from_returns = estimate_es(skewed_returns, method="modified", mode="component", weights=portfolio_weights)
    from_moments = estimate_es(
        method="modified", mode="component", weights=portfolio_weights,
        mu=moments.mu, sigma=moments.sigma, m3=moments.m3, m4=moments.m4,
    )

    assert from_moments.total == pytest.approx(from_returns.total)
    assert np.allclose(from_moments.contribution.values, from_returns.contribution.values)
    assert list(from_moments.contribution.index) == ["Asset_1", "Asset_2", "Asset_3"]


def test_single_mode_with_weights_gives_portfolio_total(skewed_returns, portfolio_weights):
    single = estimate_es(skewed_returns, method="gaussian", weights=portfolio_weights)
    component = estimate_es(skewed_returns, method="gaussian", mode="component", weights=portfolio_weights)

    assert list(single.values.index) == ["Portfolio"]
    assert single.value == pytest.approx(component.total)


# =============================================================================
# MOMENT PRECEDENCE AND CLEANING
# =============================================================================

def test_caller_moments_win_over_returns(normal_returns):
    sigma = np.diag([1e-4, 4e-4, 9e-4])
    result = estimate_es(normal_returns, method="gaussian", mu=np.zeros(3), sigma=sigma)
    expected = estimate_es(method="gaussian", mu=np.zeros(3), sigma=sigma)

    assert np.allclose(result.values.values, expected.values.values)


def test_partial_moments_are_completed_from_returns(normal_returns):
    mu = np.zeros(3)
    result = estimate_es(normal_returns, method="gaussian", mode="component", mu=mu)
    sigma = normal_returns.cov().to_numpy()
    expected = estimate_es(method="gaussian", mode="component", mu=mu, sigma=sigma)

    assert result.total == pytest.approx(expected.total)


def test_supplied_moments_bypass_cleaning(skewed_returns):
    moments = estimate_moments(skewed_returns, higher=False)
    kwargs = dict(method="gaussian", mode="component", mu=moments.mu, sigma=moments.sigma)

    cleaned = estimate_es(skewed_returns, clean="boudt", **kwargs)
    untouched = estimate_es(skewed_returns, clean="none", **kwargs)

    assert cleaned.total == pytest.approx(untouched.total)


def test_cleaning_changes_modified_estimate(skewed_returns):
    raw = estimate_es(skewed_returns, method="modified", clean="none")
    cleaned = estimate_es(skewed_returns, method="modified", clean="locScaleRob")

    assert not np.allclose(raw.values.values, cleaned.values.values)


# =============================================================================
# REASONABLENESS ANNOTATIONS
# =============================================================================

def test_inverted_risk_is_flagged_not_raised(pathological_moments):
    result = estimate_es(
        method="modified", operational=False,
        mu=pathological_moments.mu, sigma=pathological_moments.sigma,
        m3=pathological_moments.m3, m4=pathological_moments.m4,
    )

    assert result.flags.iloc[0] is QualityFlag.INVERTED_RISK
    assert np.isnan(result.value)
    assert result.raw.iloc[0] < 0
    assert result.diagnostics["Asset_1"]["override"] is False


def test_operational_override_is_reported(pathological_moments):
    result = estimate_es(
        method="modified",
        mu=pathological_moments.mu, sigma=pathological_moments.sigma,
        m3=pathological_moments.m3, m4=pathological_moments.m4,
    )
    details = result.diagnostics["Asset_1"]

    assert details["override"] is True
    assert result.value == pytest.approx(details["var"])
    assert result.flags.iloc[0] is QualityFlag.OK


def test_over_capital_is_clamped():
    result = estimate_es(method="gaussian", mu=[0.0], sigma=[[1.0]])

    assert result.flags.iloc[0] is QualityFlag.OVER_CAPITAL
    assert result.value == 1.0
    assert result.raw.iloc[0] > 1.0


def test_bad_column_does_not_break_the_others(rng):
    frame = pd.DataFrame({
        "Normal": rng.normal(0.0, 0.01, size=250),
        "Explosive": rng.normal(0.0, 2.0, size=250),
    })
    result = estimate_es(frame, method="gaussian")

    assert result.flags["Normal"] is QualityFlag.OK
    assert result.flags["Explosive"] is QualityFlag.OVER_CAPITAL
    assert 0 < result.values["Normal"] < 1

    table = result.to_frame()
    assert list(table.index) == ["ES", "flag"]
    assert table.loc["flag", "Explosive"] == "over_capital"


def test_constant_column_is_recovered_on_its_own(rng):
    frame = pd.DataFrame({
        "Equity": rng.normal(0.0, 0.01, size=250),
        "Cash": np.zeros(250),
    })
    result = estimate_es(frame, method="modified")

    assert result.flags["Cash"] is QualityFlag.NON_FINITE
    assert np.isnan(result.values["Cash"])
    assert "error" in result.diagnostics["Cash"]
    assert result.flags["Equity"] is QualityFlag.OK
    assert 0 < result.values["Equity"] < 1


@pytest.mark.parametrize("method", ["gaussian", "modified"])
def test_single_observation_column_is_recovered_on_its_own(rng, method):
    new_listing = np.full(250, np.nan)
    new_listing[-1] = 0.01
    frame = pd.DataFrame({
        "Long": rng.normal(0.0, 0.01, size=250),
        "New": new_listing,
    })
    result = estimate_es(frame, method=method)

    assert result.flags["New"] is QualityFlag.NON_FINITE
    assert np.isnan(result.values["New"])
    assert result.flags["Long"] is QualityFlag.OK
    assert 0 < result.values["Long"] < 1


def test_degenerate_supplied_moments_still_raise():
    with pytest.raises(InvalidMoments):
        estimate_es(method="modified", mu=[0.0], sigma=[[0.0]], m3=[[0.0]], m4=[[0.0]])


# =============================================================================
# STANDARD ERRORS
# =============================================================================

def test_standard_errors_force_historical_uninverted(normal_returns):
    result = estimate_es(normal_returns, method="modified", mode="component", compute_se=True)

    assert isinstance(result, ESEstimate)
    assert result.method is Method.HISTORICAL
    assert (result.raw < 0).all()
    assert list(result.standard_errors.index) == ["IFiid", "IFcor"]
    assert (result.standard_errors > 0).all().all()
    assert list(result.to_frame().index) == ["ES", "IFiid", "IFcor", "flag"]

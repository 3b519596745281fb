"""
Tests for checks.py: the reasonableness policy applied to every estimate.
"""

import numpy as np
import pandas as pd
import pytest

from pyes import QualityFlag, check_estimate, check_estimates


@pytest.mark.parametrize("raw, expected, flag", [
    (0.03, 0.03, QualityFlag.OK),
    (0.0, 0.0, QualityFlag.OK),
    (1.0, 1.0, QualityFlag.OK),
    (1.7, 1.0, QualityFlag.OVER_CAPITAL),
])
def test_check_estimate_finite_values(raw, expected, flag):
    checked = check_estimate(raw)

    assert checked.value == expected
    assert checked.raw == raw
    assert checked.flag is flag


@pytest.mark.parametrize("raw, flag", [
    (-0.02, QualityFlag.INVERTED_RISK),
    (np.inf, QualityFlag.NON_FINITE),
    (np.nan, QualityFlag.NON_FINITE),
])
def test_check_estimate_undefined_values(raw, flag):
    checked = check_estimate(raw, label="Asset")

    assert np.isnan(checked.value)
    assert checked.flag is flag
    assert not checked.ok


def test_check_estimates_keeps_order_and_labels():
    raw = pd.Series({"C": 0.02, "A": -0.01, "B": 3.0})
    corrected, flags = check_estimates(raw)

    assert list(corrected.index) == ["C", "A", "B"]
    assert corrected["C"] == 0.02
    assert np.isnan(corrected["A"])
    assert corrected["B"] == 1.0
    assert list(flags) == [QualityFlag.OK, QualityFlag.INVERTED_RISK, QualityFlag.OVER_CAPITAL]

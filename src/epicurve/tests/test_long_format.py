from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from epicurve.io.long_format import curves_by_stratum, read_table, standardize_long
from epicurve.progress.errors import InvalidParameter
from epicurve.progress.types import as_curve


def _raw() -> pd.DataFrame:
    return pd.DataFrame({
        "Treatment": ["fungicide"] * 4 + ["control"] * 4,
        "Block": [1, 1, 1, 1, 1, 1, 1, 1],
        "DAI": [0, 7, 14, "n/a", 0, 7, 14, 21],
        "Severity": [1.0, 2.0, 5.0, 9.0, 2.0, 10.0, 35.0, 70.0],
    })


def test_standardize_long_maps_aliases_and_percent():
    out = standardize_long(_raw(), ["Treatment"])
    assert list(out.columns) == ["Treatment", "replicate", "time", "intensity"]
    assert len(out) == 7
    assert out["intensity"].max() == pytest.approx(0.70)
    # sorted by stratum, replicate, time
    assert list(out["Treatment"].unique()) == ["control", "fungicide"]


def test_standardize_long_keeps_proportions():
    df = pd.DataFrame({"time": [0, 7], "y": [0.1, 0.4]})
    out = standardize_long(df, percent="auto")
    assert out["intensity"].tolist() == [0.1, 0.4]
    assert out["replicate"].tolist() == [1, 1]


def test_standardize_long_explicit_columns():
    df = pd.DataFrame({"when": [0, 5, 10], "how_much": [0.0, 0.2, 0.5], "plot_id": ["p", "p", "p"]})
    out = standardize_long(df, time_col="when", intensity_col="how_much", replicate_col="plot_id")
    assert out["replicate"].tolist() == ["p", "p", "p"]
    assert np.allclose(out["time"], [0, 5, 10])


def test_standardize_long_missing_columns():
    with pytest.raises(ValueError):
        standardize_long(pd.DataFrame({"a": [1], "b": [2]}))
    with pytest.raises(ValueError):
        standardize_long(_raw(), ["Cultivar"])


def test_curves_by_stratum_splits_canonical_tables():
    curves = curves_by_stratum(_raw(), ["Treatment"])
    assert list(curves) == ["control", "fungicide"]
    assert list(curves["control"].columns) == ["replicate", "time", "intensity"]
    assert len(as_curve(curves["control"])) == 4
    assert np.allclose(as_curve(curves["fungicide"]).time, [0, 7, 14])


def test_curves_by_stratum_defers_validation_to_each_stratum():
    df = pd.DataFrame({
        "trt": ["a"] * 3 + ["b"] * 3,
        "time": [0, 7, 14, 0, 7, 7],
        "intensity": [0.05, 0.2, 0.5, 0.05, 0.2, 0.3],
    })
    curves = curves_by_stratum(df, ["trt"])
    assert list(curves) == ["a", "b"]
    assert len(as_curve(curves["a"])) == 3
    with pytest.raises(InvalidParameter):
        as_curve(curves["b"])


def test_read_table_csv(tmp_path):
    p = tmp_path / "sev.csv"
    _raw().to_csv(p, index=False)
    assert len(read_table(p)) == 8
    with pytest.raises(ValueError):
        read_table(tmp_path / "sev.json")

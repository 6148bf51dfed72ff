# src/epicurve/progress/area.py
from __future__ import annotations
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import InsufficientData, InvalidParameter
from .types import ProgressCurve

# proportions: intensity can reach at most 1
MAX_INTENSITY = 1.0


def _prepare(curve_or_time, intensity=None) -> Tuple[np.ndarray, np.ndarray]:
    if isinstance(curve_or_time, ProgressCurve):
        if curve_or_time.replicate is not None and len(pd.unique(curve_or_time.replicate)) > 1:
            raise InvalidParameter("Area metrics take one replicate at a time; use area_table for pooled data")
        t, y = curve_or_time.time, curve_or_time.intensity
    else:
        if intensity is None:
            raise TypeError("intensity is required when time is passed as an array")
        t, y = curve_or_time, intensity

    t = np.asarray(t, float).ravel()
    y = np.asarray(y, float).ravel()
    if t.shape != y.shape:
        raise InvalidParameter(f"time and intensity lengths differ: {t.size} vs {y.size}")
    if t.size < 2:
        raise InsufficientData(f"Area metrics need >=2 observations, got {t.size}", n=int(t.size), required=2)
    if not np.all(np.isfinite(t)) or not np.all(np.isfinite(y)):
        raise InvalidParameter("time and intensity must be finite")

    order = np.argsort(t, kind="stable")
    t, y = t[order], y[order]
    if np.any(np.diff(t) <= 0):
        raise InvalidParameter("Area metrics need distinct time points")
    return t, y


def _relative(area: float, t: np.ndarray, relative: bool) -> float:
    if not relative:
        return area
    return area / ((t[-1] - t[0]) * MAX_INTENSITY)


def audpc(curve_or_time, intensity=None, relative: bool = False) -> float:
    """
    Area under the disease progress curve (trapezoidal rule).

    Accepts a ProgressCurve or parallel time/intensity arrays; points are sorted
    by time first. relative=True divides by the maximum possible area,
    (t_last - t_first) * 1.
    """
    t, y = _prepare(curve_or_time, intensity)
    area = float(np.trapezoid(y, t))
    return _relative(area, t, relative)


def audps(curve_or_time, intensity=None, relative: bool = False) -> float:
    """
    Area under the disease progress stairs.

    Each observation is held until the next one (right-continuous stairs); the
    last observation is held for the mean interval w = (t_n - t_1) / (n - 1).
    The stairs therefore span D + w with D = t_n - t_1, and the area is rescaled
    to the observed duration D:

        AUDPS = (sum_i (t_{i+1} - t_i) * y_i + w * y_n) * D / (D + w)

    which equals (n - 1) / n times the raw stair area. For two points this is the
    trapezoid, and for a flat curve it is the rectangle y * D.
    """
    t, y = _prepare(curve_or_time, intensity)
    n = t.size
    D = float(t[-1] - t[0])
    w = D / (n - 1)
    stairs = float(np.sum(np.diff(t) * y[:-1]) + w * y[-1])
    area = stairs * D / (D + w)
    return _relative(area, t, relative)


def area_table(
    df: pd.DataFrame,
    strata: Sequence[str] = (),
    replicate: Optional[str] = "replicate",
    time_col: str = "time",
    intensity_col: str = "intensity",
    relative: bool = False,
) -> pd.DataFrame:
    """AUDPC and AUDPS for every (strata..., replicate) group of a long table."""
    keys = list(strata)
    if replicate is not None and replicate in df.columns:
        keys.append(replicate)
    missing = [c for c in keys + [time_col, intensity_col] if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    if not keys:
        t = df[time_col].to_numpy(dtype=float)
        y = df[intensity_col].to_numpy(dtype=float)
        return pd.DataFrame([{
            "n": int(len(df)),
            "audpc": audpc(t, y, relative=relative),
            "audps": audps(t, y, relative=relative),
        }])

    rows = []
    by = keys[0] if len(keys) == 1 else keys
    for key, g in df.groupby(by, sort=True, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        t = g[time_col].to_numpy(dtype=float)
        y = g[intensity_col].to_numpy(dtype=float)
        rows.append({
            **dict(zip(keys, key)),
            "n": int(len(g)),
            "audpc": audpc(t, y, relative=relative),
            "audps": audps(t, y, relative=relative),
        })
    return pd.DataFrame(rows)

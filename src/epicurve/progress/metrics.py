# src/epicurve/progress/metrics.py
from __future__ import annotations
import numpy as np
import pandas as pd
from sklearn.metrics import r2_score

from .errors import InsufficientData


def concordance_cc(observed: np.ndarray, predicted: np.ndarray) -> float:
    """
    Lin's concordance correlation coefficient (population moments).

    Equals 1 only when predictions lie on the 45-degree line through the
    observations, so it penalises both scatter and bias.
    """
    x = np.asarray(observed, float)
    y = np.asarray(predicted, float)
    if x.size < 2:
        raise InsufficientData("CCC needs >=2 paired values", n=int(x.size), required=2)
    mx, my = float(np.mean(x)), float(np.mean(y))
    vx, vy = float(np.var(x)), float(np.var(y))
    sxy = float(np.mean((x - mx) * (y - my)))
    denom = vx + vy + (mx - my) ** 2
    if denom <= 0.0:
        # constant and identical series agree perfectly
        return 1.0
    return 2.0 * sxy / denom


def residual_standard_error(residuals: np.ndarray, n_params: int) -> float:
    resid = np.asarray(residuals, float)
    dof = resid.size - int(n_params)
    if dof <= 0:
        raise InsufficientData(
            f"RSE needs more observations than parameters ({resid.size} <= {n_params})",
            n=int(resid.size), required=int(n_params) + 1,
        )
    return float(np.sqrt(np.sum(resid ** 2) / dof))


def pseudo_r_squared(observed: np.ndarray, predicted: np.ndarray) -> float:
    # 1 - SS_res / SS_tot on the intensity scale
    return float(r2_score(np.asarray(observed, float), np.asarray(predicted, float)))


def prediction_table(time: np.ndarray, observed: np.ndarray, predicted: np.ndarray):
    observed = np.asarray(observed, float)
    predicted = np.asarray(predicted, float)
    return pd.DataFrame({
        "time": np.asarray(time, float),
        "observed": observed,
        "predicted": predicted,
        "residual": observed - predicted,
    })

# src/epicurve/progress/fit_lin.py
from __future__ import annotations
import logging
from typing import Optional

import numpy as np
import statsmodels.api as sm

from .errors import InsufficientData, InvalidParameter
from .metrics import concordance_cc, prediction_table, residual_standard_error
from .models import clamp_for_transform, get_model_spec
from .types import CurveLike, FitConfig, FitResult, ModelParameters, as_curve

MIN_POINTS_LINEAR = 3


def fit_linear(
    curve: CurveLike,
    model: str,
    K: float = 1.0,
    config: Optional[FitConfig] = None,
) -> FitResult:
    """
    Fit `model` by ordinary least squares on its linearized scale.

    Intensities are transformed (after clamping off the transform's
    singularities), regressed on time, and the intercept/slope are mapped back
    to (y0, r). For logistic and Gompertz K is held at the a-priori value `K`.
    CCC and RSE are computed on the back-transformed predictions against the
    untransformed intensities; r_squared is the regression R^2.
    """
    cfg = config or FitConfig()
    c = as_curve(curve)
    spec = get_model_spec(model)

    n = len(c)
    if n < MIN_POINTS_LINEAR:
        raise InsufficientData(
            f"Linear {spec.name} fit needs >={MIN_POINTS_LINEAR} points, got {n}",
            n=n, required=MIN_POINTS_LINEAR,
        )
    if np.ptp(c.time) <= 0:
        raise InsufficientData("Linear fit needs at least two distinct time points", n=n)

    K_fixed = float(K) if spec.has_K else 1.0
    if spec.has_K and (not np.isfinite(K_fixed) or K_fixed <= 0):
        raise InvalidParameter(f"a-priori K must be positive and finite, got {K}")

    y_lin = clamp_for_transform(c.intensity, spec, K_fixed, eps=cfg.clamp_eps, clamp=cfg.clamp)
    z = spec.transform(y_lin, K_fixed)

    X = sm.add_constant(c.time, has_constant="add")
    ols = sm.OLS(z, X).fit()
    b0, b1 = (float(v) for v in ols.params)
    se_b0, se_b1 = (float(v) for v in ols.bse)
    ci = np.asarray(ols.conf_int(alpha=1.0 - cfg.ci_level), float)

    y0, dy0_db0 = spec.y0_from_intercept(b0, K_fixed)
    scale = spec.rate_scale(K_fixed)
    r = b1 / scale

    params = ModelParameters(spec.name, float(y0), float(r), K_fixed if spec.has_K else None)

    # intercept -> y0 is monotone increasing, so its CI maps endpoint-wise
    y0_lo = float(spec.y0_from_intercept(ci[0, 0], K_fixed)[0])
    y0_hi = float(spec.y0_from_intercept(ci[0, 1], K_fixed)[0])
    std_errors = {"y0": float(abs(dy0_db0) * se_b0), "r": se_b1 / abs(scale)}
    conf_int = {
        "y0": (min(y0_lo, y0_hi), max(y0_lo, y0_hi)),
        "r": (float(ci[1, 0]) / scale, float(ci[1, 1]) / scale),
    }

    y_hat = params.predict(c.time)
    table = prediction_table(c.time, c.intensity, y_hat)

    res = FitResult(
        model=spec.name,
        method="linear",
        params=params,
        std_errors=std_errors,
        conf_int=conf_int,
        ci_level=cfg.ci_level,
        ccc=concordance_cc(c.intensity, y_hat),
        rse=residual_standard_error(table["residual"].to_numpy(), 2),
        r_squared=float(ols.rsquared),
        n=n,
        n_params=2,
        predictions=table,
        extra={"intercept": b0, "slope": b1, "K_fixed": K_fixed if spec.has_K else None},
    )
    logging.debug(f"linear {spec.name}: y0={res.params.y0:.4g} r={res.params.r:.4g} R2={res.r_squared:.3f}")
    return res

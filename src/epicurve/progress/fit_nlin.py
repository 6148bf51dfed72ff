# src/epicurve/progress/fit_nlin.py
from __future__ import annotations
import logging
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import least_squares
from scipy.stats import t as student_t

from .errors import EpiCurveError, InsufficientData, NoConvergence
from .fit_lin import fit_linear
from .metrics import concordance_cc, prediction_table, pseudo_r_squared, residual_standard_error
from .models import ModelSpec, get_model_spec
from .types import CurveLike, FitConfig, FitResult, ModelParameters, ProgressCurve, as_curve

# residual used in place of non-finite model output while the optimizer explores
_NONFINITE_RESIDUAL = 1e6


def _start_values(
    c: ProgressCurve,
    spec: ModelSpec,
    estimate_K: bool,
    cfg: FitConfig,
) -> np.ndarray:
    """
    Seed (y0, r[, K]) from the linear fit; K starts slightly above the observed
    maximum. Falls back to the first observation and a unit-free small rate when
    the linear fit itself is not possible.
    """
    K0 = 1.0
    if spec.has_K and estimate_K:
        K0 = max(float(np.max(c.intensity)) * cfg.k_start_factor, 2.0 * cfg.clamp_eps)
        if cfg.cap_K_at_one:
            K0 = min(K0, 1.0)

    try:
        lin = fit_linear(c, spec.name, K=K0, config=cfg)
        y0, r = lin.params.y0, lin.params.r
    except EpiCurveError as e:
        logging.debug(f"{spec.name}: linear seed unavailable ({e}); using heuristic start values")
        y0, r = float(c.intensity[0]), 0.1

    y0 = float(np.clip(y0, cfg.clamp_eps, 1.0 - cfg.clamp_eps))
    if spec.has_K and estimate_K:
        y0 = min(y0, 0.99 * K0)
        return np.array([y0, r, K0], dtype=float)
    return np.array([y0, r], dtype=float)


def _bounds(spec: ModelSpec, estimate_K: bool, cfg: FitConfig) -> Tuple[np.ndarray, np.ndarray]:
    lower = [cfg.clamp_eps, -np.inf]
    upper = [1.0 - cfg.clamp_eps, np.inf]
    if spec.has_K and estimate_K:
        lower.append(cfg.clamp_eps)
        upper.append(1.0 if cfg.cap_K_at_one else np.inf)
    return np.array(lower, float), np.array(upper, float)


def _covariance(jac: np.ndarray, cost: float, dof: int) -> np.ndarray:
    # inverse of J^T J via SVD, scaled by the residual variance
    _, s, VT = np.linalg.svd(jac, full_matrices=False)
    threshold = np.finfo(float).eps * max(jac.shape) * (s[0] if s.size else 0.0)
    keep = s > threshold
    if not np.all(keep) or s.size < jac.shape[1]:
        # some parameter direction is unidentifiable
        logging.warning(f"Jacobian is rank-deficient (rank {int(keep.sum())} of {jac.shape[1]}); covariance set to inf")
        return np.full((jac.shape[1], jac.shape[1]), np.inf)
    pcov = (VT.T / s ** 2) @ VT
    return pcov * (2.0 * cost / dof)


def fit_nonlinear(
    curve: CurveLike,
    model: str,
    estimate_K: bool = False,
    config: Optional[FitConfig] = None,
) -> FitResult:
    """
    Fit `model` directly on the intensity scale by bounded nonlinear least squares.

    Raises NoConvergence (with the last iterate) when the evaluation budget
    `config.max_nfev` is exhausted.
    """
    cfg = config or FitConfig()
    c = as_curve(curve)
    spec = get_model_spec(model)

    if estimate_K and not spec.has_K:
        logging.debug(f"{spec.name} has no K; estimate_K ignored")
    est_K = bool(estimate_K and spec.has_K)
    names = spec.param_names(est_K)
    p = len(names)

    n = len(c)
    if n < p + 1:
        raise InsufficientData(
            f"Nonlinear {spec.name} fit with {p} parameters needs >={p + 1} points, got {n}",
            n=n, required=p + 1,
        )

    t, y = c.time, c.intensity

    def resid(theta: np.ndarray) -> np.ndarray:
        K = theta[2] if est_K else 1.0
        with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
            out = spec.evaluate(t, theta[0], theta[1], K) - y
        return np.nan_to_num(out, nan=_NONFINITE_RESIDUAL, posinf=_NONFINITE_RESIDUAL, neginf=-_NONFINITE_RESIDUAL)

    x0 = _start_values(c, spec, est_K, cfg)
    lower, upper = _bounds(spec, est_K, cfg)
    x0 = np.clip(x0, lower, upper)

    res = least_squares(
        resid, x0,
        bounds=(lower, upper),
        method="trf",
        x_scale="jac",
        max_nfev=int(cfg.max_nfev),
    )
    if res.status == 0 or not res.success or not np.all(np.isfinite(res.x)):
        raise NoConvergence(
            f"Nonlinear {spec.name} fit did not converge within {cfg.max_nfev} evaluations: {res.message}",
            last_params=res.x,
            nfev=int(res.nfev),
        )

    theta = np.asarray(res.x, float)
    params = ModelParameters(
        spec.name,
        float(theta[0]),
        float(theta[1]),
        float(theta[2]) if est_K else (1.0 if spec.has_K else None),
    )

    dof = n - p
    pcov = _covariance(np.asarray(res.jac, float), float(res.cost), dof)
    se = np.sqrt(np.clip(np.diag(pcov), 0.0, None))
    q = float(student_t.ppf(0.5 + cfg.ci_level / 2.0, dof))

    std_errors = {name: float(se[i]) for i, name in enumerate(names)}
    conf_int = {
        name: (float(theta[i] - q * se[i]), float(theta[i] + q * se[i]))
        for i, name in enumerate(names)
    }

    y_hat = params.predict(t)
    table = prediction_table(t, y, y_hat)

    fit = FitResult(
        model=spec.name,
        method="nonlinear",
        params=params,
        std_errors=std_errors,
        conf_int=conf_int,
        ci_level=cfg.ci_level,
        ccc=concordance_cc(y, y_hat),
        rse=residual_standard_error(table["residual"].to_numpy(), p),
        r_squared=pseudo_r_squared(y, y_hat),
        n=n,
        n_params=p,
        predictions=table,
        nfev=int(res.nfev),
        extra={"start": x0, "cov": pcov, "estimate_K": est_K},
    )
    logging.debug(f"nonlinear {spec.name}: {params.as_dict()} nfev={res.nfev} RSE={fit.rse:.4g}")
    return fit

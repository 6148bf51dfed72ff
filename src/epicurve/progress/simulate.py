# src/epicurve/progress/simulate.py
from __future__ import annotations
import logging
from typing import Optional

import numpy as np
import pandas as pd

from .errors import InvalidParameter
from .types import FitResult, ModelParameters, SimulatedCurve


def beta_noise(y: np.ndarray, alpha: float, rng: np.random.Generator) -> np.ndarray:
    """
    Mean-preserving Beta noise around intensities `y`.

    Each value is drawn from Beta(m/alpha, (1-m)/alpha) with m = clip(y, 0, 1):
    mean m, variance m(1-m) * alpha / (1 + alpha). Values at exactly 0 or 1 are
    returned unchanged; alpha == 0 returns `y` itself.
    """
    y = np.asarray(y, float)
    if alpha == 0:
        return y.copy()

    m = np.clip(y, 0.0, 1.0)
    out = m.copy()
    inner = (m > 0.0) & (m < 1.0)
    if np.any(inner):
        out[inner] = rng.beta(m[inner] / alpha, (1.0 - m[inner]) / alpha)
    return np.clip(out, 0.0, 1.0)


def simulate(
    model: str,
    y0: float,
    r: float,
    K: Optional[float] = None,
    dt: float = 1.0,
    n_steps: int = 10,
    n_replicates: int = 1,
    noise_alpha: float = 0.0,
    seed: Optional[int] = None,
) -> SimulatedCurve:
    """
    Simulate `n_replicates` disease-progress curves from one model.

    Every replicate has `n_steps` points at t = 0, dt, ..., (n_steps - 1) * dt.
    `y` is the deterministic model value and `random_y` adds Beta noise with
    dispersion `noise_alpha`. Replicates draw from independent child streams of
    `SeedSequence(seed)`, so a fixed seed reproduces the whole table.
    """
    params = ModelParameters(model, y0, r, K)

    if not np.isfinite(dt) or dt <= 0:
        raise InvalidParameter(f"dt must be positive, got {dt}")
    if int(n_steps) < 1:
        raise InvalidParameter(f"n_steps must be >= 1, got {n_steps}")
    if int(n_replicates) < 1:
        raise InvalidParameter(f"n_replicates must be >= 1, got {n_replicates}")
    if not np.isfinite(noise_alpha) or noise_alpha < 0:
        raise InvalidParameter(f"noise_alpha must be >= 0, got {noise_alpha}")

    n_steps = int(n_steps)
    n_replicates = int(n_replicates)
    time = np.arange(n_steps, dtype=float) * float(dt)
    y = params.predict(time)

    streams = np.random.SeedSequence(seed).spawn(n_replicates)
    parts = []
    for rep, ss in enumerate(streams, start=1):
        rng = np.random.default_rng(ss)
        parts.append(pd.DataFrame({
            "replicate": rep,
            "time": time,
            "y": y,
            "random_y": beta_noise(y, float(noise_alpha), rng),
        }))
    data = pd.concat(parts, ignore_index=True)

    logging.debug(
        f"simulated {params.model} {params.as_dict()} steps={n_steps} reps={n_replicates} alpha={noise_alpha}"
    )
    return SimulatedCurve(
        params=params,
        dt=float(dt),
        n_steps=n_steps,
        n_replicates=n_replicates,
        noise_alpha=float(noise_alpha),
        seed=seed,
        data=data,
    )


def simulate_fit(fit: FitResult, **kwargs) -> SimulatedCurve:
    """Simulate from the parameters of a fitted model."""
    p = fit.params
    return simulate(p.model, p.y0, p.r, p.K, **kwargs)

from __future__ import annotations

from typing import Hashable, Optional, Sequence

import numpy as np
import plotly.graph_objects as go

from epicurve.progress.fit_multi import MultiFit
from epicurve.progress.types import FitResult, SimulatedCurve


def fit_payload(fit: FitResult, n_grid: int = 200) -> dict:
    """Observed points plus the fitted curve on a dense grid over the observed time range."""
    obs = fit.predictions
    t = obs["time"].to_numpy(dtype=float)
    t_grid = np.linspace(float(np.min(t)), float(np.max(t)), int(n_grid))
    return {
        "model_name": fit.model,
        "method": fit.method,
        "t_obs": t,
        "y_obs": obs["observed"].to_numpy(dtype=float),
        "t_grid": t_grid,
        "y_hat": fit.params.predict(t_grid),
        "residual": obs["residual"].to_numpy(dtype=float),
        "params": fit.params.as_dict(),
        "ccc": float(fit.ccc),
        "rse": float(fit.rse),
        "r_squared": float(fit.r_squared),
    }


def fit_comparison_figure(
    multi: MultiFit,
    stratum: Hashable,
    models: Optional[Sequence[str]] = None,
) -> go.Figure:
    """Observed intensities of one stratum with every fitted model overlaid."""
    by_model = multi[stratum]
    names = [m for m in (models or by_model.keys()) if m in by_model]

    fig = go.Figure()
    observed_added = False
    for name in names:
        p = fit_payload(by_model[name])
        if not observed_added:
            fig.add_trace(go.Scatter(x=p["t_obs"], y=p["y_obs"], mode="markers", name="observed"))
            observed_added = True
        fig.add_trace(go.Scatter(
            x=p["t_grid"], y=p["y_hat"], mode="lines",
            name=f"{name} (RSE={p['rse']:.3g}, CCC={p['ccc']:.3f})",
        ))
    fig.update_layout(title=f"Stratum {stratum!r}", xaxis_title="time", yaxis_title="intensity")
    return fig


def simulation_figure(sim: SimulatedCurve) -> go.Figure:
    """Deterministic curve with the noisy replicates as markers."""
    df = sim.data
    first = df[df["replicate"] == df["replicate"].min()]

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=first["time"], y=first["y"], mode="lines", name=f"{sim.params.model} y"))
    for rep, g in df.groupby("replicate", sort=True):
        fig.add_trace(go.Scatter(x=g["time"], y=g["random_y"], mode="markers", name=f"replicate {rep}"))
    fig.update_layout(
        title=f"Simulated {sim.params.model} epidemic (alpha={sim.noise_alpha:g})",
        xaxis_title="time",
        yaxis_title="intensity",
    )
    return fig

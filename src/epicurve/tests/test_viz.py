from __future__ import annotations

import numpy as np

from epicurve.progress.fit_multi import fit_multi
from epicurve.progress.simulate import simulate
from epicurve.viz.payloads import fit_comparison_figure, fit_payload, simulation_figure


def _multi():
    curve = simulate("logistic", y0=0.03, r=0.25, dt=3.0, n_steps=12).replicate_curve(1, noisy=False)
    return fit_multi({"plot1": curve}, models=["logistic", "gompertz"])


def test_fit_payload_grid_spans_observed_range():
    fit = _multi()["plot1"]["logistic"]
    p = fit_payload(fit, n_grid=50)
    assert p["t_grid"].size == 50
    assert p["t_grid"][0] == 0.0 and p["t_grid"][-1] == 33.0
    assert np.allclose(p["y_hat"][[0, -1]], fit.params.predict(np.array([0.0, 33.0])))
    assert set(p["params"]) == {"y0", "r", "K"}


def test_comparison_figure_has_observed_and_one_trace_per_model():
    fig = fit_comparison_figure(_multi(), "plot1")
    names = [tr.name for tr in fig.data]
    assert names[0] == "observed"
    assert len(names) == 3
    assert any(n.startswith("gompertz") for n in names)


def test_simulation_figure_traces():
    sim = simulate("gompertz", y0=0.02, r=0.2, n_steps=15, n_replicates=3, noise_alpha=0.05, seed=4)
    fig = simulation_figure(sim)
    assert len(fig.data) == 4

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from epicurve.progress.errors import InvalidParameter
from epicurve.progress.fit_lin import fit_linear
from epicurve.progress.simulate import beta_noise, simulate, simulate_fit


@pytest.mark.parametrize("model,K", [("exponential", None), ("monomolecular", None), ("logistic", 0.9), ("gompertz", 1.0)])
def test_zero_alpha_gives_deterministic_curve(model, K):
    sim = simulate(model, y0=0.05, r=0.1, K=K, dt=2.0, n_steps=20, n_replicates=3, noise_alpha=0.0, seed=1)
    df = sim.to_frame()
    assert np.array_equal(df["random_y"].to_numpy(), df["y"].to_numpy())


def test_table_layout():
    sim = simulate("logistic", y0=0.01, r=0.3, dt=0.5, n_steps=8, n_replicates=4, noise_alpha=0.1, seed=7)
    df = sim.to_frame()
    assert list(df.columns) == ["replicate", "time", "y", "random_y"]
    assert len(df) == 32
    assert sorted(df["replicate"].unique()) == [1, 2, 3, 4]
    assert np.allclose(df.loc[df["replicate"] == 1, "time"], np.arange(8) * 0.5)
    assert df["random_y"].between(0.0, 1.0).all()


def test_seed_reproduces_and_replicates_are_independent():
    kw = dict(y0=0.02, r=0.2, dt=1.0, n_steps=30, n_replicates=2, noise_alpha=0.05)
    a = simulate("gompertz", seed=42, **kw).to_frame()
    b = simulate("gompertz", seed=42, **kw).to_frame()
    pd.testing.assert_frame_equal(a, b)

    r1 = a.loc[a["replicate"] == 1, "random_y"].to_numpy()
    r2 = a.loc[a["replicate"] == 2, "random_y"].to_numpy()
    assert not np.array_equal(r1, r2)

    c = simulate("gompertz", seed=43, **kw).to_frame()
    assert not np.array_equal(a["random_y"].to_numpy(), c["random_y"].to_numpy())


def test_noise_is_mean_preserving():
    rng = np.random.default_rng(0)
    y = np.full(20000, 0.3)
    draws = beta_noise(y, 0.05, rng)
    assert draws.mean() == pytest.approx(0.3, abs=0.005)
    assert draws.var() == pytest.approx(0.3 * 0.7 * 0.05 / 1.05, rel=0.1)


def test_larger_alpha_widens_spread():
    rng = np.random.default_rng(1)
    y = np.full(5000, 0.5)
    narrow = beta_noise(y, 0.01, rng).std()
    wide = beta_noise(y, 0.5, rng).std()
    assert wide > narrow


def test_boundary_intensities_degenerate_gracefully():
    rng = np.random.default_rng(2)
    out = beta_noise(np.array([0.0, 1.0, 1.4]), 0.3, rng)
    assert np.array_equal(out, [0.0, 1.0, 1.0])

    sim = simulate("monomolecular", y0=0.1, r=50.0, dt=1.0, n_steps=5, noise_alpha=0.3, seed=0)
    late = sim.to_frame().iloc[1:]
    assert (late["y"] == 1.0).all()
    assert (late["random_y"] == 1.0).all()


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(dt=0.0),
        dict(n_steps=0),
        dict(n_replicates=0),
        dict(noise_alpha=-0.1),
        dict(y0=1.5),
    ],
)
def test_invalid_arguments(kwargs):
    base = dict(model="logistic", y0=0.05, r=0.1)
    base.update(kwargs)
    with pytest.raises(InvalidParameter):
        simulate(**base)


def test_simulate_from_fit():
    t = np.arange(0.0, 40.0, 4.0)
    sim = simulate("logistic", y0=0.05, r=0.15, dt=4.0, n_steps=10)
    fit = fit_linear(sim.replicate_curve(1, noisy=False), "logistic")
    again = simulate_fit(fit, dt=4.0, n_steps=10)
    assert np.allclose(again.to_frame()["y"], sim.to_frame()["y"])
    assert np.allclose(again.to_frame()["time"], t)

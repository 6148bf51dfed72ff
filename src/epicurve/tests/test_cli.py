from __future__ import annotations

import zipfile

import pandas as pd
import pytest

from epicurve.cli.main import main
from epicurve.progress.errors import FitWarning
from epicurve.progress.simulate import simulate


def _write_trial(path) -> None:
    parts = []
    for i, (treatment, r) in enumerate({"control": 0.3, "fungicide": 0.15}.items()):
        df = simulate("logistic", y0=0.02, r=r, dt=4.0, n_steps=10, n_replicates=2,
                      noise_alpha=0.001, seed=i).to_frame()
        parts.append(pd.DataFrame({
            "treatment": treatment,
            "block": df["replicate"],
            "days": df["time"],
            "severity": (df["random_y"] * 100.0).round(3),
        }))
    pd.concat(parts, ignore_index=True).to_csv(path, index=False)


def test_fit_command_writes_zip(tmp_path):
    src = tmp_path / "trial.csv"
    _write_trial(src)
    rc = main([
        "fit", str(src),
        "--strata", "treatment",
        "--models", "logistic", "gompertz",
        "--outdir", str(tmp_path / "out"),
        "--with-area",
        "--loglevel", "WARNING",
    ])
    assert rc == 0

    zip_path = tmp_path / "out" / "epicurve_outputs.zip"
    with zipfile.ZipFile(zip_path) as zf:
        names = set(zf.namelist())
        assert {"parameters.csv", "predictions.csv", "area.csv"} <= names
        with zf.open("parameters.csv") as fh:
            params = pd.read_csv(fh)
    assert set(params["treatment"]) == {"control", "fungicide"}
    assert set(params["model"]) == {"logistic", "gompertz"}
    # CSVs are bundled, not left beside the zip
    assert not (tmp_path / "out" / "parameters.csv").exists()


def test_sim_command_writes_csv(tmp_path):
    out = tmp_path / "sim" / "curve.csv"
    rc = main([
        "sim", "--model", "gompertz", "--y0", "0.01", "--r", "0.2",
        "--n-steps", "12", "--n-reps", "3", "--alpha", "0.05", "--seed", "9",
        "--out", str(out),
    ])
    assert rc == 0
    df = pd.read_csv(out)
    assert len(df) == 36
    assert list(df.columns) == ["replicate", "time", "y", "random_y"]


def test_area_command_prints_table(tmp_path, capsys):
    src = tmp_path / "trial.csv"
    _write_trial(src)
    rc = main(["area", str(src), "--strata", "treatment"])
    assert rc == 0
    printed = capsys.readouterr().out
    assert "audpc" in printed and "audps" in printed


def test_unknown_subcommand_exits():
    with pytest.raises(SystemExit):
        main(["plot"])


def test_fit_command_records_bad_stratum_and_fits_the_rest(tmp_path):
    good = simulate("logistic", y0=0.02, r=0.3, dt=4.0, n_steps=10).to_frame()
    bad = good.copy()
    bad.loc[3, "time"] = bad.loc[2, "time"]
    rows = pd.concat([
        pd.DataFrame({"trt": "a", "time": good["time"], "intensity": good["y"]}),
        pd.DataFrame({"trt": "b", "time": bad["time"], "intensity": bad["y"]}),
    ], ignore_index=True)
    src = tmp_path / "trial.csv"
    rows.to_csv(src, index=False)

    with pytest.warns(FitWarning):
        rc = main([
            "fit", str(src),
            "--strata", "trt",
            "--models", "logistic", "gompertz",
            "--outdir", str(tmp_path / "out"),
            "--loglevel", "ERROR",
        ])
    assert rc == 0

    with zipfile.ZipFile(tmp_path / "out" / "epicurve_outputs.zip") as zf:
        with zf.open("parameters.csv") as fh:
            params = pd.read_csv(fh)
        with zf.open("failures.csv") as fh:
            failures = pd.read_csv(fh)
    assert set(params["trt"]) == {"a"}
    assert set(params["model"]) == {"logistic", "gompertz"}
    assert set(failures["trt"]) == {"b"}
    assert set(failures["error"]) == {"InvalidParameter"}

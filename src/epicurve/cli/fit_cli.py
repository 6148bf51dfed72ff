# src/epicurve/cli/fit_cli.py
from __future__ import annotations
import argparse
import logging
from pathlib import Path

from epicurve.io.long_format import curves_by_stratum, read_table, standardize_long
from epicurve.progress.area import area_table
from epicurve.progress.export import export_results_zip
from epicurve.progress.fit_multi import fit_multi
from epicurve.progress.models import MODEL_NAMES
from epicurve.progress.types import FitConfig


def add_loglevel_argument(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--loglevel",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )


def add_input_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("input", help="Long-format table (.csv or .xlsx), one row per assessment")
    p.add_argument("--strata", nargs="*", default=[], help="Columns identifying a stratum (e.g. treatment)")
    p.add_argument("--time-col", default=None, help="Time column (default: detected by alias)")
    p.add_argument("--intensity-col", default=None, help="Intensity column (default: detected by alias)")
    p.add_argument("--replicate-col", default=None, help="Replicate column (default: detected by alias)")
    p.add_argument("--percent", default="auto", choices=["auto", "yes", "no"],
                   help="Treat intensity as percent and rescale to proportion.")


def add_fit_subcommand(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "fit",
        help="Fit exponential/monomolecular/logistic/Gompertz models per stratum.",
    )
    add_input_arguments(p)
    p.add_argument("--outdir", required=True, help="Output directory for the results ZIP")
    p.add_argument("--zip-name", default="epicurve_outputs.zip")
    p.add_argument("--models", nargs="+", default=list(MODEL_NAMES), choices=list(MODEL_NAMES))
    p.add_argument("--linear", action="store_true", default=False,
                   help="Fit on the linearized scale (OLS) instead of nonlinear least squares.")
    p.add_argument("--estimate-k", action="store_true", default=False,
                   help="Estimate the upper asymptote K for logistic/Gompertz.")
    p.add_argument("--cap-k-at-one", action="store_true", default=False,
                   help="Constrain estimated K to at most 1.")
    p.add_argument("--fallback-linear", action="store_true", default=False,
                   help="Use the linear fit when nonlinear least squares does not converge.")
    p.add_argument("--max-nfev", type=int, default=2000, help="Evaluation budget per nonlinear fit")
    p.add_argument("--ci-level", type=float, default=0.95)
    p.add_argument("--n-jobs", type=int, default=1, help="Parallel workers (joblib)")
    p.add_argument("--with-area", action="store_true", default=False,
                   help="Also export AUDPC/AUDPS per stratum and replicate.")
    add_loglevel_argument(p)

    p.set_defaults(_fn=_run_fit)


def _run_fit(args: argparse.Namespace) -> int:
    logging.basicConfig(level=getattr(logging, args.loglevel), format="%(levelname)s: %(message)s")

    raw = read_table(args.input)
    col_kwargs = dict(
        time_col=args.time_col,
        intensity_col=args.intensity_col,
        replicate_col=args.replicate_col,
        percent=args.percent,
    )
    curves = curves_by_stratum(raw, args.strata, **col_kwargs)
    logging.info(f"Loaded {len(curves)} strata from {args.input}")

    cfg = FitConfig(
        max_nfev=int(args.max_nfev),
        ci_level=float(args.ci_level),
        cap_K_at_one=bool(args.cap_k_at_one),
        fallback_to_linear=bool(args.fallback_linear),
    )
    multi = fit_multi(
        curves,
        models=args.models,
        estimate_K=bool(args.estimate_k),
        use_nonlinear=not args.linear,
        strata=args.strata or None,
        config=cfg,
        n_jobs=int(args.n_jobs),
    )

    area = None
    if args.with_area:
        area = area_table(standardize_long(raw, args.strata, **col_kwargs), strata=args.strata)

    res = export_results_zip(multi, Path(args.outdir), zip_name=args.zip_name, area=area)
    print(f"[OK] {args.input} -> {res['zip_path']}  (strata={len(multi)}, failed_cells={len(multi.failures)})")
    return 0

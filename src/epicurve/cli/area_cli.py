# src/epicurve/cli/area_cli.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from epicurve.cli.fit_cli import add_input_arguments, add_loglevel_argument
from epicurve.io.long_format import read_table, standardize_long
from epicurve.progress.area import area_table


def add_area_subcommand(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "area",
        help="AUDPC and AUDPS per stratum and replicate.",
    )
    add_input_arguments(p)
    p.add_argument("--relative", action="store_true", default=False,
                   help="Divide by the maximum possible area (duration x 1).")
    p.add_argument("--out", type=str, default=None, help="Output CSV (default: print to stdout)")
    add_loglevel_argument(p)

    p.set_defaults(_fn=_run_area)


def _run_area(args: argparse.Namespace) -> int:
    logging.basicConfig(level=getattr(logging, args.loglevel), format="%(levelname)s: %(message)s")

    long_df = standardize_long(
        read_table(args.input),
        args.strata,
        time_col=args.time_col,
        intensity_col=args.intensity_col,
        replicate_col=args.replicate_col,
        percent=args.percent,
    )
    table = area_table(long_df, strata=args.strata, relative=bool(args.relative))

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(out, index=False)
        logging.info(f"Wrote {len(table)} rows to {out}")
    else:
        print(table.to_string(index=False))
    return 0

# src/epicurve/cli/main.py
import argparse

from epicurve.cli.area_cli import add_area_subcommand
from epicurve.cli.fit_cli import add_fit_subcommand
from epicurve.cli.sim_cli import add_sim_subcommand


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="epicurve",
        description="epicurve: disease progress curve fitting, simulation and area metrics",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add_fit_subcommand(sub)
    add_sim_subcommand(sub)
    add_area_subcommand(sub)

    args = parser.parse_args(argv)
    return args._fn(args)  # each subcommand sets a handler


if __name__ == "__main__":
    raise SystemExit(main())

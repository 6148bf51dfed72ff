from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Literal, Optional, Sequence, Tuple, Union

import pandas as pd

from epicurve.progress.fit_multi import group_curves

PercentMode = Literal["auto", "yes", "no"]


@dataclass(frozen=True)
class LongFormatConfig:
    # canonical output schema
    out_time: str = "time"
    out_intensity: str = "intensity"
    out_replicate: str = "replicate"

    # common incoming column aliases
    time_aliases: Tuple[str, ...] = ("time", "Time", "t", "days", "day", "DAI", "dai", "assessment_time")
    intensity_aliases: Tuple[str, ...] = ("intensity", "Intensity", "y", "severity", "Severity", "sev", "incidence")
    replicate_aliases: Tuple[str, ...] = ("replicate", "Replicate", "rep", "block", "Block", "plot")


def _first_existing_col(df: pd.DataFrame, candidates: Sequence[str]) -> Optional[str]:
    cols = list(df.columns)
    for c in candidates:
        if c in cols:
            return c
    lower_map = {str(c).lower(): c for c in cols}
    for c in candidates:
        lc = str(c).lower()
        if lc in lower_map:
            return lower_map[lc]
    return None


def read_table(path: Union[str, Path]) -> pd.DataFrame:
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(p)
    if suffix in {".xlsx", ".xlsm"}:
        return pd.read_excel(p, engine="openpyxl")
    raise ValueError(f"Unsupported input format: {p.name} (expected .csv or .xlsx)")


def standardize_long(
    df_long: pd.DataFrame,
    strata: Sequence[str] = (),
    *,
    time_col: Optional[str] = None,
    intensity_col: Optional[str] = None,
    replicate_col: Optional[str] = None,
    percent: PercentMode = "auto",
    config: Optional[LongFormatConfig] = None,
) -> pd.DataFrame:
    """
    Required columns after standardization:
      strata..., replicate, time, intensity

    Columns are found by explicit name or by alias. Non-numeric and negative
    times are dropped. Intensities recorded as percentages are converted to
    proportions when percent="yes", or when percent="auto" and 1 < max <= 100.
    A missing replicate column becomes a single replicate 1.
    """
    cfg = config or LongFormatConfig()
    strata = list(strata)
    missing = [c for c in strata if c not in df_long.columns]
    if missing:
        raise ValueError(f"Missing stratum columns: {missing}")

    t_src = time_col or _first_existing_col(df_long, cfg.time_aliases)
    y_src = intensity_col or _first_existing_col(df_long, cfg.intensity_aliases)
    r_src = replicate_col or _first_existing_col(df_long, cfg.replicate_aliases)
    if t_src is None or y_src is None:
        raise ValueError(
            f"Could not find time/intensity columns. Got: {df_long.columns.tolist()}"
        )

    out = df_long[strata].copy()
    out[cfg.out_replicate] = df_long[r_src].to_numpy() if r_src is not None else 1
    out[cfg.out_time] = pd.to_numeric(df_long[t_src], errors="coerce")
    out[cfg.out_intensity] = pd.to_numeric(df_long[y_src], errors="coerce")

    n_before = len(out)
    out = out.dropna(subset=[cfg.out_time, cfg.out_intensity]).copy()
    out = out[out[cfg.out_time] >= 0].copy()
    if len(out) < n_before:
        logging.info(f"Dropped {n_before - len(out)} rows with missing/negative time or missing intensity")

    y_max = float(out[cfg.out_intensity].max()) if len(out) else 0.0
    if percent == "yes" or (percent == "auto" and 1.0 < y_max <= 100.0):
        logging.info(f"Rescaling intensity from percent to proportion (max={y_max:g})")
        out[cfg.out_intensity] = out[cfg.out_intensity] / 100.0

    out = out.sort_values(strata + [cfg.out_replicate, cfg.out_time], kind="stable")
    return out[strata + [cfg.out_replicate, cfg.out_time, cfg.out_intensity]].reset_index(drop=True)


def curves_by_stratum(
    df_long: pd.DataFrame,
    strata: Sequence[str] = (),
    config: Optional[LongFormatConfig] = None,
    **kwargs,
) -> Dict[object, pd.DataFrame]:
    """
    Standardize a long table and split it into one canonical
    (replicate, time, intensity) sub-table per stratum.

    Curves are validated later, per cell, when fit_multi builds them.
    """
    cfg = config or LongFormatConfig()
    std = standardize_long(df_long, strata, config=cfg, **kwargs)
    return group_curves(
        std, strata,
        time_col=cfg.out_time,
        intensity_col=cfg.out_intensity,
        replicate_col=cfg.out_replicate,
    )

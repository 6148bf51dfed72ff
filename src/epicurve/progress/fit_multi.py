# src/epicurve/progress/fit_multi.py
from __future__ import annotations
import logging
import warnings
from collections.abc import Mapping
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .errors import EpiCurveError, FitWarning, InvalidParameter, NoConvergence
from .fit_lin import fit_linear
from .fit_nlin import fit_nonlinear
from .models import MODEL_NAMES, get_model_spec
from .types import CurveLike, FitConfig, FitResult, as_curve

RankBy = Literal["rse", "ccc", "r_squared"]
Stratum = Hashable


def _ensure_columns(df: pd.DataFrame, cols: list[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def group_curves(
    df: pd.DataFrame,
    strata: Sequence[str],
    time_col: str = "time",
    intensity_col: str = "intensity",
    replicate_col: Optional[str] = "replicate",
) -> Dict[Stratum, pd.DataFrame]:
    """
    Split a long table into one sub-table per stratum (sorted by stratum key).
    Single-column strata give scalar keys; multi-column strata give tuples.
    """
    strata = list(strata)
    _ensure_columns(df, strata + [time_col, intensity_col])

    cols = [time_col, intensity_col]
    renames = {time_col: "time", intensity_col: "intensity"}
    if replicate_col is not None and replicate_col in df.columns:
        cols.insert(0, replicate_col)
        renames[replicate_col] = "replicate"

    def _canonical(g: pd.DataFrame) -> pd.DataFrame:
        return g[cols].rename(columns=renames).reset_index(drop=True)

    if not strata:
        return {"all": _canonical(df)}

    by = strata[0] if len(strata) == 1 else strata
    return {key: _canonical(g) for key, g in df.groupby(by, sort=True, dropna=False)}


def _normalize_models(models: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if models is None:
        return MODEL_NAMES
    if isinstance(models, str):
        models = [models]
    wanted = {get_model_spec(m).name for m in models}
    if not wanted:
        raise InvalidParameter("No models requested")
    return tuple(m for m in MODEL_NAMES if m in wanted)


def _fit_cell(
    stratum: Stratum,
    curve: CurveLike,
    model: str,
    estimate_K: bool,
    use_nonlinear: bool,
    cfg: FitConfig,
) -> Tuple[Stratum, str, Union[FitResult, EpiCurveError]]:
    try:
        c = as_curve(curve)
        if not use_nonlinear:
            return stratum, model, fit_linear(c, model, config=cfg)
        try:
            return stratum, model, fit_nonlinear(c, model, estimate_K=estimate_K, config=cfg)
        except NoConvergence as e:
            if not cfg.fallback_to_linear:
                raise
            logging.info(f"stratum={stratum!r} model={model}: {e}; falling back to linear fit")
            return stratum, model, fit_linear(c, model, config=cfg)
    except EpiCurveError as e:
        return stratum, model, e


class MultiFit(Mapping):
    """
    Read-only mapping stratum -> {model -> FitResult}.

    Cells that failed are kept in `failures` and left out of the mapping and of
    the aggregate tables; strata where every model failed do not appear at all.
    """

    def __init__(
        self,
        fits: Dict[Stratum, Dict[str, FitResult]],
        failures: Dict[Tuple[Stratum, str], EpiCurveError],
        strata_names: Sequence[str] = ("stratum",),
    ):
        self._fits = {k: dict(v) for k, v in fits.items() if v}
        self.failures = dict(failures)
        self.strata_names = tuple(strata_names) or ("stratum",)

    def __getitem__(self, stratum: Stratum) -> Dict[str, FitResult]:
        return dict(self._fits[stratum])

    def __iter__(self) -> Iterator[Stratum]:
        return iter(self._fits)

    def __len__(self) -> int:
        return len(self._fits)

    def _key_columns(self, stratum: Stratum) -> Dict[str, Any]:
        names = self.strata_names
        if len(names) > 1 and isinstance(stratum, tuple) and len(stratum) == len(names):
            return dict(zip(names, stratum))
        return {names[0]: stratum}

    def parameters_table(self) -> pd.DataFrame:
        rows = []
        for stratum, by_model in self._fits.items():
            for fit in by_model.values():
                rows.append({**self._key_columns(stratum), **fit.to_row()})
        return pd.DataFrame(rows)

    def predictions_table(self) -> pd.DataFrame:
        parts = []
        for stratum, by_model in self._fits.items():
            for model, fit in by_model.items():
                part = fit.predictions.copy()
                for col, val in reversed(list(self._key_columns(stratum).items())):
                    part.insert(0, col, [val] * len(part))
                part.insert(len(self.strata_names), "model", model)
                parts.append(part)
        if not parts:
            return pd.DataFrame(columns=[*self.strata_names, "model", "time", "observed", "predicted", "residual"])
        return pd.concat(parts, ignore_index=True)

    def failures_table(self) -> pd.DataFrame:
        rows = [
            {**self._key_columns(stratum), "model": model, "error": type(err).__name__, "message": str(err)}
            for (stratum, model), err in self.failures.items()
        ]
        return pd.DataFrame(rows, columns=[*self.strata_names, "model", "error", "message"])

    def best(self, by: RankBy = "rse") -> Dict[Stratum, FitResult]:
        return {stratum: rank_models(by_model, by=by)[0] for stratum, by_model in self._fits.items()}


def rank_models(fits: Mapping, by: RankBy = "rse") -> List[FitResult]:
    """
    Order one stratum's fits by an explicit rule: smallest RSE, or largest CCC
    or R^2. Ties keep the canonical model order.
    """
    if by not in ("rse", "ccc", "r_squared"):
        raise InvalidParameter(f"Unknown ranking rule {by!r}")
    ordered = sorted(fits.values(), key=lambda f: MODEL_NAMES.index(f.model))

    def score(f: FitResult) -> float:
        v = float(getattr(f, by))
        if not np.isfinite(v):
            return np.inf
        return v if by == "rse" else -v

    return sorted(ordered, key=score)


def fit_multi(
    curves_by_stratum: Union[Mapping, pd.DataFrame],
    models: Optional[Iterable[str]] = None,
    estimate_K: bool = False,
    use_nonlinear: bool = True,
    *,
    strata: Optional[Sequence[str]] = None,
    config: Optional[FitConfig] = None,
    n_jobs: int = 1,
) -> MultiFit:
    """
    Fit every requested model to every stratum independently.

    `curves_by_stratum` is either a mapping stratum -> curve, or a long
    DataFrame with canonical `time`/`intensity` (and optional `replicate`)
    columns split by the `strata` columns. Replicates within a stratum are
    pooled. Cells run through joblib (`n_jobs`) and are collected in
    (stratum, model) order.
    """
    cfg = config or FitConfig()
    model_names = _normalize_models(models)

    if isinstance(curves_by_stratum, pd.DataFrame):
        strata_names = tuple(strata or ())
        curves = group_curves(curves_by_stratum, strata_names)
        if not strata_names:
            strata_names = ("stratum",)
    else:
        curves = dict(curves_by_stratum)
        strata_names = tuple(strata or ("stratum",))

    cells = Parallel(n_jobs=n_jobs)(
        delayed(_fit_cell)(stratum, curve, model, estimate_K, use_nonlinear, cfg)
        for stratum, curve in curves.items()
        for model in model_names
    )

    fits: Dict[Stratum, Dict[str, FitResult]] = {stratum: {} for stratum in curves}
    failures: Dict[Tuple[Stratum, str], EpiCurveError] = {}
    for stratum, model, outcome in cells:
        if isinstance(outcome, FitResult):
            fits[stratum][model] = outcome
            continue
        failures[(stratum, model)] = outcome
        msg = f"stratum={stratum!r} model={model}: {type(outcome).__name__}: {outcome}"
        logging.warning(f"Fit failed, cell omitted: {msg}")
        warnings.warn(msg, FitWarning, stacklevel=2)

    out = MultiFit(fits, failures, strata_names)
    logging.info(
        f"fit_multi: strata={len(curves)} models={len(model_names)} "
        f"fitted_strata={len(out)} failed_cells={len(failures)}"
    )
    return out

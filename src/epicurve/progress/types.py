# src/epicurve/progress/types.py
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Optional, Dict, Any, Literal, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InvalidParameter
from .models import CLAMP_EPS, get_model_spec

ModelName = Literal["exponential", "monomolecular", "logistic", "gompertz"]
FitMethod = Literal["linear", "nonlinear"]


@dataclass
class FitConfig:
    # Linearization
    clamp: bool = True
    clamp_eps: float = CLAMP_EPS

    # Nonlinear least squares
    max_nfev: int = 2000
    k_start_factor: float = 1.05
    cap_K_at_one: bool = False

    # Reporting
    ci_level: float = 0.95

    # fit_multi recovery
    fallback_to_linear: bool = False

    def __post_init__(self) -> None:
        if not (0.0 < self.clamp_eps < 0.5):
            raise InvalidParameter(f"clamp_eps must be in (0, 0.5), got {self.clamp_eps}")
        if not (0.0 < self.ci_level < 1.0):
            raise InvalidParameter(f"ci_level must be in (0, 1), got {self.ci_level}")
        if int(self.max_nfev) < 1:
            raise InvalidParameter(f"max_nfev must be >= 1, got {self.max_nfev}")

    def to_dict(self) -> dict[str, float | int | bool]:
        return asdict(self)


@dataclass(frozen=True)
class ModelParameters:
    model: ModelName
    y0: float
    r: float
    K: Optional[float] = None

    def __post_init__(self) -> None:
        spec = get_model_spec(self.model)
        object.__setattr__(self, "model", spec.name)

        y0 = float(self.y0)
        r = float(self.r)
        if not (0.0 < y0 < 1.0):
            raise InvalidParameter(f"y0 must lie in (0, 1), got {y0}")
        if not np.isfinite(r):
            raise InvalidParameter(f"r must be finite, got {r}")
        object.__setattr__(self, "y0", y0)
        object.__setattr__(self, "r", r)

        if spec.has_K:
            K = 1.0 if self.K is None else float(self.K)
            if not np.isfinite(K) or K <= y0:
                raise InvalidParameter(f"K must be finite and greater than y0={y0}, got {K}")
            object.__setattr__(self, "K", K)
        elif self.K is not None:
            raise InvalidParameter(f"{spec.name} model has no K parameter")

    def predict(self, t) -> np.ndarray:
        spec = get_model_spec(self.model)
        return spec.evaluate(np.asarray(t, float), self.y0, self.r, 1.0 if self.K is None else self.K)

    def as_dict(self) -> Dict[str, float]:
        out = {"y0": self.y0, "r": self.r}
        if self.K is not None:
            out["K"] = self.K
        return out


@dataclass(frozen=True)
class ProgressCurve:
    """
    One disease-progress curve: intensity over time, optionally pooled over
    several replicates. Observations are stored sorted by time; within a
    replicate times must be strictly increasing.
    """
    time: np.ndarray
    intensity: np.ndarray
    replicate: Optional[np.ndarray] = None
    allow_above_one: bool = False

    def __post_init__(self) -> None:
        t = np.asarray(self.time, dtype=float).ravel()
        y = np.asarray(self.intensity, dtype=float).ravel()
        if t.shape != y.shape:
            raise InvalidParameter(f"time and intensity lengths differ: {t.size} vs {y.size}")
        rep = None
        if self.replicate is not None:
            rep = np.asarray(self.replicate, dtype=object).ravel()
            if rep.shape != t.shape:
                raise InvalidParameter("replicate ids must align with time")

        if not np.all(np.isfinite(t)) or not np.all(np.isfinite(y)):
            raise InvalidParameter("time and intensity must be finite")
        if np.any(t < 0):
            raise InvalidParameter("time must be non-negative")
        if np.any(y < 0):
            raise InvalidParameter("intensity must be non-negative")
        if not self.allow_above_one and np.any(y > 1.0):
            raise InvalidParameter("intensity must lie in [0, 1] (pass allow_above_one=True to relax)")

        order = np.argsort(t, kind="stable")
        t, y = t[order], y[order]
        if rep is not None:
            rep = rep[order]
            for rid in pd.unique(rep):
                if np.any(np.diff(t[rep == rid]) <= 0):
                    raise InvalidParameter(f"duplicate time points within replicate {rid!r}")
        elif np.any(np.diff(t) <= 0):
            raise InvalidParameter("duplicate time points in a single-replicate curve")

        object.__setattr__(self, "time", t)
        object.__setattr__(self, "intensity", y)
        object.__setattr__(self, "replicate", rep)

    def __len__(self) -> int:
        return int(self.time.size)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        time_col: str = "time",
        intensity_col: str = "intensity",
        replicate_col: Optional[str] = "replicate",
        allow_above_one: bool = False,
    ) -> "ProgressCurve":
        missing = [c for c in (time_col, intensity_col) if c not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")
        rep = None
        if replicate_col is not None and replicate_col in df.columns:
            rep = df[replicate_col].to_numpy()
        return cls(
            time=pd.to_numeric(df[time_col], errors="coerce").to_numpy(dtype=float),
            intensity=pd.to_numeric(df[intensity_col], errors="coerce").to_numpy(dtype=float),
            replicate=rep,
            allow_above_one=allow_above_one,
        )

    def to_frame(self) -> pd.DataFrame:
        out = pd.DataFrame({"time": self.time, "intensity": self.intensity})
        if self.replicate is not None:
            out.insert(0, "replicate", self.replicate)
        return out


CurveLike = Union[ProgressCurve, pd.DataFrame, Tuple[Any, Any]]


def as_curve(curve: CurveLike) -> ProgressCurve:
    if isinstance(curve, ProgressCurve):
        return curve
    if isinstance(curve, pd.DataFrame):
        return ProgressCurve.from_frame(curve)
    if isinstance(curve, tuple) and len(curve) == 2:
        return ProgressCurve(time=curve[0], intensity=curve[1])
    raise TypeError(f"Cannot build a ProgressCurve from {type(curve).__name__}")


@dataclass(frozen=True)
class FitResult:
    model: ModelName
    method: FitMethod
    params: ModelParameters

    # inference
    std_errors: Dict[str, float]
    conf_int: Dict[str, Tuple[float, float]]
    ci_level: float

    # goodness of fit (original intensity scale, except r_squared for linear fits)
    ccc: float
    rse: float
    r_squared: float
    n: int
    n_params: int

    # time, observed, predicted, residual
    predictions: pd.DataFrame = field(repr=False)
    nfev: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"model": self.model, "method": self.method}
        for name in ("y0", "r", "K"):
            est = getattr(self.params, name)
            row[name] = np.nan if est is None else float(est)
            row[f"{name}_se"] = float(self.std_errors.get(name, np.nan))
            lo, hi = self.conf_int.get(name, (np.nan, np.nan))
            row[f"{name}_ci_lower"] = float(lo)
            row[f"{name}_ci_upper"] = float(hi)
        row.update({
            "ccc": self.ccc,
            "rse": self.rse,
            "r_squared": self.r_squared,
            "n": self.n,
            "n_params": self.n_params,
        })
        return row


@dataclass(frozen=True)
class SimulatedCurve:
    params: ModelParameters
    dt: float
    n_steps: int
    n_replicates: int
    noise_alpha: float
    seed: Optional[int]

    # replicate, time, y, random_y
    data: pd.DataFrame = field(repr=False)

    def to_frame(self) -> pd.DataFrame:
        return self.data.copy()

    def replicate_curve(self, replicate: int, noisy: bool = True) -> ProgressCurve:
        g = self.data[self.data["replicate"] == replicate]
        if g.empty:
            raise InvalidParameter(f"No replicate {replicate} in simulated curve")
        col = "random_y" if noisy else "y"
        return ProgressCurve(
            time=g["time"].to_numpy(),
            intensity=g[col].to_numpy(),
            allow_above_one=True,
        )

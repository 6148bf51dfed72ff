# src/epicurve/progress/models.py
from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, Tuple, TYPE_CHECKING

from .errors import DegenerateTransform, InvalidParameter

if TYPE_CHECKING:
    from .types import ModelParameters

# Intensities are clamped into [CLAMP_EPS, 1 - CLAMP_EPS] (relative to K)
# at the singular boundaries of a linearizing transform.
CLAMP_EPS = 1e-4

MODEL_NAMES: Tuple[str, ...] = ("exponential", "monomolecular", "logistic", "gompertz")


# --------- Growth laws ---------
def exponential(t, y0, r):
    # y(t) = y0 * exp(r t)
    return y0 * np.exp(r * np.asarray(t, float))

def monomolecular(t, y0, r):
    # y(t) = 1 - (1 - y0) * exp(-r t)
    return 1.0 - (1.0 - y0) * np.exp(-r * np.asarray(t, float))

def logistic(t, y0, r, K=1.0):
    # y(t) = K / (1 + ((K - y0) / y0) * exp(-r K t))
    return K / (1.0 + ((K - y0) / y0) * np.exp(-r * K * np.asarray(t, float)))

def gompertz(t, y0, r, K=1.0):
    # y(t) = K * exp(ln(y0 / K) * exp(-r t))
    return K * np.exp(np.log(y0 / K) * np.exp(-r * np.asarray(t, float)))


# --------- Linearizing transforms ---------
# Each transform maps intensity to a scale on which it is linear in time:
#   z(y) = b0 + b1 * t
def _z_exponential(y, K):
    return np.log(y)

def _z_monomolecular(y, K):
    return -np.log(1.0 - y)

def _z_logistic(y, K):
    return np.log(y / (K - y))

def _z_gompertz(y, K):
    return -np.log(-np.log(y / K))


# intercept -> y0 and its derivative (for delta-method standard errors)
def _y0_exponential(b0, K):
    return np.exp(b0), np.exp(b0)

def _y0_monomolecular(b0, K):
    return 1.0 - np.exp(-b0), np.exp(-b0)

def _y0_logistic(b0, K):
    e = np.exp(-b0)
    return K / (1.0 + e), K * e / (1.0 + e) ** 2

def _y0_gompertz(b0, K):
    y0 = K * np.exp(-np.exp(-b0))
    return y0, y0 * np.exp(-b0)


@dataclass(frozen=True)
class ModelSpec:
    name: str
    func: Callable
    has_K: bool
    transform: Callable
    y0_from_intercept: Callable
    # slope b1 = rate_scale(K) * r
    rate_scale: Callable[[float], float]
    singular_low: bool
    singular_high: bool

    def param_names(self, estimate_K: bool = False) -> Tuple[str, ...]:
        if self.has_K and estimate_K:
            return ("y0", "r", "K")
        return ("y0", "r")

    def evaluate(self, t, y0: float, r: float, K: float = 1.0) -> np.ndarray:
        if self.has_K:
            return self.func(t, y0, r, K)
        return self.func(t, y0, r)


MODEL_SPECS: Dict[str, ModelSpec] = {
    "exponential": ModelSpec(
        "exponential", exponential, False,
        _z_exponential, _y0_exponential, lambda K: 1.0,
        singular_low=True, singular_high=False,
    ),
    "monomolecular": ModelSpec(
        "monomolecular", monomolecular, False,
        _z_monomolecular, _y0_monomolecular, lambda K: 1.0,
        singular_low=False, singular_high=True,
    ),
    "logistic": ModelSpec(
        "logistic", logistic, True,
        _z_logistic, _y0_logistic, lambda K: float(K),
        singular_low=True, singular_high=True,
    ),
    "gompertz": ModelSpec(
        "gompertz", gompertz, True,
        _z_gompertz, _y0_gompertz, lambda K: 1.0,
        singular_low=True, singular_high=True,
    ),
}


def get_model_spec(model: str) -> ModelSpec:
    key = str(model).strip().lower()
    if key not in MODEL_SPECS:
        raise InvalidParameter(f"Unknown model {model!r}; expected one of {MODEL_NAMES}")
    return MODEL_SPECS[key]


def clamp_for_transform(
    y: np.ndarray,
    spec: ModelSpec,
    K: float = 1.0,
    eps: float = CLAMP_EPS,
    clamp: bool = True,
) -> np.ndarray:
    """
    Move intensities off the singular boundaries of `spec.transform`.

    The clamp is taken relative to K, so for logistic/Gompertz with an a-priori
    K the transformed values stay finite for any y in [0, K]. With clamp=False a
    value sitting on (or beyond) a singularity raises DegenerateTransform.
    """
    y = np.asarray(y, float)
    scale = float(K) if spec.has_K else 1.0
    u = y / scale

    if not clamp:
        bad_low = spec.singular_low and bool(np.any(u <= 0.0))
        bad_high = spec.singular_high and bool(np.any(u >= 1.0))
        if bad_low or bad_high:
            raise DegenerateTransform(
                f"{spec.name} transform is singular at intensity "
                f"{'0' if bad_low else 'K'}; enable clamping or drop those points"
            )
        return y

    lo = eps if spec.singular_low else -np.inf
    hi = 1.0 - eps if spec.singular_high else np.inf
    return np.clip(u, lo, hi) * scale


def inflection_point(params: "ModelParameters") -> Tuple[float, float]:
    """
    (t*, y*) where the progress curve changes from accelerating to decelerating.

    Logistic: y* = K/2. Gompertz: y* = K/e. Exponential and monomolecular
    curves have no inflection.
    """
    y0, r = float(params.y0), float(params.r)
    if params.model not in ("logistic", "gompertz"):
        raise InvalidParameter(f"{params.model} model has no inflection point")
    if r == 0.0:
        raise InvalidParameter("Inflection point is undefined for r == 0")
    K = float(params.K if params.K is not None else 1.0)

    if params.model == "logistic":
        t_star = np.log((K - y0) / y0) / (r * K)
        return float(t_star), K / 2.0

    t_star = np.log(-np.log(y0 / K)) / r
    return float(t_star), K / np.e

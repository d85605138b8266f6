"""
Gaussian mixture model, the TimbreDistribution artifact, and the EM refiner.

EMRefiner runs scikit-learn's GaussianMixture from a given seed and never
raises on a degenerate fit. A dead or singular component, in the seed or
after EM, ends the run with a CovarianceSingularity outcome carrying a
corrected point set: exact duplicate frames removed, the rest jittered by
a small fraction of each dimension's spread. Whether to retry on that set
is the caller's decision.
"""
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

import numpy as np
import structlog
from sklearn.mixture import GaussianMixture

log = structlog.get_logger()

# ── Constants ──────────────────────────────────────────────────────────────────

MAX_ITER       = 100
TOL            = 1e-4     # change in mean log-likelihood per sample
REG_COVAR      = 0.0      # no ridge; a collapsing component must surface
SINGULAR_RCOND = 1e-10    # smallest correlation eigenvalue below which Σ counts as singular
JITTER_SCALE   = 1e-3     # correction noise, relative to per-dimension std


def _frozen(a) -> np.ndarray:
    arr = np.array(a, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class MixtureModel:
    """
    k full-covariance Gaussian components. Arrays are copied and made
    read-only on construction:
        weights     (k,)
        means       (k, d)
        covariances (k, d, d)
    """
    weights:     np.ndarray
    means:       np.ndarray
    covariances: np.ndarray

    def __post_init__(self):
        weights     = _frozen(self.weights)
        means       = _frozen(self.means)
        covariances = _frozen(self.covariances)

        if weights.ndim != 1 or len(weights) == 0:
            raise ValueError(f"weights must be a non-empty vector, got shape {weights.shape}")
        k = len(weights)
        if means.ndim != 2 or means.shape[0] != k:
            raise ValueError(f"means must have shape ({k}, d), got {means.shape}")
        d = means.shape[1]
        if covariances.shape != (k, d, d):
            raise ValueError(f"covariances must have shape ({k}, {d}, {d}), got {covariances.shape}")

        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "means", means)
        object.__setattr__(self, "covariances", covariances)

    @property
    def n_components(self) -> int:
        return len(self.weights)

    @property
    def dimension(self) -> int:
        return self.means.shape[1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "n_components": self.n_components,
            "dimension":    self.dimension,
            "weights":      self.weights.tolist(),
            "means":        self.means.tolist(),
            "covariances":  self.covariances.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MixtureModel":
        return cls(
            weights=data["weights"],
            means=data["means"],
            covariances=data["covariances"],
        )


class TimbreDistribution:
    """
    Timbre model of one song: a refined MixtureModel over its MFCC frames.
    Immutable; this is what gets stored and compared between songs.
    """

    ATTRIBUTE_TYPE = "timbre_distribution"
    NAME           = "Timbre Distribution"

    __slots__ = ("_model",)

    def __init__(self, model: MixtureModel):
        if not isinstance(model, MixtureModel):
            raise TypeError(f"expected MixtureModel, got {type(model).__name__}")
        object.__setattr__(self, "_model", model)

    def __setattr__(self, name, value):
        raise AttributeError("TimbreDistribution is immutable")

    def __repr__(self) -> str:
        return (f"TimbreDistribution(n_components={self.n_components}, "
                f"dimension={self.dimension})")

    @property
    def model(self) -> MixtureModel:
        return self._model

    @property
    def n_components(self) -> int:
        return self._model.n_components

    @property
    def dimension(self) -> int:
        return self._model.dimension

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.ATTRIBUTE_TYPE, **self._model.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimbreDistribution":
        return cls(MixtureModel.from_dict(data))


# ── Refinement outcomes ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Refined:
    model:          MixtureModel
    iterations:     int
    log_likelihood: float
    converged:      bool


@dataclass(frozen=True, eq=False)
class CovarianceSingularity:
    corrected_points: np.ndarray
    component:        Optional[int] = None    # None when EM itself broke down


RefineOutcome = Union[Refined, CovarianceSingularity]


class Refiner(Protocol):

    def refine(self, seed: MixtureModel, points: np.ndarray) -> RefineOutcome: ...


# ── Refinement ─────────────────────────────────────────────────────────────────

# GaussianMixture reports a collapsed component as a ValueError with one of these
_SINGULAR_MESSAGES = ("ill-defined empirical covariance", "should be symmetric", "should be positive")


def _singular_component(weights: np.ndarray, covariances: np.ndarray) -> Optional[int]:
    """
    Index of the first dead or singular component, else None. Σ is judged on
    its correlation matrix, so dimensions on very different scales are fine.
    """
    for j, (w, cov) in enumerate(zip(weights, covariances)):
        var = np.diag(cov)
        if w <= 0 or not np.all(np.isfinite(cov)) or np.any(var <= 0):
            return j
        scale = np.sqrt(var)
        corr  = cov / np.outer(scale, scale)
        if np.linalg.eigvalsh(corr)[0] <= SINGULAR_RCOND:
            return j
    return None


def _precisions(covariances: np.ndarray) -> np.ndarray:
    prec = np.linalg.inv(covariances)
    return (prec + np.swapaxes(prec, -1, -2)) / 2.0


def correct_points(points: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Drop exact duplicate frames (keeping first occurrences, in order) and add
    a small Gaussian jitter so collinear frames no longer span a flat subspace.
    """
    X = np.asarray(points, dtype=np.float64)
    if len(X) == 0:
        return X.copy()
    _, first = np.unique(X, axis=0, return_index=True)
    X = X[np.sort(first)]

    scale = X.std(axis=0) if len(X) > 1 else np.zeros(X.shape[1])
    scale = np.where(scale > 0, scale, 1.0) * JITTER_SCALE
    return X + rng.normal(0.0, 1.0, size=X.shape) * scale


class EMRefiner:

    def __init__(self, max_iter: int = MAX_ITER, tol: float = TOL,
                 random_state: Optional[int] = None, reg_covar: float = REG_COVAR):
        if max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {max_iter}")
        self.max_iter     = max_iter
        self.tol          = tol
        self.random_state = random_state
        self.reg_covar    = reg_covar

    @classmethod
    def from_settings(cls, settings) -> "EMRefiner":
        return cls(max_iter=settings.EM_MAX_ITER, tol=settings.EM_TOL,
                   random_state=settings.RANDOM_STATE)

    def _singularity(self, points: np.ndarray, component: Optional[int]) -> CovarianceSingularity:
        rng = np.random.default_rng(self.random_state)
        return CovarianceSingularity(corrected_points=correct_points(points, rng),
                                     component=component)

    def refine(self, seed: MixtureModel, points: np.ndarray) -> RefineOutcome:
        X = np.asarray(points, dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != seed.dimension:
            raise ValueError(f"points must have shape (n, {seed.dimension}), got {X.shape}")

        bad = _singular_component(seed.weights, seed.covariances)
        if bad is not None:
            return self._singularity(X, bad)

        gmm = GaussianMixture(
            n_components=seed.n_components,
            covariance_type="full",
            tol=self.tol,
            reg_covar=self.reg_covar,
            max_iter=self.max_iter,
            init_params="random",
            weights_init=seed.weights / seed.weights.sum(),
            means_init=np.array(seed.means),
            precisions_init=_precisions(seed.covariances),
            random_state=self.random_state,
        )
        try:
            gmm.fit(X)
        except ValueError as e:
            if not any(m in str(e) for m in _SINGULAR_MESSAGES):
                raise
            return self._singularity(X, None)

        bad = _singular_component(gmm.weights_, gmm.covariances_)
        if bad is not None:
            return self._singularity(X, bad)

        log.info("em_refined", iterations=gmm.n_iter_, converged=gmm.converged_,
                 log_likelihood=round(float(gmm.lower_bound_), 4),
                 components=seed.n_components, points=len(X))
        return Refined(
            model=MixtureModel(weights=gmm.weights_ / gmm.weights_.sum(),
                               means=gmm.means_, covariances=gmm.covariances_),
            iterations=int(gmm.n_iter_),
            log_likelihood=float(gmm.lower_bound_),
            converged=bool(gmm.converged_),
        )

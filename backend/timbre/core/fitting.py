"""
Model-fitting protocol: k-means seed → EM refinement, with one bounded
recovery when refinement reports a singular covariance.

    INITIALIZING → REFINING → SUCCEEDED
                       │ singularity (attempt 1 only)
                       ▼
    INITIALIZING(corrected) → REFINING(corrected) → SUCCEEDED | FAILED

A second singularity is final. Any exception from either collaborator is
wrapped in ModelFittingError straight away and never retried.
"""
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import structlog

from timbre.core.clustering import Initializer
from timbre.core.errors import ModelFittingError
from timbre.core.mixture import CovarianceSingularity, MixtureModel, Refined, Refiner

log = structlog.get_logger()

MAX_ATTEMPTS = 2


class FitState(str, Enum):
    INITIALIZING = "initializing"
    REFINING     = "refining"
    SUCCEEDED    = "succeeded"
    FAILED       = "failed"


@dataclass(eq=False)
class FitResult:
    model:       MixtureModel
    points:      np.ndarray          # the set the final model was fitted on
    attempts:    int
    transitions: list[FitState] = field(default_factory=list)

    @property
    def corrected(self) -> bool:
        return self.attempts > 1


class ModelFitter:

    def __init__(self, initializer: Initializer, refiner: Refiner):
        self.initializer = initializer
        self.refiner     = refiner

    def fit(self, points: np.ndarray, n_components: int) -> FitResult:
        transitions: list[FitState] = []

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                transitions.append(FitState.INITIALIZING)
                seed = self.initializer.initialize(points, n_components)
                transitions.append(FitState.REFINING)
                outcome = self.refiner.refine(seed, points)
            except Exception as e:
                transitions.append(FitState.FAILED)
                raise ModelFittingError(f"mixture fitting failed: {e}", attempts=attempt,
                                        transitions=transitions) from e

            if isinstance(outcome, Refined):
                if outcome.model.n_components != n_components:
                    transitions.append(FitState.FAILED)
                    raise ModelFittingError(
                        f"refiner returned {outcome.model.n_components} components, "
                        f"expected {n_components}", attempts=attempt, transitions=transitions)
                transitions.append(FitState.SUCCEEDED)
                return FitResult(model=outcome.model, points=points,
                                 attempts=attempt, transitions=transitions)

            if not isinstance(outcome, CovarianceSingularity):
                transitions.append(FitState.FAILED)
                raise ModelFittingError(
                    f"unexpected refinement outcome {type(outcome).__name__}",
                    attempts=attempt, transitions=transitions)

            log.info("covariance_singularity",
                     attempt=attempt, component=outcome.component,
                     points=len(points), corrected_points=len(outcome.corrected_points))
            points = outcome.corrected_points

        transitions.append(FitState.FAILED)
        raise ModelFittingError(
            "covariance stayed singular after the corrected retry; "
            "cannot model this stream with the current configuration",
            attempts=MAX_ATTEMPTS,
            transitions=transitions,
        )
